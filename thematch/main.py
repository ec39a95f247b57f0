from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from thematch.api.endpoints import brackets as bracket_endpoints
from thematch.api.endpoints import matches as match_endpoints
from thematch.core.config import settings
from thematch.core.database import Database
from thematch.core.exceptions import EngineError
from thematch.core.logging import configure_logging, get_logger
from thematch.services.store_service import ResilientStore

logger = get_logger(__name__)


def create_app(database_url: Optional[str] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        database = Database(database_url or settings.DATABASE_URL)
        database.create_all()
        app.state.database = database
        app.state.store = ResilientStore(database)
        logger.info("Database ready at %s", database.engine.url.render_as_string(hide_password=True))
        yield
        database.dispose()
        logger.info("Database connections closed")

    app = FastAPI(title="The Match API", lifespan=lifespan)

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, error: EngineError):
        if error.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, error.code)
        else:
            logger.warning("%s %s rejected: %s (%s)", request.method, request.url.path, error.message, error.code)
        return JSONResponse(status_code=error.status_code, content={"detail": error.message, "code": error.code})

    app.include_router(match_endpoints.router, prefix="/matches", tags=["Matches"])
    app.include_router(bracket_endpoints.router, prefix="/brackets", tags=["Brackets"])
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("thematch.main:app", host="0.0.0.0", port=8000, reload=True)
