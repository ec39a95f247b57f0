from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from thematch.core.security import decode_actor
from thematch.models.tournament_model import Actor
from thematch.services.store_service import ResilientStore
from thematch.services.tournament_service import TournamentService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_store(request: Request) -> ResilientStore:
    # Built in the application lifespan, see thematch.main
    return request.app.state.store


def get_tournament_service(store: ResilientStore = Depends(get_store)) -> TournamentService:
    return TournamentService(store)


def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    actor = decode_actor(token)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor
