from typing import Optional

from pydantic import BaseModel, Field

from thematch.models.tournament_model import MatchStatus


class MatchStatusRead(BaseModel):
    match_id: str
    status: str
    label: str
    color: str


class MatchStatusUpdate(BaseModel):
    status: MatchStatus
    reason: Optional[str] = Field(default=None, max_length=500)  # kept when cancelling
