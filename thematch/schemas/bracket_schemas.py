from typing import List, Optional

from pydantic import BaseModel, Field

from thematch.models.bracket_model import BracketMatch, TournamentBracket
from thematch.models.tournament_model import Entrant


class BracketCreate(BaseModel):
    # Omitted entrants means "use the match's registered entrants"
    entrants: Optional[List[Entrant]] = None
    name: Optional[str] = Field(default=None, max_length=100)
    legs: int = 1


class ScoreSubmission(BaseModel):
    team1_score: int
    team2_score: int


class ProgressionRead(BaseModel):
    bracket: TournamentBracket
    updated_matches: List[BracketMatch]
    changed: bool
