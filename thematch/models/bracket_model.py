from typing import List, Optional
from uuid import uuid4
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from thematch.models.tournament_model import TournamentType


class BracketMatchStatus(str, Enum):
    WAITING = "waiting"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class BracketSide(str, Enum):
    WINNERS = "winners"
    LOSERS = "losers"
    GRAND_FINAL = "grand_final"


class BracketTeam(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    score: Optional[int] = None  # live display score
    seed: Optional[int] = None


class BracketMatch(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str
    round: int
    position: int  # 0-based slot within the round
    bracket: BracketSide = BracketSide.WINNERS

    team1: Optional[BracketTeam] = None
    team2: Optional[BracketTeam] = None

    team1_score: Optional[int] = None
    team2_score: Optional[int] = None

    winner: Optional[str] = None  # entrant id
    status: BracketMatchStatus = BracketMatchStatus.WAITING
    is_bye: bool = False

    next_match_id: Optional[str] = None  # absent for the final
    next_match_slot: Optional[int] = None  # 1 -> team1, 2 -> team2
    loser_match_id: Optional[str] = None  # double elimination only
    loser_match_slot: Optional[int] = None

    version: int = 1

    def team_in_slot(self, slot: int) -> Optional[BracketTeam]:
        return self.team1 if slot == 1 else self.team2

    def set_team(self, slot: int, team: BracketTeam) -> None:
        if slot == 1:
            self.team1 = team
        else:
            self.team2 = team


class BracketRound(BaseModel):
    round: int
    matches: List[BracketMatch] = Field(default_factory=list)  # ascending position


class TournamentBracket(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    match_id: str
    type: TournamentType
    rounds: List[BracketRound] = Field(default_factory=list)
    losers_rounds: List[BracketRound] = Field(default_factory=list)
    grand_final: Optional[BracketMatch] = None
    total_teams: int
    current_round: int = 1
    champion: Optional[str] = None

    def all_matches(self) -> List[BracketMatch]:
        matches = [m for r in self.rounds for m in r.matches]
        matches.extend(m for r in self.losers_rounds for m in r.matches)
        if self.grand_final is not None:
            matches.append(self.grand_final)
        return matches

    def find_match(self, match_id: str) -> Optional[BracketMatch]:
        return next((m for m in self.all_matches() if m.id == match_id), None)


class Pairing(BaseModel):
    """One round-1 slot produced by the seed planner; no team2 means a bye."""

    position: int
    team1: BracketTeam
    team2: Optional[BracketTeam] = None

    @property
    def is_bye(self) -> bool:
        return self.team2 is None


class ProgressionResult(BaseModel):
    bracket: TournamentBracket
    updated_matches: List[BracketMatch] = Field(default_factory=list)
    changed: bool = True


class Standing(BaseModel):
    entrant_id: str
    name: str
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    points_for: int = 0
    points_against: int = 0
    point_diff: int = 0
    points: int = 0
    position: int = 0
