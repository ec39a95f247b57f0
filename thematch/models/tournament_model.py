from datetime import datetime
from typing import Optional
from uuid import uuid4
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TournamentType(str, Enum):
    ROUND_ROBIN = "round_robin"
    SWISS = "swiss"
    LEAGUE = "league"
    SINGLE_ELIMINATION = "single_elimination"
    DOUBLE_ELIMINATION = "double_elimination"
    GROUP_STAGE = "group_stage"


ELIMINATION_TYPES = {TournamentType.SINGLE_ELIMINATION, TournamentType.DOUBLE_ELIMINATION}


class MatchStatus(str, Enum):
    DRAFT = "draft"
    REGISTRATION = "registration"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Match(BaseModel):
    """A tournament as the organizer configured it."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    type: TournamentType
    status: MatchStatus = MatchStatus.DRAFT  # cached; see status_service
    creator_id: str
    registration_start: Optional[datetime] = None
    registration_deadline: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


class Entrant(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    name: str
    seed: Optional[int] = Field(default=None, ge=1)  # 1 = strongest


class ActorRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Actor(BaseModel):
    """Already-authenticated identity handed to the services by the API layer."""

    id: str
    role: ActorRole = ActorRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def is_elimination(tournament_type) -> bool:
    return TournamentType(tournament_type) in ELIMINATION_TYPES
