from .tournament_model import Actor, ActorRole, Entrant, Match, MatchStatus, TournamentType
from .bracket_model import (
    BracketMatch,
    BracketMatchStatus,
    BracketRound,
    BracketSide,
    BracketTeam,
    Pairing,
    ProgressionResult,
    Standing,
    TournamentBracket,
)
