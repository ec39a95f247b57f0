"""Persistence boundary for the engine.

``ResilientStore.run`` is the only place the service waits on anything: it
executes one unit of work in its own session, retries transient failures
with exponential backoff, and gives up at the attempt budget, the caller's
deadline or the caller's cancellation event, whichever comes first.

The deadline is checked before every attempt and before every backoff
wait. A statement that is already running is not interrupted; bound
individual statements with the driver's own timeout (for example
``connect_args={"timeout": ...}`` on SQLite or ``statement_timeout`` on
PostgreSQL) when that matters.
"""
import threading
import time
from collections import defaultdict
from typing import Callable, List, Optional, TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy import update
from sqlalchemy.orm import Session

from thematch.core.config import settings
from thematch.core.database import Database
from thematch.core.exceptions import ConcurrentConflict, ExpiredCredentials, NotFound, TransientStoreFailure
from thematch.core.logging import get_logger
from thematch.models.bracket_model import (
    BracketMatch,
    BracketRound,
    BracketSide,
    BracketTeam,
    TournamentBracket,
)
from thematch.models.records import BracketMatchRecord, BracketRecord, EntrantRecord, MatchRecord
from thematch.models.tournament_model import Entrant, Match

logger = get_logger(__name__)

T = TypeVar("T")

# Driver messages of OperationalErrors that clear up on their own. Anything
# else (missing table, bad SQL, constraint setup) fails the same way again.
TRANSIENT_MESSAGES = (
    "database is locked",
    "server closed the connection",
    "could not connect",
    "connection refused",
    "connection reset",
    "lost connection",
    "server has gone away",
    "too many connections",
    "deadlock",
    "timeout",
    "timed out",
)


def is_transient(error: BaseException) -> bool:
    """Expired credentials, dropped connections, locks and timeouts are worth retrying."""
    if isinstance(error, (ExpiredCredentials, ConnectionError, TimeoutError)):
        return True
    if isinstance(error, (sa_exc.InterfaceError, sa_exc.TimeoutError)):
        return True
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return True
    if isinstance(error, sa_exc.OperationalError):
        message = str(error.orig if error.orig is not None else error).lower()
        return any(marker in message for marker in TRANSIENT_MESSAGES)
    return False


class ResilientStore:
    def __init__(
        self,
        database: Database,
        max_attempts: int = settings.STORE_MAX_ATTEMPTS,
        backoff_seconds: float = settings.STORE_BACKOFF_SECONDS,
        timeout_seconds: float = settings.STORE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.database = database
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.timeout_seconds = timeout_seconds
        self.clock = clock

    def run(
        self,
        operation: Callable[[Session], T],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> T:
        deadline = self.clock() + (timeout if timeout is not None else self.timeout_seconds)
        cancel = cancel or threading.Event()
        attempt = 0
        while True:
            if cancel.is_set():
                raise TransientStoreFailure(code="store_cancelled")
            if self.clock() >= deadline:
                logger.error("Store deadline reached before attempt %d", attempt + 1)
                raise TransientStoreFailure(code="store_timeout")
            session = self.database.session()
            try:
                result = operation(session)
                session.commit()
                return result
            except Exception as error:
                session.rollback()
                if not is_transient(error):
                    raise
                attempt += 1
                if attempt >= self.max_attempts:
                    logger.error("Store operation failed after %d attempts: %s", attempt, error)
                    raise TransientStoreFailure() from error
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                if self.clock() + delay > deadline:
                    logger.error("Store deadline reached after %d attempts: %s", attempt, error)
                    raise TransientStoreFailure(code="store_timeout") from error
                logger.warning(
                    "Transient store failure (attempt %d/%d), retrying in %.2fs: %s",
                    attempt, self.max_attempts, delay, error,
                )
                if cancel.wait(delay):
                    raise TransientStoreFailure(code="store_cancelled") from error
            finally:
                session.close()

    # --- matches -----------------------------------------------------------

    def save_match(self, match: Match, entrants: Optional[List[Entrant]] = None, **kwargs) -> Match:
        def operation(session: Session) -> Match:
            record = session.get(MatchRecord, match.id) or MatchRecord(id=match.id)
            record.title = match.title
            record.type = str(_value(match.type))
            record.status = str(_value(match.status))
            record.creator_id = match.creator_id
            record.registration_start = match.registration_start
            record.registration_deadline = match.registration_deadline
            record.start_date = match.start_date
            record.end_date = match.end_date
            record.cancellation_reason = match.cancellation_reason
            session.add(record)
            if entrants is not None:
                session.query(EntrantRecord).filter(EntrantRecord.match_id == match.id).delete()
                for index, entrant in enumerate(entrants):
                    session.add(EntrantRecord(
                        match_id=match.id, id=entrant.id, name=entrant.name, seed=entrant.seed, list_order=index
                    ))
            return match

        return self.run(operation, **kwargs)

    def get_match(self, match_id: str, **kwargs) -> Match:
        def operation(session: Session) -> Match:
            record = session.get(MatchRecord, match_id)
            if record is None:
                raise NotFound(f"Match {match_id} not found.", code="match_not_found")
            return Match.model_validate(record)

        return self.run(operation, **kwargs)

    def list_entrants(self, match_id: str, **kwargs) -> List[Entrant]:
        def operation(session: Session) -> List[Entrant]:
            rows = (
                session.query(EntrantRecord)
                .filter(EntrantRecord.match_id == match_id)
                .order_by(EntrantRecord.list_order)
                .all()
            )
            return [Entrant(id=r.id, name=r.name, seed=r.seed) for r in rows]

        return self.run(operation, **kwargs)

    def save_match_status(self, match_id: str, status: str, **kwargs) -> None:
        def operation(session: Session) -> None:
            record = session.get(MatchRecord, match_id)
            if record is None:
                raise NotFound(f"Match {match_id} not found.", code="match_not_found")
            if record.status != status:
                record.status = status

        self.run(operation, **kwargs)

    # --- brackets ----------------------------------------------------------

    def replace_bracket(self, bracket: TournamentBracket, **kwargs) -> TournamentBracket:
        """Stores a freshly built bracket, dropping any earlier one for the same match."""
        def operation(session: Session) -> TournamentBracket:
            for old in session.query(BracketRecord).filter(BracketRecord.match_id == bracket.match_id).all():
                session.delete(old)
            session.flush()
            record = BracketRecord(
                id=bracket.id,
                name=bracket.name,
                match_id=bracket.match_id,
                type=str(_value(bracket.type)),
                total_teams=bracket.total_teams,
                current_round=bracket.current_round,
                champion=bracket.champion,
            )
            record.matches = [_match_to_record(bracket, m) for m in bracket.all_matches()]
            session.add(record)
            return bracket

        return self.run(operation, **kwargs)

    def load_bracket(self, bracket_id: str, **kwargs) -> TournamentBracket:
        def operation(session: Session) -> TournamentBracket:
            record = session.get(BracketRecord, bracket_id)
            if record is None:
                raise NotFound(f"Bracket {bracket_id} not found.", code="bracket_not_found")
            return _bracket_from_record(record)

        return self.run(operation, **kwargs)

    def load_bracket_for_match(self, match_id: str, **kwargs) -> Optional[TournamentBracket]:
        def operation(session: Session) -> Optional[TournamentBracket]:
            record = session.query(BracketRecord).filter(BracketRecord.match_id == match_id).first()
            return _bracket_from_record(record) if record is not None else None

        return self.run(operation, **kwargs)

    def save_progression(self, bracket: TournamentBracket, updated_matches: List[BracketMatch], **kwargs) -> None:
        """Writes changed matches with a compare-and-set on their version.

        Each match in updated_matches carries its new version; the row must
        still hold the previous one or the whole write is rejected.
        """
        def operation(session: Session) -> None:
            for match in updated_matches:
                values = _match_columns(match)
                result = session.execute(
                    update(BracketMatchRecord)
                    .where(
                        BracketMatchRecord.bracket_id == bracket.id,
                        BracketMatchRecord.id == match.id,
                        BracketMatchRecord.version == match.version - 1,
                    )
                    .values(**values)
                )
                if result.rowcount != 1:
                    raise ConcurrentConflict(
                        f"Match {match.id} was updated by another submission.", code="version_conflict"
                    )
            session.execute(
                update(BracketRecord)
                .where(BracketRecord.id == bracket.id)
                .values(current_round=bracket.current_round, champion=bracket.champion)
            )

        self.run(operation, **kwargs)


def _value(enum_or_str):
    return getattr(enum_or_str, "value", enum_or_str)


def _match_columns(match: BracketMatch) -> dict:
    columns = {
        "round": match.round,
        "position": match.position,
        "side": str(_value(match.bracket)),
        "team1_score": match.team1_score,
        "team2_score": match.team2_score,
        "winner": match.winner,
        "status": str(_value(match.status)),
        "is_bye": match.is_bye,
        "next_match_id": match.next_match_id,
        "next_match_slot": match.next_match_slot,
        "loser_match_id": match.loser_match_id,
        "loser_match_slot": match.loser_match_slot,
        "version": match.version,
    }
    for slot in (1, 2):
        team = match.team_in_slot(slot)
        columns[f"team{slot}_id"] = team.id if team else None
        columns[f"team{slot}_name"] = team.name if team else None
        columns[f"team{slot}_seed"] = team.seed if team else None
        columns[f"team{slot}_live_score"] = team.score if team else None
    return columns


def _match_to_record(bracket: TournamentBracket, match: BracketMatch) -> BracketMatchRecord:
    return BracketMatchRecord(bracket_id=bracket.id, id=match.id, match_id=bracket.match_id, **_match_columns(match))


def _team_from_record(record: BracketMatchRecord, slot: int) -> Optional[BracketTeam]:
    team_id = getattr(record, f"team{slot}_id")
    if team_id is None:
        return None
    return BracketTeam(
        id=team_id,
        name=getattr(record, f"team{slot}_name"),
        seed=getattr(record, f"team{slot}_seed"),
        score=getattr(record, f"team{slot}_live_score"),
    )


def _bracket_from_record(record: BracketRecord) -> TournamentBracket:
    sides = defaultdict(lambda: defaultdict(list))
    grand_final = None
    for row in record.matches:
        match = BracketMatch(
            id=row.id,
            round=row.round,
            position=row.position,
            bracket=row.side,
            team1=_team_from_record(row, 1),
            team2=_team_from_record(row, 2),
            team1_score=row.team1_score,
            team2_score=row.team2_score,
            winner=row.winner,
            status=row.status,
            is_bye=row.is_bye,
            next_match_id=row.next_match_id,
            next_match_slot=row.next_match_slot,
            loser_match_id=row.loser_match_id,
            loser_match_slot=row.loser_match_slot,
            version=row.version,
        )
        if row.side == BracketSide.GRAND_FINAL.value:
            grand_final = match
        else:
            sides[row.side][row.round].append(match)

    def rounds_for(side: BracketSide) -> List[BracketRound]:
        by_round = sides.get(side.value, {})
        return [
            BracketRound(round=number, matches=sorted(by_round[number], key=lambda m: m.position))
            for number in sorted(by_round)
        ]

    rounds = rounds_for(BracketSide.WINNERS)
    if not rounds:
        # swiss / league brackets are created with one empty round
        rounds = [BracketRound(round=1, matches=[])]

    return TournamentBracket(
        id=record.id,
        name=record.name,
        match_id=record.match_id,
        type=record.type,
        rounds=rounds,
        losers_rounds=rounds_for(BracketSide.LOSERS),
        grand_final=grand_final,
        total_teams=record.total_teams,
        current_round=record.current_round,
        champion=record.champion,
    )
