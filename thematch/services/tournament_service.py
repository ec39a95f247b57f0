"""Glue between the API layer, the engine and the store.

Authorization and the "no rebuild once play started" guard live here; the
engine modules stay free of identity and persistence concerns.
"""
from typing import Callable, Dict, List, Optional

from thematch.core.exceptions import (
    ConcurrentConflict,
    InvalidInput,
    NotFound,
    PermissionDenied,
    StructuralConflict,
)
from thematch.core.logging import get_logger
from thematch.models.bracket_model import ProgressionResult, Standing, TournamentBracket
from thematch.models.tournament_model import Actor, Entrant, Match, MatchStatus
from thematch.services.bracket_service import BracketBuilder
from thematch.services.progression_service import BracketProgression
from thematch.services.standings_service import compute_standings
from thematch.services.status_service import Clock, compute_match_status, status_display, to_utc, utc_now
from thematch.services.store_service import ResilientStore

logger = get_logger(__name__)

BUILDABLE_STATUSES = (MatchStatus.DRAFT, MatchStatus.REGISTRATION)

# Explicit organizer moves; completed and cancelled are final.
STATUS_TRANSITIONS = {
    MatchStatus.DRAFT: (MatchStatus.REGISTRATION, MatchStatus.CANCELLED),
    MatchStatus.REGISTRATION: (MatchStatus.IN_PROGRESS, MatchStatus.CANCELLED),
    MatchStatus.IN_PROGRESS: (MatchStatus.COMPLETED, MatchStatus.CANCELLED),
    MatchStatus.COMPLETED: (),
    MatchStatus.CANCELLED: (),
}


class TournamentService:
    def __init__(
        self,
        store: ResilientStore,
        clock: Clock = utc_now,
        progression: Optional[BracketProgression] = None,
    ):
        self.store = store
        self.clock = clock
        self.progression = progression or BracketProgression()

    def get_match_status(self, match_id: str) -> Dict[str, str]:
        match = self.store.get_match(match_id)
        return status_display(compute_match_status(match, clock=self.clock))

    def refresh_status(self, match_id: str, actor: Actor) -> MatchStatus:
        """Recomputes the status and writes it back as the cached column value."""
        match = self.store.get_match(match_id)
        _authorize(match, actor)
        status = compute_match_status(match, clock=self.clock)
        if status != match.status:
            self.store.save_match_status(match_id, status.value)
            logger.info("Match %s status cache %s -> %s", match_id, match.status, status.value)
        return status

    def change_status(
        self, match_id: str, new_status: MatchStatus, actor: Actor, reason: Optional[str] = None
    ) -> Match:
        """Moves a match along STATUS_TRANSITIONS.

        The dates are adjusted so the derived status agrees with the move:
        opening registration starts it now, starting play sets start_date,
        completing sets end_date. Cancelling keeps the reason.
        """
        try:
            new_status = MatchStatus(new_status)
        except ValueError:
            raise InvalidInput(f"Unknown match status {new_status!r}.", code="invalid_status")

        match = self.store.get_match(match_id)
        _authorize(match, actor)

        now = to_utc(self.clock())
        current = compute_match_status(match, now=now)
        if new_status not in STATUS_TRANSITIONS[current]:
            raise StructuralConflict(
                f"Match {match_id} cannot move from {current.value} to {new_status.value}.",
                code="invalid_transition",
            )

        updates = {"status": new_status.value}
        if new_status == MatchStatus.REGISTRATION:
            deadline = to_utc(match.registration_deadline)
            if deadline is None or deadline < now:
                raise StructuralConflict(
                    "Opening registration needs a registration deadline in the future.", code="missing_deadline"
                )
            registration_start = to_utc(match.registration_start)
            if registration_start is None or registration_start > now:
                updates["registration_start"] = now
        elif new_status == MatchStatus.IN_PROGRESS:
            if len(self.store.list_entrants(match_id)) < 2:
                raise StructuralConflict("At least 2 entrants are needed to start.", code="too_few_entrants")
            start_date = to_utc(match.start_date)
            if start_date is None or start_date > now:
                updates["start_date"] = now
        elif new_status == MatchStatus.COMPLETED:
            end_date = to_utc(match.end_date)
            if end_date is None or end_date > now:
                updates["end_date"] = now
        elif new_status == MatchStatus.CANCELLED:
            updates["cancellation_reason"] = reason

        updated = match.model_copy(update=updates)
        self.store.save_match(updated)
        logger.info("Match %s moved %s -> %s by %s", match_id, current.value, new_status.value, actor.id)
        return updated

    def create_bracket(
        self,
        match_id: str,
        actor: Actor,
        entrants: Optional[List[Entrant]] = None,
        name: Optional[str] = None,
        legs: int = 1,
    ) -> TournamentBracket:
        match = self.store.get_match(match_id)
        _authorize(match, actor)

        status = compute_match_status(match, clock=self.clock)
        if status not in BUILDABLE_STATUSES:
            raise StructuralConflict(
                f"Brackets can only be built before play starts; match {match_id} is {status.value}.",
                code="bracket_locked",
            )

        if entrants is None:
            entrants = self.store.list_entrants(match_id)
        bracket = BracketBuilder.build(entrants, match.type, match_id=match.id, name=name, legs=legs)
        self.store.replace_bracket(bracket)
        return bracket

    def get_bracket(self, match_id: str) -> TournamentBracket:
        bracket = self.store.load_bracket_for_match(match_id)
        if bracket is None:
            raise NotFound(f"No bracket has been built for match {match_id}.", code="bracket_not_found")
        return bracket

    def get_standings(self, bracket_id: str) -> List[Standing]:
        return compute_standings(self.store.load_bracket(bracket_id))

    def record_result(
        self, bracket_id: str, bracket_match_id: str, team1_score: int, team2_score: int, actor: Actor
    ) -> ProgressionResult:
        return self._apply(
            bracket_id,
            actor,
            lambda bracket: self.progression.record_result(bracket, bracket_match_id, team1_score, team2_score),
        )

    def start_match(self, bracket_id: str, bracket_match_id: str, actor: Actor) -> ProgressionResult:
        return self._apply(
            bracket_id, actor, lambda bracket: self.progression.start_match(bracket, bracket_match_id)
        )

    def update_live_score(
        self, bracket_id: str, bracket_match_id: str, team1_score: int, team2_score: int, actor: Actor
    ) -> ProgressionResult:
        return self._apply(
            bracket_id,
            actor,
            lambda bracket: self.progression.update_live_score(bracket, bracket_match_id, team1_score, team2_score),
        )

    def _apply(
        self, bracket_id: str, actor: Actor, step: Callable[[TournamentBracket], ProgressionResult]
    ) -> ProgressionResult:
        bracket = self.store.load_bracket(bracket_id)
        _authorize(self.store.get_match(bracket.match_id), actor)

        outcome = step(bracket)
        if not outcome.changed:
            return outcome
        try:
            self.store.save_progression(outcome.bracket, outcome.updated_matches)
            return outcome
        except ConcurrentConflict as conflict:
            if conflict.code != "version_conflict":
                raise
            logger.warning("Lost a write race on bracket %s; re-reading once", bracket_id)

        # Re-run against the fresh snapshot: an identical submission becomes a
        # no-op, a contradicting one raises winner_conflict from the engine.
        outcome = step(self.store.load_bracket(bracket_id))
        if outcome.changed:
            self.store.save_progression(outcome.bracket, outcome.updated_matches)
        return outcome


def _authorize(match: Match, actor: Actor) -> None:
    if actor.is_admin or actor.id == match.creator_id:
        return
    raise PermissionDenied("Only the organizer or an admin can manage this bracket.")
