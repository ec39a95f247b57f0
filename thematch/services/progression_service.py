"""Result entry and advancement.

Every public method takes a bracket snapshot and returns a new one; the
input is never modified, so callers can hand the same snapshot to several
threads and persist whichever result wins at the store.
"""
from typing import List, Optional

from thematch.core.exceptions import ConcurrentConflict, InvalidInput, NotFound, StructuralConflict
from thematch.core.logging import get_logger
from thematch.models.bracket_model import (
    BracketMatch,
    BracketMatchStatus,
    BracketSide,
    BracketTeam,
    ProgressionResult,
    TournamentBracket,
)
from thematch.models.tournament_model import is_elimination
from thematch.services.bracket_service import place_team, unique_matches

logger = get_logger(__name__)


class BracketProgression:

    def record_result(
        self, bracket: TournamentBracket, match_id: str, team1_score: int, team2_score: int
    ) -> ProgressionResult:
        _validate_scores(team1_score, team2_score)
        bracket = bracket.model_copy(deep=True)
        match = _get_match(bracket, match_id)
        elimination = is_elimination(bracket.type)

        if match.is_bye:
            raise StructuralConflict(f"Match {match_id} is a bye and takes no result.", code="bye_match")
        if match.team1 is None or match.team2 is None or match.status == BracketMatchStatus.WAITING:
            raise StructuralConflict(
                f"Match {match_id} is still waiting for both teams.", code="match_waiting"
            )
        if elimination and team1_score == team2_score:
            raise StructuralConflict(
                "Scores cannot be equal in an elimination match. A winner must be determined.",
                code="tie_not_allowed",
            )

        winner = _decide_winner(match, team1_score, team2_score)

        if match.status == BracketMatchStatus.COMPLETED:
            return self._resubmission(bracket, match, winner, team1_score, team2_score)

        match.team1_score = team1_score
        match.team2_score = team2_score
        match.team1.score = team1_score
        match.team2.score = team2_score
        match.winner = winner
        match.status = BracketMatchStatus.COMPLETED

        updated = [match]
        if elimination:
            updated.extend(_route(bracket, match))
        _update_progress(bracket, match)
        updated = _bump_versions(unique_matches(updated))

        logger.info(
            "Recorded %s-%s in match %s of bracket %s (winner=%s)",
            team1_score, team2_score, match_id, bracket.id, winner,
        )
        return ProgressionResult(bracket=bracket, updated_matches=updated, changed=True)

    def _resubmission(
        self,
        bracket: TournamentBracket,
        match: BracketMatch,
        winner: Optional[str],
        team1_score: int,
        team2_score: int,
    ) -> ProgressionResult:
        if winner != match.winner:
            raise ConcurrentConflict(
                f"Match {match.id} was already decided with a different winner.", code="winner_conflict"
            )
        affected = [match] + downstream_of(bracket, match)
        if match.team1_score == team1_score and match.team2_score == team2_score:
            return ProgressionResult(bracket=bracket, updated_matches=affected, changed=False)

        # same winner, corrected score line; nothing downstream moves
        match.team1_score = team1_score
        match.team2_score = team2_score
        match.team1.score = team1_score
        match.team2.score = team2_score
        _bump_versions([match])
        logger.info("Corrected score of match %s in bracket %s to %s-%s", match.id, bracket.id, team1_score, team2_score)
        return ProgressionResult(bracket=bracket, updated_matches=[match], changed=True)

    def start_match(self, bracket: TournamentBracket, match_id: str) -> ProgressionResult:
        bracket = bracket.model_copy(deep=True)
        match = _get_match(bracket, match_id)
        if match.status == BracketMatchStatus.IN_PROGRESS:
            return ProgressionResult(bracket=bracket, updated_matches=[match], changed=False)
        if match.status != BracketMatchStatus.PENDING:
            raise StructuralConflict(
                f"Only pending matches can be started; match {match_id} is {_status_value(match)}.",
                code="not_startable",
            )
        match.status = BracketMatchStatus.IN_PROGRESS
        _bump_versions([match])
        logger.info("Started match %s in bracket %s", match_id, bracket.id)
        return ProgressionResult(bracket=bracket, updated_matches=[match], changed=True)

    def update_live_score(
        self, bracket: TournamentBracket, match_id: str, team1_score: int, team2_score: int
    ) -> ProgressionResult:
        _validate_scores(team1_score, team2_score)
        bracket = bracket.model_copy(deep=True)
        match = _get_match(bracket, match_id)
        if match.status not in (BracketMatchStatus.PENDING, BracketMatchStatus.IN_PROGRESS):
            raise StructuralConflict(
                f"Live scores need a pending or running match; match {match_id} is {_status_value(match)}.",
                code="not_live",
            )
        match.team1.score = team1_score
        match.team2.score = team2_score
        match.status = BracketMatchStatus.IN_PROGRESS
        _bump_versions([match])
        return ProgressionResult(bracket=bracket, updated_matches=[match], changed=True)


def downstream_of(bracket: TournamentBracket, match: BracketMatch) -> List[BracketMatch]:
    """The matches a completed match routed entrants into.

    Follows automatic byes, so the list is the same one the original
    submission reported.
    """
    result = []
    for target_id in (match.next_match_id, match.loser_match_id):
        while target_id:
            target = bracket.find_match(target_id)
            result.append(target)
            # an entrant placed into a bye moved on again
            target_id = target.next_match_id if target.is_bye else None
    return unique_matches(result)


def _validate_scores(team1_score: int, team2_score: int) -> None:
    if team1_score is None or team2_score is None:
        raise InvalidInput("Both scores are required.", code="missing_score")
    if team1_score < 0 or team2_score < 0:
        raise InvalidInput("Scores cannot be negative.", code="negative_score")


def _get_match(bracket: TournamentBracket, match_id: str) -> BracketMatch:
    match = bracket.find_match(match_id)
    if match is None:
        raise NotFound(f"Match {match_id} not found in bracket {bracket.id}.", code="bracket_match_not_found")
    return match


def _decide_winner(match: BracketMatch, team1_score: int, team2_score: int) -> Optional[str]:
    if team1_score > team2_score:
        return match.team1.id
    if team2_score > team1_score:
        return match.team2.id
    return None  # draw, flat formats only


def _route(bracket: TournamentBracket, match: BracketMatch) -> List[BracketMatch]:
    winner: BracketTeam = match.team1 if match.winner == match.team1.id else match.team2
    loser: BracketTeam = match.team2 if winner is match.team1 else match.team1
    updated: List[BracketMatch] = []
    if match.next_match_id:
        updated.extend(place_team(bracket, match.next_match_id, match.next_match_slot, winner))
    if match.loser_match_id:
        updated.extend(place_team(bracket, match.loser_match_id, match.loser_match_slot, loser))
    return updated


def _update_progress(bracket: TournamentBracket, match: BracketMatch) -> None:
    if is_elimination(bracket.type) and match.next_match_id is None and match.winner:
        # the single elimination final or the grand final
        if match.bracket == BracketSide.GRAND_FINAL or bracket.grand_final is None:
            bracket.champion = match.winner
            logger.info("Bracket %s decided; champion %s", bracket.id, match.winner)

    open_rounds = [
        r.round for r in bracket.rounds
        if any(m.status != BracketMatchStatus.COMPLETED for m in r.matches)
    ]
    if open_rounds:
        bracket.current_round = min(open_rounds)
    elif bracket.rounds:
        bracket.current_round = bracket.rounds[-1].round


def _bump_versions(matches: List[BracketMatch]) -> List[BracketMatch]:
    for match in matches:
        match.version += 1
    return matches


def _status_value(match: BracketMatch) -> str:
    return BracketMatchStatus(match.status).value
