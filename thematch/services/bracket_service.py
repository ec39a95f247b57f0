"""Bracket construction.

``BracketBuilder.build`` turns an entrant list into the full round/match
skeleton for a tournament type. The slot helpers at the bottom of the module
(``place_team``, ``refresh_match``...) encode how entrants move through that
skeleton and are shared with the progression engine.
"""
from typing import Dict, List, Optional, Sequence, Tuple

from thematch.core.exceptions import InvalidInput
from thematch.core.logging import get_logger
from thematch.models.bracket_model import (
    BracketMatch,
    BracketMatchStatus,
    BracketRound,
    BracketSide,
    BracketTeam,
    TournamentBracket,
)
from thematch.models.tournament_model import Entrant, TournamentType
from thematch.services.seed_service import SeedPlanner

logger = get_logger(__name__)

GRAND_FINAL_ID = "grand-final"


def winners_match_id(round_number: int, position: int) -> str:
    return f"r{round_number}-m{position}"


def losers_match_id(round_number: int, position: int) -> str:
    return f"l{round_number}-m{position}"


class BracketBuilder:

    @staticmethod
    def build(
        entrants: Sequence[Entrant],
        tournament_type: TournamentType,
        total_teams: Optional[int] = None,
        *,
        match_id: str,
        name: Optional[str] = None,
        legs: int = 1,
    ) -> TournamentBracket:
        tournament_type = TournamentType(tournament_type)
        if total_teams is not None:
            if total_teams < 0:
                raise InvalidInput("Team count cannot be negative.", code="negative_team_count")
            if total_teams != len(entrants):
                raise InvalidInput(
                    f"Team count {total_teams} does not match the {len(entrants)} entrants supplied.",
                    code="team_count_mismatch",
                )
        SeedPlanner.validate_entrants(entrants)

        bracket = TournamentBracket(
            name=name or f"{tournament_type.value.replace('_', ' ').title()} Bracket",
            match_id=match_id,
            type=tournament_type,
            total_teams=len(entrants),
        )

        if tournament_type == TournamentType.SINGLE_ELIMINATION:
            bracket.rounds = BracketBuilder._winners_rounds(entrants)
        elif tournament_type == TournamentType.DOUBLE_ELIMINATION:
            bracket.rounds = BracketBuilder._winners_rounds(entrants)
            bracket.losers_rounds, bracket.grand_final = BracketBuilder._losers_rounds(bracket.rounds)
        elif tournament_type in (TournamentType.ROUND_ROBIN, TournamentType.GROUP_STAGE):
            bracket.rounds = [BracketRound(round=1, matches=BracketBuilder._all_pairings(entrants, legs))]
        else:
            # swiss / league pairings are scheduled round by round elsewhere
            bracket.rounds = [BracketRound(round=1, matches=[])]

        BracketBuilder._settle_byes(bracket)
        logger.info(
            "Built %s bracket %s for match %s with %d entrants",
            tournament_type.value, bracket.id, match_id, len(entrants),
        )
        return bracket

    @staticmethod
    def _winners_rounds(entrants: Sequence[Entrant]) -> List[BracketRound]:
        pairings = SeedPlanner.plan(entrants)
        size = len(pairings) * 2
        num_rounds = size.bit_length() - 1

        first_round: List[BracketMatch] = []
        for pairing in pairings:
            match = BracketMatch(
                id=winners_match_id(1, pairing.position),
                round=1,
                position=pairing.position,
                team1=pairing.team1,
                team2=pairing.team2,
            )
            if pairing.is_bye:
                match.is_bye = True
                match.winner = pairing.team1.id
                match.status = BracketMatchStatus.COMPLETED
            else:
                match.status = BracketMatchStatus.PENDING
            first_round.append(match)

        rounds = [BracketRound(round=1, matches=first_round)]
        for round_number in range(2, num_rounds + 1):
            matches = [
                BracketMatch(id=winners_match_id(round_number, k), round=round_number, position=k)
                for k in range(size >> round_number)
            ]
            _link_siblings(rounds[-1].matches, matches)
            rounds.append(BracketRound(round=round_number, matches=matches))
        return rounds

    @staticmethod
    def _losers_rounds(winners: List[BracketRound]) -> Tuple[List[BracketRound], BracketMatch]:
        """Losers bracket plus grand final for a double elimination tree.

        With k winners rounds the losers bracket has 2(k-1) rounds. Odd rounds
        pair siblings; even rounds take the previous losers winner into team1
        and a loser dropping from winners round i+1 into team2.
        """
        grand_final = BracketMatch(
            id=GRAND_FINAL_ID, round=1, position=0, bracket=BracketSide.GRAND_FINAL
        )
        winners_final = winners[-1].matches[0]
        winners_final.next_match_id = grand_final.id
        winners_final.next_match_slot = 1

        k = len(winners)
        if k == 1:
            # two entrants: the loser goes straight to the grand final rematch
            winners_final.loser_match_id = grand_final.id
            winners_final.loser_match_slot = 2
            return [], grand_final

        def new_round(round_number: int, count: int) -> BracketRound:
            return BracketRound(
                round=round_number,
                matches=[
                    BracketMatch(
                        id=losers_match_id(round_number, p),
                        round=round_number,
                        position=p,
                        bracket=BracketSide.LOSERS,
                    )
                    for p in range(count)
                ],
            )

        size = len(winners[0].matches) * 2
        losers: List[BracketRound] = []

        first = new_round(1, size // 4)
        for match in winners[0].matches:
            target = first.matches[match.position // 2]
            match.loser_match_id = target.id
            match.loser_match_slot = 1 if match.position % 2 == 0 else 2
        losers.append(first)

        for i in range(1, k):
            count = size >> (i + 1)
            drop_round = new_round(2 * i, count)
            for match in losers[-1].matches:
                match.next_match_id = drop_round.matches[match.position].id
                match.next_match_slot = 1
            dropping = winners[i].matches
            for match in dropping:
                # reverse every other drop-in so rematches come as late as possible
                index = count - 1 - match.position if (i + 1) % 2 == 0 else match.position
                match.loser_match_id = drop_round.matches[index].id
                match.loser_match_slot = 2
            losers.append(drop_round)

            if i < k - 1:
                merge_round = new_round(2 * i + 1, count // 2)
                _link_siblings(drop_round.matches, merge_round.matches)
                losers.append(merge_round)

        losers_final = losers[-1].matches[0]
        losers_final.next_match_id = grand_final.id
        losers_final.next_match_slot = 2
        return losers, grand_final

    @staticmethod
    def _all_pairings(entrants: Sequence[Entrant], legs: int) -> List[BracketMatch]:
        if legs not in (1, 2):
            raise InvalidInput("Round robin supports one or two legs.", code="invalid_legs")
        teams = [BracketTeam(id=e.id, name=e.name, seed=e.seed) for e in entrants]
        matches: List[BracketMatch] = []
        for leg in range(legs):
            for i in range(len(teams)):
                for j in range(i + 1, len(teams)):
                    home, away = (teams[i], teams[j]) if leg == 0 else (teams[j], teams[i])
                    position = len(matches)
                    matches.append(
                        BracketMatch(
                            id=winners_match_id(1, position),
                            round=1,
                            position=position,
                            team1=home.model_copy(),
                            team2=away.model_copy(),
                            status=BracketMatchStatus.PENDING,
                        )
                    )
        return matches

    @staticmethod
    def _settle_byes(bracket: TournamentBracket) -> None:
        for losers_round in bracket.losers_rounds:
            for match in losers_round.matches:
                refresh_match(bracket, match)
        if not bracket.rounds:
            return
        for match in bracket.rounds[0].matches:
            if match.is_bye and match.next_match_id:
                place_team(bracket, match.next_match_id, match.next_match_slot, match.team1)


def _link_siblings(previous: List[BracketMatch], following: List[BracketMatch]) -> None:
    """Positions 2k and 2k+1 feed position k; the even sibling fills team1."""
    for match in previous:
        match.next_match_id = following[match.position // 2].id
        match.next_match_slot = 1 if match.position % 2 == 0 else 2


def feeders_of(bracket: TournamentBracket, match_id: str) -> Dict[int, Tuple[BracketMatch, str]]:
    """slot -> (source match, "winner" | "loser") for everything routed into match_id."""
    feeders: Dict[int, Tuple[BracketMatch, str]] = {}
    for match in bracket.all_matches():
        if match.next_match_id == match_id:
            feeders[match.next_match_slot] = (match, "winner")
        if match.loser_match_id == match_id:
            feeders[match.loser_match_slot] = (match, "loser")
    return feeders


def slot_is_dead(bracket: TournamentBracket, match: BracketMatch, slot: int) -> bool:
    """True when an empty slot can never be filled."""
    if match.team_in_slot(slot) is not None:
        return False
    feeder = feeders_of(bracket, match.id).get(slot)
    if feeder is None:
        return True
    source, kind = feeder
    if kind == "loser":
        # byes and voided matches never produce a loser
        return source.is_bye
    return source.is_bye and source.winner is None


def place_team(bracket: TournamentBracket, match_id: str, slot: int, team: BracketTeam) -> List[BracketMatch]:
    """Puts team into a slot and returns every match that changed as a result."""
    target = bracket.find_match(match_id)
    target.set_team(slot, BracketTeam(id=team.id, name=team.name, seed=team.seed))
    return unique_matches([target] + refresh_match(bracket, target))


def refresh_match(bracket: TournamentBracket, match: BracketMatch) -> List[BracketMatch]:
    """Applies the automatic transitions of a waiting match.

    Both slots filled -> pending. One slot filled and the other dead -> bye.
    Both slots dead -> void (completed with no teams and no winner).
    """
    if match.status != BracketMatchStatus.WAITING:
        return []
    if match.team1 is not None and match.team2 is not None:
        match.status = BracketMatchStatus.PENDING
        return [match]

    present = match.team1 or match.team2
    if present is None:
        if not (slot_is_dead(bracket, match, 1) and slot_is_dead(bracket, match, 2)):
            return []
        match.is_bye = True
        match.status = BracketMatchStatus.COMPLETED
        changed = [match]
        if match.next_match_id:
            downstream = bracket.find_match(match.next_match_id)
            changed.extend(refresh_match(bracket, downstream))
        return changed

    missing_slot = 2 if match.team1 is not None else 1
    if not slot_is_dead(bracket, match, missing_slot):
        return []
    match.is_bye = True
    match.winner = present.id
    match.status = BracketMatchStatus.COMPLETED
    changed = [match]
    if match.next_match_id:
        changed.extend(place_team(bracket, match.next_match_id, match.next_match_slot, present))
    return changed


def unique_matches(matches: List[BracketMatch]) -> List[BracketMatch]:
    seen = set()
    result = []
    for match in matches:
        if match.id not in seen:
            seen.add(match.id)
            result.append(match)
    return result
