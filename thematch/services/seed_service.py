"""Seeding and round-1 pairing for elimination brackets."""
from typing import List, Sequence

from thematch.core.exceptions import InvalidInput
from thematch.models.bracket_model import BracketTeam, Pairing
from thematch.models.tournament_model import Entrant


class SeedPlanner:
    MIN_ENTRANTS = 2

    @staticmethod
    def bracket_size(entrant_count: int) -> int:
        """Next power of two that can hold every entrant."""
        size = 1
        while size < entrant_count:
            size *= 2
        return size

    @staticmethod
    def seed_order(size: int) -> List[int]:
        """Seeds in slot order, e.g. 8 -> [1, 8, 4, 5, 2, 7, 3, 6].

        Adjacent slots play each other in round 1; seeds 1 and 2 land in
        opposite halves, 1-4 in different quarters, and so on.
        """
        order = [1]
        while len(order) < size:
            mirror = len(order) * 2 + 1
            order = [s for seed in order for s in (seed, mirror - seed)]
        return order

    @staticmethod
    def validate_entrants(entrants: Sequence[Entrant]) -> None:
        if len(entrants) < SeedPlanner.MIN_ENTRANTS:
            raise InvalidInput(
                f"At least {SeedPlanner.MIN_ENTRANTS} entrants are required, got {len(entrants)}.",
                code="too_few_entrants",
            )
        seen = set()
        for entrant in entrants:
            if entrant.id in seen:
                raise InvalidInput(f"Entrant {entrant.id} is listed more than once.", code="duplicate_entrant")
            seen.add(entrant.id)

    @staticmethod
    def assign_seeds(entrants: Sequence[Entrant]) -> List[Entrant]:
        """Orders entrants strongest first and renumbers their seeds 1..N.

        Seeded entrants come first by seed (ties keep list order), unseeded
        entrants follow in list order.
        """
        indexed = list(enumerate(entrants))
        seeded = sorted((pair for pair in indexed if pair[1].seed is not None), key=lambda p: (p[1].seed, p[0]))
        unseeded = [pair for pair in indexed if pair[1].seed is None]
        ordered = [entrant for _, entrant in seeded + unseeded]
        return [Entrant(id=e.id, name=e.name, seed=i + 1) for i, e in enumerate(ordered)]

    @staticmethod
    def plan(entrants: Sequence[Entrant]) -> List[Pairing]:
        SeedPlanner.validate_entrants(entrants)
        seeded = SeedPlanner.assign_seeds(entrants)
        size = SeedPlanner.bracket_size(len(seeded))
        by_seed = {e.seed: e for e in seeded}
        order = SeedPlanner.seed_order(size)

        pairings: List[Pairing] = []
        for position in range(size // 2):
            high, low = order[2 * position], order[2 * position + 1]
            # seeds beyond N do not exist; the strong seed opposite them gets a bye
            team1 = _as_team(by_seed[high])
            team2 = _as_team(by_seed[low]) if low in by_seed else None
            pairings.append(Pairing(position=position, team1=team1, team2=team2))
        return pairings


def _as_team(entrant: Entrant) -> BracketTeam:
    return BracketTeam(id=entrant.id, name=entrant.name, seed=entrant.seed)
