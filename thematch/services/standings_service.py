from typing import Dict, List

from thematch.core.exceptions import StructuralConflict
from thematch.models.bracket_model import BracketMatchStatus, Standing, TournamentBracket
from thematch.models.tournament_model import is_elimination

POINTS_FOR_WIN = 3
POINTS_FOR_DRAW = 1


def compute_standings(bracket: TournamentBracket) -> List[Standing]:
    """League table for flat formats, built from completed matches only.

    Sorted by points, point difference, points scored, then name.
    """
    if is_elimination(bracket.type):
        raise StructuralConflict("Standings are only kept for league-style formats.", code="no_standings")

    table: Dict[str, Standing] = {}
    for match in bracket.all_matches():
        for team in (match.team1, match.team2):
            if team is not None and team.id not in table:
                table[team.id] = Standing(entrant_id=team.id, name=team.name)

        if match.status != BracketMatchStatus.COMPLETED or match.team1 is None or match.team2 is None:
            continue
        if match.team1_score is None or match.team2_score is None:
            continue

        home, away = table[match.team1.id], table[match.team2.id]
        for row, scored, conceded in ((home, match.team1_score, match.team2_score),
                                      (away, match.team2_score, match.team1_score)):
            row.played += 1
            row.points_for += scored
            row.points_against += conceded
            row.point_diff = row.points_for - row.points_against

        if match.winner is None:
            home.drawn += 1
            away.drawn += 1
            home.points += POINTS_FOR_DRAW
            away.points += POINTS_FOR_DRAW
        elif match.winner == match.team1.id:
            home.won += 1
            away.lost += 1
            home.points += POINTS_FOR_WIN
        else:
            away.won += 1
            home.lost += 1
            away.points += POINTS_FOR_WIN

    standings = sorted(table.values(), key=lambda s: (-s.points, -s.point_diff, -s.points_for, s.name))
    for position, row in enumerate(standings, start=1):
        row.position = position
    return standings
