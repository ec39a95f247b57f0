import pytest

from thematch.core.exceptions import InvalidInput
from thematch.models.bracket_model import BracketMatchStatus, BracketSide
from thematch.models.tournament_model import Entrant, TournamentType
from thematch.services.bracket_service import GRAND_FINAL_ID, BracketBuilder


def make_entrants(count):
    return [Entrant(id=f"e{i}", name=f"Team {i}", seed=i) for i in range(1, count + 1)]


def build(count, tournament_type=TournamentType.SINGLE_ELIMINATION, **kwargs):
    return BracketBuilder.build(make_entrants(count), tournament_type, match_id="match-1", **kwargs)


class TestSingleElimination:

    def test_five_entrants_shape(self):
        bracket = build(5)
        assert [len(r.matches) for r in bracket.rounds] == [4, 2, 1]
        assert bracket.total_teams == 5
        assert bracket.losers_rounds == []
        assert bracket.grand_final is None

    def test_five_entrants_byes_to_top_seeds(self):
        bracket = build(5)
        first = bracket.rounds[0].matches
        byes = [m for m in first if m.is_bye]
        assert sorted(m.team1.seed for m in byes) == [1, 2, 3]
        for match in byes:
            assert match.status == BracketMatchStatus.COMPLETED
            assert match.winner == match.team1.id
            assert match.team2 is None

        played = [m for m in first if not m.is_bye]
        assert len(played) == 1
        assert played[0].status == BracketMatchStatus.PENDING

    def test_bye_winners_are_already_advanced(self):
        bracket = build(5)
        top, bottom = bracket.rounds[1].matches
        # seed 1 waits for the 4 v 5 winner
        assert top.team1.id == "e1"
        assert top.team2 is None
        assert top.status == BracketMatchStatus.WAITING
        # seeds 2 and 3 both had byes
        assert {bottom.team1.id, bottom.team2.id} == {"e2", "e3"}
        assert bottom.status == BracketMatchStatus.PENDING

    @pytest.mark.parametrize("count", [2, 4, 7, 13, 16])
    def test_sibling_feeding(self, count):
        bracket = build(count)
        for previous, following in zip(bracket.rounds, bracket.rounds[1:]):
            for match in previous.matches:
                assert match.next_match_id == following.matches[match.position // 2].id
                assert match.next_match_slot == (1 if match.position % 2 == 0 else 2)

    def test_final_has_no_next_match(self):
        bracket = build(8)
        final = bracket.rounds[-1].matches[0]
        assert final.next_match_id is None
        assert final.next_match_slot is None

    def test_full_bracket_has_no_byes(self):
        bracket = build(8)
        assert all(m.status == BracketMatchStatus.PENDING for m in bracket.rounds[0].matches)
        assert all(m.status == BracketMatchStatus.WAITING for r in bracket.rounds[1:] for m in r.matches)
        assert not any(m.is_bye for m in bracket.all_matches())

    def test_match_ids_are_unique(self):
        bracket = build(16, TournamentType.DOUBLE_ELIMINATION)
        ids = [m.id for m in bracket.all_matches()]
        assert len(ids) == len(set(ids))

    def test_default_name(self):
        assert build(4).name == "Single Elimination Bracket"
        assert build(4, name="Spring Cup").name == "Spring Cup"


class TestBuildValidation:

    def test_team_count_must_match(self):
        with pytest.raises(InvalidInput) as excinfo:
            build(4, total_teams=6)
        assert excinfo.value.code == "team_count_mismatch"

    def test_negative_team_count(self):
        with pytest.raises(InvalidInput) as excinfo:
            build(4, total_teams=-1)
        assert excinfo.value.code == "negative_team_count"

    def test_single_entrant(self):
        with pytest.raises(InvalidInput) as excinfo:
            build(1)
        assert excinfo.value.code == "too_few_entrants"


class TestFlatFormats:

    def test_round_robin_pairs_everyone_once(self):
        bracket = build(4, TournamentType.ROUND_ROBIN)
        matches = bracket.rounds[0].matches
        assert len(matches) == 6
        pairs = {frozenset((m.team1.id, m.team2.id)) for m in matches}
        assert len(pairs) == 6
        assert all(m.status == BracketMatchStatus.PENDING for m in matches)
        assert all(m.next_match_id is None for m in matches)

    def test_round_robin_two_legs_swaps_home_side(self):
        bracket = build(3, TournamentType.ROUND_ROBIN, legs=2)
        matches = bracket.rounds[0].matches
        assert len(matches) == 6
        first_leg = [(m.team1.id, m.team2.id) for m in matches[:3]]
        second_leg = [(m.team2.id, m.team1.id) for m in matches[3:]]
        assert first_leg == second_leg

    def test_round_robin_rejects_three_legs(self):
        with pytest.raises(InvalidInput) as excinfo:
            build(4, TournamentType.ROUND_ROBIN, legs=3)
        assert excinfo.value.code == "invalid_legs"

    def test_group_stage_is_one_group(self):
        assert len(build(5, TournamentType.GROUP_STAGE).rounds[0].matches) == 10

    @pytest.mark.parametrize("tournament_type", [TournamentType.SWISS, TournamentType.LEAGUE])
    def test_swiss_and_league_start_empty(self, tournament_type):
        bracket = build(6, tournament_type)
        assert len(bracket.rounds) == 1
        assert bracket.rounds[0].matches == []


class TestDoubleElimination:

    def test_eight_entrants_shape(self):
        bracket = build(8, TournamentType.DOUBLE_ELIMINATION)
        assert [len(r.matches) for r in bracket.rounds] == [4, 2, 1]
        assert [len(r.matches) for r in bracket.losers_rounds] == [2, 2, 1, 1]
        assert all(m.bracket == BracketSide.LOSERS for r in bracket.losers_rounds for m in r.matches)
        assert bracket.grand_final.id == GRAND_FINAL_ID

    def test_first_round_losers_pair_by_sibling(self):
        bracket = build(8, TournamentType.DOUBLE_ELIMINATION)
        for match in bracket.rounds[0].matches:
            assert match.loser_match_id == bracket.losers_rounds[0].matches[match.position // 2].id
            assert match.loser_match_slot == (1 if match.position % 2 == 0 else 2)

    def test_later_winners_losers_drop_into_team2(self):
        bracket = build(8, TournamentType.DOUBLE_ELIMINATION)
        drop_round = bracket.losers_rounds[1]
        targets = sorted(m.loser_match_id for m in bracket.rounds[1].matches)
        assert targets == sorted(m.id for m in drop_round.matches)
        assert all(m.loser_match_slot == 2 for m in bracket.rounds[1].matches)

    def test_finals_feed_grand_final(self):
        bracket = build(8, TournamentType.DOUBLE_ELIMINATION)
        winners_final = bracket.rounds[-1].matches[0]
        losers_final = bracket.losers_rounds[-1].matches[0]
        assert (winners_final.next_match_id, winners_final.next_match_slot) == (GRAND_FINAL_ID, 1)
        assert (losers_final.next_match_id, losers_final.next_match_slot) == (GRAND_FINAL_ID, 2)
        assert bracket.grand_final.next_match_id is None

    def test_two_entrants_loser_goes_to_grand_final(self):
        bracket = build(2, TournamentType.DOUBLE_ELIMINATION)
        only = bracket.rounds[0].matches[0]
        assert bracket.losers_rounds == []
        assert (only.next_match_id, only.next_match_slot) == (GRAND_FINAL_ID, 1)
        assert (only.loser_match_id, only.loser_match_slot) == (GRAND_FINAL_ID, 2)

    def test_five_entrants_void_losers_match(self):
        bracket = build(5, TournamentType.DOUBLE_ELIMINATION)
        top, bottom = bracket.losers_rounds[0].matches
        # W1 positions 2 and 3 are both byes, so nobody can drop into this one
        assert bottom.is_bye
        assert bottom.status == BracketMatchStatus.COMPLETED
        assert bottom.team1 is None and bottom.team2 is None
        assert bottom.winner is None
        # position 1 (4 v 5) still produces a loser
        assert top.status == BracketMatchStatus.WAITING
        assert not top.is_bye
