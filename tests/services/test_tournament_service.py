from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from thematch.core.database import Database
from thematch.core.exceptions import (
    ConcurrentConflict,
    InvalidInput,
    NotFound,
    PermissionDenied,
    StructuralConflict,
)
from thematch.models.tournament_model import Actor, ActorRole, Entrant, Match, MatchStatus, TournamentType
from thematch.services.store_service import ResilientStore
from thematch.services.tournament_service import TournamentService

NOW = datetime(2024, 1, 5, tzinfo=timezone.utc)

ORGANIZER = Actor(id="organizer-1")
ADMIN = Actor(id="admin-1", role=ActorRole.ADMIN)
STRANGER = Actor(id="someone-else")


@pytest.fixture
def store():
    database = Database("sqlite://")
    database.create_all()
    yield ResilientStore(database, backoff_seconds=0)
    database.dispose()


@pytest.fixture
def service(store):
    return TournamentService(store, clock=lambda: NOW)


def register_match(store, count=4, **overrides):
    data = dict(
        id="match-1",
        title="Spring Cup",
        type=TournamentType.SINGLE_ELIMINATION,
        creator_id=ORGANIZER.id,
        registration_start=datetime(2024, 1, 1, tzinfo=timezone.utc),
        registration_deadline=datetime(2024, 1, 10, tzinfo=timezone.utc),
        start_date=datetime(2024, 1, 12, tzinfo=timezone.utc),
    )
    data.update(overrides)
    match = Match(**data)
    entrants = [Entrant(id=f"e{i}", name=f"Team {i}", seed=i) for i in range(1, count + 1)]
    store.save_match(match, entrants)
    return match


class TestMatchStatus:

    def test_get_match_status(self, store, service):
        register_match(store)
        assert service.get_match_status("match-1") == {
            "status": "registration",
            "label": "Registration open",
            "color": "green",
        }

    def test_refresh_writes_cached_status(self, store, service):
        register_match(store)
        assert service.refresh_status("match-1", ORGANIZER) == MatchStatus.REGISTRATION
        assert store.get_match("match-1").status == MatchStatus.REGISTRATION

    def test_stranger_cannot_refresh(self, store, service):
        register_match(store)
        with pytest.raises(PermissionDenied):
            service.refresh_status("match-1", STRANGER)
        assert store.get_match("match-1").status == MatchStatus.DRAFT

    def test_unknown_match(self, service):
        with pytest.raises(NotFound):
            service.get_match_status("missing")


class TestChangeStatus:

    def test_open_registration_from_draft(self, store, service):
        register_match(store, registration_start=None, start_date=None)
        updated = service.change_status("match-1", MatchStatus.REGISTRATION, ORGANIZER)
        assert updated.status == MatchStatus.REGISTRATION
        assert store.get_match("match-1").registration_start == NOW
        assert service.get_match_status("match-1")["status"] == "registration"

    def test_registration_needs_deadline(self, store, service):
        register_match(store, registration_start=None, registration_deadline=None, start_date=None)
        with pytest.raises(StructuralConflict) as excinfo:
            service.change_status("match-1", MatchStatus.REGISTRATION, ORGANIZER)
        assert excinfo.value.code == "missing_deadline"

    def test_start_sets_start_date(self, store, service):
        register_match(store)
        service.change_status("match-1", MatchStatus.IN_PROGRESS, ORGANIZER)
        stored = store.get_match("match-1")
        assert stored.status == MatchStatus.IN_PROGRESS
        assert stored.start_date == NOW
        assert service.get_match_status("match-1")["status"] == "in_progress"

    def test_start_needs_two_entrants(self, store, service):
        register_match(store, count=1)
        with pytest.raises(StructuralConflict) as excinfo:
            service.change_status("match-1", MatchStatus.IN_PROGRESS, ORGANIZER)
        assert excinfo.value.code == "too_few_entrants"

    def test_complete_sets_end_date(self, store, service):
        register_match(store, start_date=datetime(2024, 1, 2, tzinfo=timezone.utc))
        service.change_status("match-1", MatchStatus.COMPLETED, ADMIN)
        stored = store.get_match("match-1")
        assert stored.status == MatchStatus.COMPLETED
        assert stored.end_date == NOW

        later = TournamentService(store, clock=lambda: NOW + timedelta(minutes=1))
        assert later.get_match_status("match-1")["status"] == "completed"

    def test_cancel_keeps_reason_and_sticks(self, store, service):
        register_match(store)
        service.change_status("match-1", MatchStatus.CANCELLED, ORGANIZER, reason="Venue flooded")
        stored = store.get_match("match-1")
        assert stored.status == MatchStatus.CANCELLED
        assert stored.cancellation_reason == "Venue flooded"
        assert service.get_match_status("match-1")["status"] == "cancelled"

        with pytest.raises(StructuralConflict) as excinfo:
            service.change_status("match-1", MatchStatus.REGISTRATION, ORGANIZER)
        assert excinfo.value.code == "invalid_transition"

    def test_cannot_skip_a_step(self, store, service):
        register_match(store)
        with pytest.raises(StructuralConflict) as excinfo:
            service.change_status("match-1", MatchStatus.COMPLETED, ORGANIZER)
        assert excinfo.value.code == "invalid_transition"

    def test_unknown_status(self, store, service):
        register_match(store)
        with pytest.raises(InvalidInput) as excinfo:
            service.change_status("match-1", "postponed", ORGANIZER)
        assert excinfo.value.code == "invalid_status"

    def test_stranger_cannot_change_status(self, store, service):
        register_match(store)
        with pytest.raises(PermissionDenied):
            service.change_status("match-1", MatchStatus.CANCELLED, STRANGER)


class TestCreateBracket:

    def test_uses_registered_entrants(self, store, service):
        register_match(store, count=5)
        bracket = service.create_bracket("match-1", ORGANIZER)
        assert bracket.total_teams == 5
        assert service.get_bracket("match-1").model_dump(mode="json") == bracket.model_dump(mode="json")

    def test_explicit_entrants(self, store, service):
        register_match(store)
        entrants = [Entrant(id="x", name="X"), Entrant(id="y", name="Y")]
        bracket = service.create_bracket("match-1", ADMIN, entrants=entrants, name="Exhibition")
        assert bracket.name == "Exhibition"
        assert bracket.total_teams == 2

    def test_stranger_cannot_build(self, store, service):
        register_match(store)
        with pytest.raises(PermissionDenied):
            service.create_bracket("match-1", STRANGER)

    def test_locked_once_play_started(self, store, service):
        register_match(store, start_date=datetime(2024, 1, 2, tzinfo=timezone.utc))
        with pytest.raises(StructuralConflict) as excinfo:
            service.create_bracket("match-1", ORGANIZER)
        assert excinfo.value.code == "bracket_locked"

    def test_locked_when_cancelled(self, store, service):
        register_match(store, status=MatchStatus.CANCELLED)
        with pytest.raises(StructuralConflict) as excinfo:
            service.create_bracket("match-1", ORGANIZER)
        assert excinfo.value.code == "bracket_locked"

    def test_no_bracket_yet(self, store, service):
        register_match(store)
        with pytest.raises(NotFound) as excinfo:
            service.get_bracket("match-1")
        assert excinfo.value.code == "bracket_not_found"


class TestProgression:

    def test_result_is_persisted(self, store, service):
        register_match(store)
        bracket = service.create_bracket("match-1", ORGANIZER)
        service.record_result(bracket.id, "r1-m0", 3, 1, ORGANIZER)
        final = store.load_bracket(bracket.id).find_match("r2-m0")
        assert final.team1.id == "e1"

    def test_stranger_cannot_record(self, store, service):
        register_match(store)
        bracket = service.create_bracket("match-1", ORGANIZER)
        with pytest.raises(PermissionDenied):
            service.record_result(bracket.id, "r1-m0", 3, 1, STRANGER)

    def test_repeat_submission_is_a_no_op(self, store, service):
        register_match(store)
        bracket = service.create_bracket("match-1", ORGANIZER)
        service.record_result(bracket.id, "r1-m0", 3, 1, ORGANIZER)
        result = service.record_result(bracket.id, "r1-m0", 3, 1, ADMIN)
        assert not result.changed
        assert store.load_bracket(bracket.id).find_match("r1-m0").version == 2

    def test_lost_race_with_same_result_becomes_no_op(self, store, service):
        register_match(store)
        bracket = service.create_bracket("match-1", ORGANIZER)
        stale = store.load_bracket(bracket.id)
        service.record_result(bracket.id, "r1-m0", 3, 1, ORGANIZER)
        fresh = store.load_bracket(bracket.id)

        with patch.object(store, "load_bracket", side_effect=[stale, fresh]):
            result = service.record_result(bracket.id, "r1-m0", 3, 1, ORGANIZER)
        assert not result.changed

    def test_lost_race_with_other_winner_conflicts(self, store, service):
        register_match(store)
        bracket = service.create_bracket("match-1", ORGANIZER)
        stale = store.load_bracket(bracket.id)
        service.record_result(bracket.id, "r1-m0", 3, 1, ORGANIZER)
        fresh = store.load_bracket(bracket.id)

        with patch.object(store, "load_bracket", side_effect=[stale, fresh]):
            with pytest.raises(ConcurrentConflict) as excinfo:
                service.record_result(bracket.id, "r1-m0", 1, 3, ORGANIZER)
        assert excinfo.value.code == "winner_conflict"

    def test_start_and_live_score(self, store, service):
        register_match(store)
        bracket = service.create_bracket("match-1", ORGANIZER)
        service.start_match(bracket.id, "r1-m0", ORGANIZER)
        service.update_live_score(bracket.id, "r1-m0", 2, 1, ORGANIZER)
        match = store.load_bracket(bracket.id).find_match("r1-m0")
        assert match.status == "in_progress"
        assert (match.team1.score, match.team2.score) == (2, 1)
        assert match.version == 3

    def test_standings_for_round_robin(self, store, service):
        register_match(store, count=3, type=TournamentType.ROUND_ROBIN)
        bracket = service.create_bracket("match-1", ORGANIZER)
        service.record_result(bracket.id, "r1-m0", 1, 1, ORGANIZER)
        standings = service.get_standings(bracket.id)
        assert [s.points for s in standings] == [1, 1, 0]
