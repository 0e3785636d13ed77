"""
Assignment Ledger Tests
=======================

Per-volunteer sub-state machine embedded in an incident:
1. A volunteer appears at most once per incident
2. Response transitions follow the closed table
3. Declined entries can be re-opened by a new dispatch, in place
"""

import pytest

from cera.core.errors import ConflictError, NotFoundError
from cera.models.incident import AssignmentStatus, GeoPoint, Incident, IncidentType
from cera.services.assignment_ledger import AssignmentLedger


@pytest.fixture
def incident() -> Incident:
    return Incident(
        id="inc-1",
        reporter="res-1",
        type=IncidentType.FLOOD,
        location=GeoPoint(longitude=77.6, latitude=12.9),
    )


@pytest.fixture
def stored_incident(incident_repo, incident) -> Incident:
    return incident_repo.create(incident)


class TestTransitionTable:

    @pytest.mark.parametrize("from_status,to_status", [
        ("pending", "accepted"),
        ("pending", "declined"),
        ("accepted", "in_progress"),
        ("in_progress", "completed"),
    ])
    def test_legal_transitions(self, from_status, to_status):
        assert AssignmentLedger.is_valid_transition(from_status, to_status)

    @pytest.mark.parametrize("from_status,to_status", [
        ("pending", "completed"),
        ("pending", "in_progress"),
        ("accepted", "declined"),
        ("declined", "accepted"),
        ("completed", "in_progress"),
        ("accepted", "accepted"),
    ])
    def test_illegal_transitions(self, from_status, to_status):
        assert not AssignmentLedger.is_valid_transition(from_status, to_status)

    def test_unknown_status_is_never_valid(self):
        assert not AssignmentLedger.is_valid_transition("pending", "resolved")
        assert AssignmentLedger.get_allowed_transitions("bogus") == []

    def test_terminal_states_have_no_exits(self):
        assert AssignmentLedger.get_allowed_transitions("declined") == []
        assert AssignmentLedger.get_allowed_transitions("completed") == []


class TestAddEntries:

    def test_adds_pending_entries_in_request_order(self, incident):
        added = AssignmentLedger.add_entries(incident, ["vol-1", "vol-2"], "coord-1", names={"vol-1": "Sam"})

        assert [e.volunteer for e in added] == ["vol-1", "vol-2"]
        assert all(e.status == AssignmentStatus.PENDING for e in incident.assigned_volunteers)
        assert incident.assigned_volunteers[0].volunteer_name == "Sam"
        assert incident.assigned_volunteers[0].assigned_by == "coord-1"

    def test_duplicates_in_one_request_collapse(self, incident):
        added = AssignmentLedger.add_entries(incident, ["vol-1", "vol-1", "vol-1"], "coord-1")

        assert len(added) == 1
        assert len(incident.assigned_volunteers) == 1

    def test_live_entries_are_skipped(self, incident):
        AssignmentLedger.add_entries(incident, ["vol-1"], "coord-1")
        AssignmentLedger.apply_response(incident, "vol-1", AssignmentStatus.ACCEPTED)

        added = AssignmentLedger.add_entries(incident, ["vol-1", "vol-2"], "coord-1")

        assert [e.volunteer for e in added] == ["vol-2"]
        assert incident.find_assignment("vol-1").status == AssignmentStatus.ACCEPTED

    def test_declined_entry_is_reopened_in_place(self, incident):
        AssignmentLedger.add_entries(incident, ["vol-1", "vol-2"], "coord-1")
        AssignmentLedger.apply_response(incident, "vol-1", AssignmentStatus.DECLINED)

        added = AssignmentLedger.add_entries(incident, ["vol-1"], "coord-2")

        assert [e.volunteer for e in added] == ["vol-1"]
        volunteers = [e.volunteer for e in incident.assigned_volunteers]
        assert volunteers == ["vol-1", "vol-2"]
        reopened = incident.assigned_volunteers[0]
        assert reopened.status == AssignmentStatus.PENDING
        assert reopened.assigned_by == "coord-2"
        assert reopened.responded_at is None


class TestApplyResponse:

    def test_sets_status_and_responded_at(self, incident):
        AssignmentLedger.add_entries(incident, ["vol-1"], "coord-1")

        entry = AssignmentLedger.apply_response(incident, "vol-1", AssignmentStatus.ACCEPTED)

        assert entry.status == AssignmentStatus.ACCEPTED
        assert entry.responded_at is not None

    def test_illegal_response_is_conflict(self, incident):
        AssignmentLedger.add_entries(incident, ["vol-1"], "coord-1")

        with pytest.raises(ConflictError):
            AssignmentLedger.apply_response(incident, "vol-1", AssignmentStatus.COMPLETED)
        assert incident.find_assignment("vol-1").status == AssignmentStatus.PENDING

    def test_non_member_is_not_found(self, incident):
        with pytest.raises(NotFoundError):
            AssignmentLedger.apply_response(incident, "stranger", AssignmentStatus.ACCEPTED)
        assert incident.assigned_volunteers == []


class TestEveryDeclined:

    def test_empty_list_is_not_all_declined(self, incident):
        assert not AssignmentLedger.every_declined(incident)

    def test_mixed_is_not_all_declined(self, incident):
        AssignmentLedger.add_entries(incident, ["vol-1", "vol-2"], "coord-1")
        AssignmentLedger.apply_response(incident, "vol-1", AssignmentStatus.DECLINED)
        assert not AssignmentLedger.every_declined(incident)

    def test_all_declined(self, incident):
        AssignmentLedger.add_entries(incident, ["vol-1", "vol-2"], "coord-1")
        AssignmentLedger.apply_response(incident, "vol-1", AssignmentStatus.DECLINED)
        AssignmentLedger.apply_response(incident, "vol-2", AssignmentStatus.DECLINED)
        assert AssignmentLedger.every_declined(incident)


class TestStoredIncidentOperations:

    def test_add_and_list(self, incident_repo, stored_incident):
        ledger = AssignmentLedger(incident_repo)

        ledger.add_assignments(stored_incident.id, ["vol-1", "vol-2"], "coord-1")
        ledger.add_assignments(stored_incident.id, ["vol-2"], "coord-1")

        assert [e.volunteer for e in ledger.list_assignments(stored_incident.id)] == ["vol-1", "vol-2"]

    def test_record_response_persists(self, incident_repo, stored_incident):
        ledger = AssignmentLedger(incident_repo)
        ledger.add_assignments(stored_incident.id, ["vol-1"], "coord-1")

        ledger.record_response(stored_incident.id, "vol-1", AssignmentStatus.DECLINED)

        assert incident_repo.get(stored_incident.id).find_assignment("vol-1").status == AssignmentStatus.DECLINED
        assert ledger.all_declined(stored_incident.id)

    def test_failed_response_leaves_store_untouched(self, incident_repo, stored_incident):
        ledger = AssignmentLedger(incident_repo)
        ledger.add_assignments(stored_incident.id, ["vol-1"], "coord-1")

        with pytest.raises(ConflictError):
            ledger.record_response(stored_incident.id, "vol-1", AssignmentStatus.IN_PROGRESS)

        assert incident_repo.get(stored_incident.id).find_assignment("vol-1").status == AssignmentStatus.PENDING

    def test_unknown_incident_is_not_found(self, incident_repo):
        ledger = AssignmentLedger(incident_repo)
        with pytest.raises(NotFoundError):
            ledger.list_assignments("missing")
        with pytest.raises(NotFoundError):
            ledger.add_assignments("missing", ["vol-1"], "coord-1")
