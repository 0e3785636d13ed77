"""
Notification Dispatcher Tests
=============================

Pure mapping from a domain event to (recipient, title, body, metadata).
"""

import pytest

from cera.models.events import DomainEvent, EventKind
from cera.services.notification_dispatcher import NotificationDispatcher

COORDINATORS = ["coord-1", "coord-2"]


@pytest.fixture
def dispatcher():
    return NotificationDispatcher()


def _event(kind: EventKind, **kwargs) -> DomainEvent:
    data = {
        "kind": kind,
        "incident_id": "inc-1",
        "actor_id": "vol-1",
        "actor_name": "Sam",
        "incident_type": "fire",
        "location_name": "MG Road",
    }
    data.update(kwargs)
    return DomainEvent(**data)


class TestAudience:

    def test_incident_created_goes_to_every_coordinator(self, dispatcher):
        requests = dispatcher.build(_event(EventKind.INCIDENT_CREATED, actor_name="Riley"), COORDINATORS)

        assert [r.recipient_id for r in requests] == COORDINATORS
        assert requests[0].title == "New Incident Reported"
        assert requests[0].body == "Riley reported a new fire incident."
        assert requests[0].metadata["incident_id"] == "inc-1"

    def test_dispatch_goes_only_to_new_volunteers(self, dispatcher):
        event = _event(EventKind.VOLUNTEERS_DISPATCHED, actor_id="coord-1", volunteer_ids=["vol-2", "vol-3"])

        requests = dispatcher.build(event, COORDINATORS)

        assert [r.recipient_id for r in requests] == ["vol-2", "vol-3"]
        assert requests[0].title == "New Task Assigned"
        assert requests[0].body == "You have been assigned to handle incident: fire"

    @pytest.mark.parametrize("kind,title,body", [
        (EventKind.VOLUNTEER_ACCEPTED, "Volunteer Accepted Task", 'Sam accepted "fire" incident.'),
        (EventKind.VOLUNTEER_DECLINED, "Volunteer Declined Task", 'Sam declined "fire" incident.'),
        (EventKind.TASK_COMPLETED, "Task Completed", 'Sam completed "fire" incident.'),
    ])
    def test_volunteer_responses_go_to_coordinators(self, dispatcher, kind, title, body):
        requests = dispatcher.build(_event(kind), COORDINATORS)

        assert [r.recipient_id for r in requests] == COORDINATORS
        assert {r.title for r in requests} == {title}
        assert {r.body for r in requests} == {body}

    def test_duplicate_coordinators_collapse(self, dispatcher):
        requests = dispatcher.build(_event(EventKind.TASK_COMPLETED), ["coord-1", "coord-1"])
        assert len(requests) == 1

    def test_no_coordinators_no_requests(self, dispatcher):
        assert dispatcher.build(_event(EventKind.VOLUNTEER_ACCEPTED), []) == []


class TestContactCoordinators:

    def test_with_message(self, dispatcher):
        event = _event(EventKind.COORDINATORS_CONTACTED, message="Need a ladder")

        request = dispatcher.build(event, ["coord-1"])[0]

        assert request.title == "Volunteer Needs Assistance"
        assert request.body == "Need a ladder (Incident: fire at MG Road)"

    def test_without_message(self, dispatcher):
        request = dispatcher.build(_event(EventKind.COORDINATORS_CONTACTED), ["coord-1"])[0]
        assert request.body == "A volunteer requested guidance for incident: fire at MG Road."

    def test_unknown_location(self, dispatcher):
        request = dispatcher.build(_event(EventKind.COORDINATORS_CONTACTED, location_name=None), ["coord-1"])[0]
        assert request.body.endswith("at Unknown Location.")


class TestVolunteerRegistered:

    def test_goes_to_coordinators_with_user_metadata(self, dispatcher):
        event = DomainEvent(kind=EventKind.VOLUNTEER_REGISTERED, user_id="vol-new", actor_name="Kim")

        requests = dispatcher.build(event, COORDINATORS)

        assert [r.recipient_id for r in requests] == COORDINATORS
        assert requests[0].title == "New Volunteer Request"
        assert requests[0].body == "Kim has requested approval to join as a volunteer."
        assert requests[0].metadata == {"event": "volunteer_registered", "user_id": "vol-new"}
        assert "incident_id" not in requests[0].metadata
