"""
Notification Service Tests
==========================

1. Every delivery is persisted and pushed to each registered token
2. One failing recipient never blocks the others
3. publish never raises
4. Only the recipient can mark a notification read
"""

import pytest

from cera.core.errors import NotFoundError
from cera.models.events import DomainEvent, EventKind
from cera.repositories.memory_repository import InMemoryNotificationRepository
from cera.services.notification_service import NotificationService

from conftest import RecordingPushProvider


class FlakyNotificationRepository(InMemoryNotificationRepository):
    """Fails to store notifications for one user."""

    def __init__(self, failing_user: str):
        super().__init__()
        self.failing_user = failing_user

    def add(self, notification):
        if notification.user == self.failing_user:
            raise RuntimeError("write failed")
        return super().add(notification)


def _created_event() -> DomainEvent:
    return DomainEvent(
        kind=EventKind.INCIDENT_CREATED,
        incident_id="inc-1",
        actor_id="res-1",
        actor_name="Riley",
        incident_type="flood",
        location_name="Lake Road",
    )


class TestDeliver:

    def test_persists_and_pushes(self, notification_service, notification_repo, push, coordinator):
        note = notification_service.deliver(coordinator.id, "Hello", "Body", {"incident_id": "inc-1"})

        assert note.id
        assert notification_repo.list_for_user(coordinator.id)[0].title == "Hello"
        assert push.sent == [{
            "token": "ExponentPushToken[dana]",
            "title": "Hello",
            "body": "Body",
            "data": {"incident_id": "inc-1"},
        }]

    def test_user_without_tokens_still_gets_inbox_entry(self, notification_service, notification_repo, push, coordinator2):
        notification_service.deliver(coordinator2.id, "Hello", "Body")

        assert len(notification_repo.list_for_user(coordinator2.id)) == 1
        assert push.sent == []

    def test_unknown_user(self, notification_service):
        assert notification_service.deliver("ghost", "Hello", "Body") is None


class TestPublish:

    def test_fans_out_to_all_coordinators(self, notification_service, notification_repo, coordinator, coordinator2, volunteer):
        delivered = notification_service.publish([_created_event()])

        assert delivered == 2
        for user in (coordinator, coordinator2):
            notes = notification_repo.list_for_user(user.id)
            assert [n.title for n in notes] == ["New Incident Reported"]
            assert notes[0].body == "Riley reported a new flood incident."
        assert notification_repo.list_for_user(volunteer.id) == []

    def test_one_failing_recipient_does_not_block_others(self, user_repo, push, coordinator, coordinator2):
        repo = FlakyNotificationRepository(failing_user=coordinator.id)
        service = NotificationService(user_repo, repo, push, max_workers=2)

        delivered = service.publish([_created_event()])

        assert delivered == 1
        assert len(repo.list_for_user(coordinator2.id)) == 1
        assert repo.list_for_user(coordinator.id) == []

    def test_push_failure_is_isolated(self, user_repo, notification_repo, coordinator, coordinator2, volunteer):
        push = RecordingPushProvider(failing_tokens={"ExponentPushToken[dana]"})
        service = NotificationService(user_repo, notification_repo, push)

        delivered = service.publish([_created_event()])

        assert delivered == 1
        assert len(notification_repo.list_for_user(coordinator2.id)) == 1

    def test_directory_failure_never_raises(self, notification_repo, push):
        class BrokenUsers:
            def list_by_role(self, role):
                raise RuntimeError("directory down")

        service = NotificationService(BrokenUsers(), notification_repo, push)

        assert service.publish([_created_event()]) == 0

    def test_dispatch_event_needs_no_directory_lookup(self, user_repo, notification_repo, push, volunteer):
        class CountingUsers:
            def __init__(self):
                self.role_lookups = 0

            def list_by_role(self, role):
                self.role_lookups += 1
                return []

            def get(self, user_id):
                return user_repo.get(user_id)

        users = CountingUsers()
        service = NotificationService(users, notification_repo, push)
        event = DomainEvent(
            kind=EventKind.VOLUNTEERS_DISPATCHED,
            incident_id="inc-1",
            incident_type="fire",
            volunteer_ids=[volunteer.id],
        )

        assert service.publish([event]) == 1
        assert users.role_lookups == 0
        assert push.sent[0]["title"] == "New Task Assigned"

    def test_no_events(self, notification_service):
        assert notification_service.publish([]) == 0


class TestInbox:

    def test_list_newest_first_and_mark_read(self, notification_service, coordinator):
        notification_service.deliver(coordinator.id, "first", "1")
        notification_service.deliver(coordinator.id, "second", "2")

        notes = notification_service.list_for_user(coordinator.id)
        assert len(notes) == 2
        assert notes[0].created_at >= notes[1].created_at

        marked = notification_service.mark_read(notes[0].id, coordinator.id)
        assert marked.read is True

    def test_only_owner_can_mark_read(self, notification_service, coordinator, volunteer):
        note = notification_service.deliver(coordinator.id, "mine", "body")

        with pytest.raises(NotFoundError):
            notification_service.mark_read(note.id, volunteer.id)
        assert notification_service.list_for_user(coordinator.id)[0].read is False

    def test_unknown_notification(self, notification_service, coordinator):
        with pytest.raises(NotFoundError):
            notification_service.mark_read("missing", coordinator.id)
