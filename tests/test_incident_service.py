"""
Incident Service Tests
======================

1. Photos are validated, uploaded concurrently, and all-or-nothing
2. Commands publish their events after the mutation commits
3. Notification failures never roll back a transition
4. Read-side queries
"""

import asyncio
import time

import pytest

from cera.core.errors import BadRequestError, NotFoundError, UpstreamError
from cera.models.incident import AssignmentStatus, IncidentStatus, IncidentType, PhotoUpload
from cera.services.incident_service import IncidentService
from cera.services.media.memory_provider import InMemoryMediaStore
from cera.services.notification_service import NotificationService

from conftest import RecordingPushProvider, actor_for, make_incident_data


class FlakyMediaStore(InMemoryMediaStore):
    """Fails to store any file named in `failing`."""

    def __init__(self, failing=()):
        super().__init__()
        self.failing = set(failing)
        self.deleted = []

    def store(self, data, filename, content_type):
        if filename in self.failing:
            raise UpstreamError(f"Photo upload failed for {filename}")
        return super().store(data, filename, content_type)

    def delete(self, ref):
        self.deleted.append(ref)
        super().delete(ref)


class SlowPushProvider(RecordingPushProvider):
    """Blocks for `delay` seconds on every send, like a push gateway that is timing out."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    def send(self, token, title, body, data=None):
        time.sleep(self.delay)
        return super().send(token, title, body, data)


def _photo(name: str = "a.jpg", size: int = 16, content_type: str = "image/jpeg") -> PhotoUpload:
    return PhotoUpload(filename=name, content_type=content_type, data=b"x" * size)


# ============================================================================
# TEST: CREATE WITH PHOTOS
# ============================================================================

class TestCreateIncident:

    async def test_create_with_photos(self, incident_service, media, notification_repo, resident, coordinator):
        incident = await incident_service.create_incident(
            actor_for(resident), make_incident_data(), [_photo("a.jpg"), _photo("b.png", content_type="image/png")]
        )

        assert incident.status == IncidentStatus.PENDING
        assert len(incident.photos) == len(incident.photo_refs) == 2
        assert incident.photo_url == incident.photos[0]
        assert set(incident.photo_refs) == set(media.objects)

        notes = notification_repo.list_for_user(coordinator.id)
        assert [n.title for n in notes] == ["New Incident Reported"]
        assert notes[0].metadata["incident_id"] == incident.id

    async def test_create_without_photos(self, incident_service, resident):
        incident = await incident_service.create_incident(actor_for(resident), make_incident_data())
        assert incident.photos == []
        assert incident.photo_url == ""

    async def test_custom_type(self, incident_service, resident):
        data = make_incident_data(type="other", custom_type="Gas leak")
        incident = await incident_service.create_incident(actor_for(resident), data)
        assert incident.type == IncidentType.OTHER
        assert incident.custom_type == "Gas leak"

    async def test_failed_upload_cleans_up_and_creates_nothing(
        self, incident_repo, user_repo, notification_service, state_machine, resident
    ):
        media = FlakyMediaStore(failing={"bad.jpg"})
        service = IncidentService(incident_repo, user_repo, media, notification_service, state_machine=state_machine)

        with pytest.raises(UpstreamError):
            await service.create_incident(
                actor_for(resident), make_incident_data(), [_photo("a.jpg"), _photo("bad.jpg"), _photo("c.jpg")]
            )

        assert incident_repo.list() == []
        assert media.objects == {}
        assert len(media.deleted) == 2

    async def test_too_many_photos(self, incident_service, media, resident):
        with pytest.raises(BadRequestError):
            await incident_service.create_incident(
                actor_for(resident), make_incident_data(), [_photo(f"{i}.jpg") for i in range(6)]
            )
        assert media.objects == {}

    async def test_unsupported_photo_type(self, incident_service, resident):
        with pytest.raises(BadRequestError):
            await incident_service.create_incident(
                actor_for(resident), make_incident_data(), [_photo("doc.pdf", content_type="application/pdf")]
            )

    async def test_oversized_photo(self, incident_service, resident):
        with pytest.raises(BadRequestError):
            await incident_service.create_incident(
                actor_for(resident), make_incident_data(), [_photo("big.jpg", size=4096)]
            )

    async def test_invalid_severity_uploads_nothing(self, incident_service, incident_repo, media, resident):
        with pytest.raises(BadRequestError):
            await incident_service.create_incident(
                actor_for(resident), make_incident_data(severity="Extreme"), [_photo()]
            )
        assert media.objects == {}
        assert incident_repo.list() == []

    async def test_slow_push_does_not_block_event_loop(
        self, incident_repo, user_repo, notification_repo, media, state_machine, resident, coordinator
    ):
        push = SlowPushProvider(delay=0.5)
        notifications = NotificationService(user_repo, notification_repo, push)
        service = IncidentService(incident_repo, user_repo, media, notifications, state_machine=state_machine)

        gaps = []
        stop = asyncio.Event()

        async def ticker():
            last = time.monotonic()
            while not stop.is_set():
                await asyncio.sleep(0.02)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        task = asyncio.create_task(ticker())
        await asyncio.sleep(0.05)
        incident = await service.create_incident(actor_for(resident), make_incident_data())
        stop.set()
        await task

        assert incident.status == IncidentStatus.PENDING
        assert [p["token"] for p in push.sent] == ["ExponentPushToken[dana]"]
        assert max(gaps) < 0.2

    async def test_default_photo_types_accept_heic(
        self, incident_repo, user_repo, media, notification_service, state_machine, resident
    ):
        service = IncidentService(incident_repo, user_repo, media, notification_service, state_machine=state_machine)

        incident = await service.create_incident(
            actor_for(resident), make_incident_data(),
            [_photo("a.heic", content_type="image/heic"), _photo("b.heif", content_type="image/heif")],
        )

        assert "image/heic" in service.allowed_photo_types
        assert len(incident.photos) == 2


# ============================================================================
# TEST: COMMANDS PUBLISH EVENTS
# ============================================================================

class TestCommands:

    def test_dispatch_notifies_new_volunteer(
        self, incident_service, approved_incident, notification_repo, push, coordinator, volunteer
    ):
        incident_service.dispatch(actor_for(coordinator), approved_incident.id, [volunteer.id])

        notes = notification_repo.list_for_user(volunteer.id)
        assert [n.title for n in notes] == ["New Task Assigned"]
        assert push.sent[-1]["token"] == "ExponentPushToken[sam]"

    def test_accept_notifies_coordinators(
        self, incident_service, approved_incident, notification_repo, coordinator, coordinator2, volunteer
    ):
        incident_service.dispatch(actor_for(coordinator), approved_incident.id, [volunteer.id])

        incident = incident_service.accept(actor_for(volunteer), approved_incident.id)

        assert incident.status == IncidentStatus.IN_PROGRESS
        for user in (coordinator, coordinator2):
            titles = [n.title for n in notification_repo.list_for_user(user.id)]
            assert "Volunteer Accepted Task" in titles

    def test_push_failure_does_not_roll_back(
        self, incident_repo, user_repo, notification_repo, media, state_machine, approved_incident, coordinator, volunteer
    ):
        push = RecordingPushProvider(failing_tokens={"ExponentPushToken[dana]", "ExponentPushToken[sam]"})
        notifications = NotificationService(user_repo, notification_repo, push)
        service = IncidentService(incident_repo, user_repo, media, notifications, state_machine=state_machine)

        service.dispatch(actor_for(coordinator), approved_incident.id, [volunteer.id])
        incident = service.accept(actor_for(volunteer), approved_incident.id)

        assert incident.status == IncidentStatus.IN_PROGRESS
        assert incident_repo.get(approved_incident.id).status == IncidentStatus.IN_PROGRESS

    def test_contact_coordinators(self, incident_service, approved_incident, notification_repo, coordinator, volunteer):
        incident_service.dispatch(actor_for(coordinator), approved_incident.id, [volunteer.id])

        incident_service.contact_coordinators(actor_for(volunteer), approved_incident.id, "Road blocked")

        bodies = [n.body for n in notification_repo.list_for_user(coordinator.id)]
        assert "Road blocked (Incident: fire at MG Road)" in bodies


# ============================================================================
# TEST: QUERIES
# ============================================================================

class TestQueries:

    def test_get_unknown(self, incident_service):
        with pytest.raises(NotFoundError):
            incident_service.get("missing")

    def test_list_filters(self, incident_service, state_machine, approved_incident, pending_incident, resident):
        other = state_machine.create(actor_for(resident), make_incident_data(type="flood")).incident

        approved = incident_service.list(statuses=[IncidentStatus.APPROVED])
        floods = incident_service.list(types=[IncidentType.FLOOD])

        assert [i.id for i in approved] == [approved_incident.id]
        assert [i.id for i in floods] == [other.id]
        assert len(incident_service.list()) == 2

    def test_reported_by(self, incident_service, pending_incident, resident, coordinator):
        assert [i.id for i in incident_service.list_reported_by(resident.id)] == [pending_incident.id]
        assert incident_service.list_reported_by(coordinator.id) == []

    def test_assigned_excludes_declined(
        self, incident_service, state_machine, approved_incident, resident, coordinator, volunteer, volunteer2
    ):
        second = state_machine.create(actor_for(resident), make_incident_data(type="rescue")).incident
        state_machine.approve(actor_for(coordinator), second.id)
        incident_service.dispatch(actor_for(coordinator), approved_incident.id, [volunteer.id, volunteer2.id])
        incident_service.dispatch(actor_for(coordinator), second.id, [volunteer.id])

        incident_service.decline(actor_for(volunteer), approved_incident.id)

        assigned = incident_service.list_assigned_to(volunteer.id)
        assert [i.id for i in assigned] == [second.id]
        assert [i.id for i in incident_service.list_assigned_to(volunteer2.id)] == [approved_incident.id]

    def test_assigned_most_recently_updated_first(
        self, incident_service, state_machine, approved_incident, resident, coordinator, volunteer
    ):
        second = state_machine.create(actor_for(resident), make_incident_data(type="rescue")).incident
        state_machine.approve(actor_for(coordinator), second.id)
        incident_service.dispatch(actor_for(coordinator), second.id, [volunteer.id])
        incident_service.dispatch(actor_for(coordinator), approved_incident.id, [volunteer.id])

        assigned = incident_service.list_assigned_to(volunteer.id)

        assert [i.id for i in assigned] == [approved_incident.id, second.id]

    def test_completed_by(self, incident_service, approved_incident, coordinator, volunteer, volunteer2):
        incident_service.dispatch(actor_for(coordinator), approved_incident.id, [volunteer.id, volunteer2.id])
        incident_service.accept(actor_for(volunteer), approved_incident.id)
        incident_service.complete(actor_for(volunteer), approved_incident.id)

        done = incident_service.list_completed_by(volunteer.id)
        assert [i.id for i in done] == [approved_incident.id]
        assert done[0].find_assignment(volunteer.id).status == AssignmentStatus.COMPLETED
        assert incident_service.list_completed_by(volunteer2.id) == []

    def test_history(self, incident_service, approved_incident):
        history = incident_service.history(approved_incident.id)
        assert [e.action.value for e in history] == ["approved"]
