"""
Incident Service - application façade over the incident core.

Responsibilities:
- Photo validation and concurrent upload before an incident is created
- Running state-machine commands and publishing the events they return
- Read-side queries (lists, nearby, assigned, completed, history)

Notification happens after the mutation commits and never affects the
command's outcome.
"""

import asyncio
from typing import List, Optional
import logging

from cera.core.errors import BadRequestError, NotFoundError, UpstreamError
from cera.core.settings import settings
from cera.models.incident import (
    AssignmentStatus,
    Incident,
    IncidentCreate,
    IncidentStatus,
    IncidentType,
    LogEntry,
    NearbyIncident,
    PhotoUpload,
)
from cera.models.user import Actor
from cera.repositories.base import IncidentRepository, UserRepository
from cera.services.activity_log import ActivityLog
from cera.services.geo_index import GeoIndex, NearbyQuery
from cera.services.incident_state_machine import IncidentStateMachine, TransitionResult
from cera.services.media.base import MediaStore, StoredMedia
from cera.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class IncidentService:

    def __init__(
        self,
        incidents: IncidentRepository,
        users: UserRepository,
        media: MediaStore,
        notifications: NotificationService,
        state_machine: Optional[IncidentStateMachine] = None,
        max_photos: int = 5,
        max_photo_bytes: int = 6 * 1024 * 1024,
        allowed_photo_types=None,
    ):
        self.incidents = incidents
        self.users = users
        self.media = media
        self.notifications = notifications
        self.state_machine = state_machine or IncidentStateMachine(incidents, users)
        self.activity_log = ActivityLog(incidents)
        self.geo_index = GeoIndex(incidents)
        self.max_photos = max_photos
        self.max_photo_bytes = max_photo_bytes
        self.allowed_photo_types = set(allowed_photo_types or settings.allowed_photo_types)

    def _publish(self, result: TransitionResult) -> Incident:
        self.notifications.publish(result.events)
        return result.incident

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def validate_photos(self, photos: List[PhotoUpload]) -> None:
        if len(photos) > self.max_photos:
            raise BadRequestError(f"At most {self.max_photos} photos are allowed")
        for photo in photos:
            if (photo.content_type or "").lower() not in self.allowed_photo_types:
                raise BadRequestError(
                    f"Unsupported photo type '{photo.content_type}' for {photo.filename}"
                )
            if len(photo.data) > self.max_photo_bytes:
                raise BadRequestError(
                    f"Photo {photo.filename} exceeds {self.max_photo_bytes // (1024 * 1024)} MB"
                )

    async def upload_photos(self, photos: List[PhotoUpload]) -> List[StoredMedia]:
        """
        Store all photos concurrently.

        All-or-nothing: if any upload fails, the ones that succeeded are
        deleted (best-effort) and UpstreamError is raised.
        """
        if not photos:
            return []

        loop = asyncio.get_running_loop()
        results = await asyncio.gather(
            *[
                loop.run_in_executor(None, self.media.store, photo.data, photo.filename, photo.content_type)
                for photo in photos
            ],
            return_exceptions=True,
        )

        stored = [r for r in results if isinstance(r, StoredMedia)]
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.warning(f"{len(failures)}/{len(photos)} photo uploads failed; cleaning up {len(stored)}")
            await loop.run_in_executor(None, self._discard, stored)
            raise UpstreamError("Photo upload failed")
        return stored

    def _discard(self, stored: List[StoredMedia]) -> None:
        for media in stored:
            self.media.delete(media.ref)

    def _create_and_publish(self, actor: Actor, data: IncidentCreate, stored: List[StoredMedia]) -> Incident:
        try:
            result = self.state_machine.create(actor, data, stored)
        except Exception:
            self._discard(stored)
            raise
        return self._publish(result)

    async def create_incident(
        self,
        actor: Actor,
        data: IncidentCreate,
        photos: Optional[List[PhotoUpload]] = None,
    ) -> Incident:
        photos = photos or []
        self.validate_photos(photos)
        # Field validation runs before any bytes leave the process
        self.state_machine.normalize_severity(data.severity)
        if (data.affected or 0) < 0:
            raise BadRequestError("Affected count cannot be negative")

        stored = await self.upload_photos(photos)
        # The write and the push fan-out block, so they stay off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._create_and_publish, actor, data, stored)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def approve(self, actor: Actor, incident_id: str) -> Incident:
        return self._publish(self.state_machine.approve(actor, incident_id))

    def dispatch(self, actor: Actor, incident_id: str, volunteer_ids: List[str]) -> Incident:
        return self._publish(self.state_machine.dispatch(actor, incident_id, volunteer_ids))

    def accept(self, actor: Actor, incident_id: str) -> Incident:
        return self._publish(self.state_machine.accept(actor, incident_id))

    def decline(self, actor: Actor, incident_id: str) -> Incident:
        return self._publish(self.state_machine.decline(actor, incident_id))

    def start(self, actor: Actor, incident_id: str) -> Incident:
        return self._publish(self.state_machine.start(actor, incident_id))

    def complete(self, actor: Actor, incident_id: str) -> Incident:
        return self._publish(self.state_machine.complete(actor, incident_id))

    def contact_coordinators(self, actor: Actor, incident_id: str, message: Optional[str] = None) -> Incident:
        return self._publish(self.state_machine.contact_coordinators(actor, incident_id, message))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, incident_id: str) -> Incident:
        incident = self.incidents.get(incident_id)
        if incident is None:
            raise NotFoundError(f"Incident {incident_id} not found")
        return incident

    def list(
        self,
        statuses: Optional[List[IncidentStatus]] = None,
        types: Optional[List[IncidentType]] = None,
    ) -> List[Incident]:
        incidents = self.incidents.list(statuses or None)
        if types:
            wanted = set(types)
            incidents = [i for i in incidents if i.type in wanted]
        return incidents

    def list_reported_by(self, user_id: str) -> List[Incident]:
        return self.incidents.list_by_reporter(user_id)

    def list_assigned_to(self, volunteer_id: str) -> List[Incident]:
        """Incidents where the volunteer has a non-declined entry, most recently updated first."""
        assigned = [
            incident for incident in self.incidents.list_by_volunteer(volunteer_id)
            if incident.find_assignment(volunteer_id).status != AssignmentStatus.DECLINED
        ]
        return sorted(assigned, key=lambda i: i.updated_at, reverse=True)

    def list_completed_by(self, volunteer_id: str) -> List[Incident]:
        completed = [
            incident for incident in self.incidents.list_by_volunteer(volunteer_id)
            if incident.find_assignment(volunteer_id).status == AssignmentStatus.COMPLETED
        ]
        return sorted(completed, key=lambda i: i.updated_at, reverse=True)

    def nearby(self, actor: Actor, query: NearbyQuery) -> List[NearbyIncident]:
        return self.geo_index.nearby(actor.id, query)

    def history(self, incident_id: str) -> List[LogEntry]:
        return self.activity_log.history(incident_id)


# Global service instance (singleton pattern)
_incident_service = None


def get_incident_service() -> IncidentService:
    """
    Get or create IncidentService singleton instance.
    """
    global _incident_service
    if _incident_service is None:
        from cera.repositories import get_incident_repository, get_user_repository
        from cera.services.media.resolver import get_media_store
        from cera.services.notification_service import get_notification_service

        _incident_service = IncidentService(
            incidents=get_incident_repository(),
            users=get_user_repository(),
            media=get_media_store(),
            notifications=get_notification_service(),
            max_photos=settings.MAX_PHOTOS_PER_INCIDENT,
            max_photo_bytes=settings.MAX_PHOTO_BYTES,
            allowed_photo_types=settings.allowed_photo_types,
        )
    return _incident_service
