"""
User Service - user directory, volunteer onboarding and self-service updates.
"""

from typing import List, Optional
import logging

from cera.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from cera.core.settings import settings
from cera.models.events import DomainEvent, EventKind
from cera.models.incident import GeoPoint, IncidentStatus, PhotoUpload
from cera.models.user import (
    WEEKDAYS,
    Actor,
    AvailabilityRequest,
    AvailabilitySlot,
    FileCategory,
    ProfileUpdate,
    PushToken,
    User,
    UserFile,
    UserRegister,
    UserRole,
    UserStatus,
    VolunteerFiles,
    VolunteerStats,
    WorkLog,
)
from cera.repositories.base import IncidentRepository, UserRepository
from cera.services.media.base import MediaStore
from cera.services.notification_service import NotificationService
from cera.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class UserService:
    """
    Service for user management.

    Volunteers register unapproved and uncertified; a coordinator approves
    (or rejects) them before they can be dispatched.
    """

    def __init__(
        self,
        users: UserRepository,
        incidents: IncidentRepository,
        notifications: NotificationService,
        media: MediaStore,
        max_file_bytes: int = 10 * 1024 * 1024,
        max_avatar_bytes: int = 6 * 1024 * 1024,
        avatar_types=None,
    ):
        self.users = users
        self.incidents = incidents
        self.notifications = notifications
        self.media = media
        self.max_file_bytes = max_file_bytes
        self.max_avatar_bytes = max_avatar_bytes
        self.avatar_types = set(avatar_types or settings.allowed_photo_types)

    @staticmethod
    def _require_coordinator(actor: Actor, action: str) -> None:
        if actor.role != UserRole.COORDINATOR:
            raise ForbiddenError(f"Access denied: only coordinators can {action}")

    def get(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    # ------------------------------------------------------------------
    # Registration & approval
    # ------------------------------------------------------------------

    def register(self, identity_id: str, data: UserRegister) -> User:
        """
        Create the profile for a verified identity.

        Args:
            identity_id: Id issued by the identity provider; becomes the user id
            data: Profile fields

        Returns:
            The stored user
        """
        email = data.email.strip().lower()
        if self.users.get(identity_id) is not None:
            raise ConflictError("A profile already exists for this account")
        if self.users.get_by_email(email) is not None:
            raise ConflictError("User already exists")

        is_volunteer = data.role == UserRole.VOLUNTEER
        user = self.users.create(User(
            id=identity_id,
            username=data.username.strip(),
            email=email,
            phone=data.phone.strip(),
            role=data.role,
            skills=[s.strip() for s in data.skills if s.strip()],
            location=data.location,
            certified=not is_volunteer,
            approved=not is_volunteer,
            approved_at=None if is_volunteer else utcnow(),
        ))
        logger.info(f"User registered: {user.id} ({user.role.value})")

        if is_volunteer:
            self.notifications.publish([DomainEvent(
                kind=EventKind.VOLUNTEER_REGISTERED,
                user_id=user.id,
                actor_id=user.id,
                actor_name=user.display_name,
            )])
        return user

    def list_pending_volunteers(self, actor: Actor) -> List[User]:
        self._require_coordinator(actor, "review volunteers")
        pending = [u for u in self.users.list_by_role(UserRole.VOLUNTEER) if not u.approved]
        return sorted(pending, key=lambda u: u.created_at, reverse=True)

    def approve_volunteer(self, actor: Actor, user_id: str) -> User:
        self._require_coordinator(actor, "approve volunteers")

        def apply(user: User) -> None:
            if user.role != UserRole.VOLUNTEER:
                raise ConflictError(f"User {user_id} is not a volunteer")
            user.approved = True
            user.certified = True
            user.approved_at = utcnow()

        user, _ = self.users.update(user_id, apply)
        logger.info(f"Volunteer {user_id} approved by {actor.id}")
        return user

    def reject_volunteer(self, actor: Actor, user_id: str) -> None:
        self._require_coordinator(actor, "reject volunteers")
        user = self.get(user_id)
        if user.role != UserRole.VOLUNTEER or user.approved:
            raise ConflictError(f"User {user_id} is not a pending volunteer")
        self.users.delete(user_id)
        logger.info(f"Volunteer application {user_id} rejected by {actor.id}")

    def eligible_for_dispatch(self, actor: Actor) -> List[User]:
        self._require_coordinator(actor, "list dispatchable volunteers")
        return [u for u in self.users.list_by_role(UserRole.VOLUNTEER) if u.is_dispatchable]

    def list_users(
        self,
        actor: Actor,
        role: Optional[UserRole] = None,
        approved: Optional[bool] = None,
    ) -> List[User]:
        """Directory listing, optionally filtered by role and approval, newest first."""
        self._require_coordinator(actor, "list users")
        users = self.users.list_by_role(role) if role else self.users.list_all()
        if approved is not None:
            users = [u for u in users if u.approved == approved]
        return sorted(users, key=lambda u: u.created_at, reverse=True)

    # ------------------------------------------------------------------
    # Self-service
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_status(raw_status: Optional[str]) -> UserStatus:
        try:
            return UserStatus((raw_status or "").strip().lower())
        except ValueError:
            raise BadRequestError("Invalid status")

    def set_status(self, user_id: str, raw_status: str) -> User:
        status = self._parse_status(raw_status)

        def apply(user: User) -> None:
            user.status = status

        user, _ = self.users.update(user_id, apply)
        return user

    def set_location(self, user_id: str, longitude: float, latitude: float) -> User:
        def apply(user: User) -> None:
            name = user.location.name if user.location else None
            user.location = GeoPoint(longitude=longitude, latitude=latitude, name=name)

        user, _ = self.users.update(user_id, apply)
        return user

    def add_push_token(self, user_id: str, token: str, platform: str = "expo") -> User:
        token = token.strip()
        if not token:
            raise BadRequestError("Push token is required")

        def apply(user: User) -> None:
            if any(t.token == token for t in user.push_tokens):
                return
            user.push_tokens.append(PushToken(platform=platform, token=token))

        user, _ = self.users.update(user_id, apply)
        return user

    def add_work_log(self, user_id: str, incident_id: str, hours: float) -> WorkLog:
        if hours <= 0:
            raise BadRequestError("Hours must be positive")

        def apply(user: User) -> WorkLog:
            entry = WorkLog(incident_id=incident_id, hours=hours)
            user.work_logs.append(entry)
            user.total_volunteer_hours += hours
            return entry

        _, entry = self.users.update(user_id, apply)
        return entry

    def stats(self, user_id: str) -> VolunteerStats:
        user = self.get(user_id)
        hours = sum(w.hours for w in user.work_logs)
        assigned = self.incidents.list_by_volunteer(user_id)
        return VolunteerStats(
            hours=hours,
            in_progress=sum(1 for i in assigned if i.status == IncidentStatus.IN_PROGRESS),
            completed=sum(1 for i in assigned if i.status == IncidentStatus.COMPLETED),
        )

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def update_profile(self, user_id: str, data: ProfileUpdate) -> User:
        """
        Apply the fields present in `data`.

        `skills` may be a list or a comma separated string. A null
        `birth_date` clears it; other nulls are ignored.
        """
        changes = {}
        for field in data.model_fields_set:
            value = getattr(data, field)
            if value is None and field != "birth_date":
                continue
            if isinstance(value, str):
                value = value.strip()
            changes[field] = value

        if "status" in changes:
            changes["status"] = self._parse_status(changes["status"])
        if "skills" in changes:
            skills = changes["skills"]
            if isinstance(skills, str):
                skills = skills.split(",")
            changes["skills"] = [s.strip() for s in skills if s.strip()]

        def apply(user: User) -> None:
            for field, value in changes.items():
                setattr(user, field, value)

        user, _ = self.users.update(user_id, apply)
        logger.info(f"Profile updated for {user_id}: {sorted(changes)}")
        return user

    def set_avatar(self, user_id: str, upload: PhotoUpload) -> User:
        if (upload.content_type or "").lower() not in self.avatar_types:
            raise BadRequestError(f"Unsupported image type '{upload.content_type}'")
        if not upload.data:
            raise BadRequestError("Image upload failed")
        if len(upload.data) > self.max_avatar_bytes:
            raise BadRequestError(f"Image exceeds {self.max_avatar_bytes // (1024 * 1024)} MB")
        self.get(user_id)

        stored = self.media.store(upload.data, upload.filename, upload.content_type)

        def apply(user: User) -> str:
            previous = user.avatar_ref
            user.avatar_url = stored.url
            user.avatar_ref = stored.ref
            return previous

        try:
            user, previous = self.users.update(user_id, apply)
        except Exception:
            self.media.delete(stored.ref)
            raise
        if previous:
            self.media.delete(previous)
        return user

    # ------------------------------------------------------------------
    # Weekly availability
    # ------------------------------------------------------------------

    def get_availability(self, user_id: str) -> List[AvailabilitySlot]:
        return self.get(user_id).availability

    def save_availability(self, user_id: str, data: AvailabilityRequest) -> List[AvailabilitySlot]:
        """
        Set the slot for one day of a week, or for every day when
        `repeat_all_week` is set. Existing slots for those days are replaced.
        """
        day = data.day.strip().title()
        if day not in WEEKDAYS:
            raise BadRequestError(f"Invalid day '{data.day}'")
        days = WEEKDAYS if data.repeat_all_week else [day]

        def apply(user: User) -> List[AvailabilitySlot]:
            user.availability = [
                slot for slot in user.availability
                if not (slot.week_number == data.week_number and slot.day in days)
            ]
            for d in days:
                user.availability.append(AvailabilitySlot(
                    week_number=data.week_number,
                    week_range=data.week_range,
                    day=d,
                    start=data.start.strip(),
                    end=data.end.strip(),
                    repeat_all_week=data.repeat_all_week,
                ))
            return list(user.availability)

        _, slots = self.users.update(user_id, apply)
        return slots

    # ------------------------------------------------------------------
    # Credential files
    # ------------------------------------------------------------------

    def list_files(self, user_id: str) -> List[UserFile]:
        return self.get(user_id).files

    def upload_file(self, user_id: str, upload: PhotoUpload, category: Optional[str] = None) -> List[UserFile]:
        if not upload.data:
            raise BadRequestError("No file uploaded")
        if len(upload.data) > self.max_file_bytes:
            raise BadRequestError(f"File too large (max {self.max_file_bytes // (1024 * 1024)}MB)")
        try:
            file_category = FileCategory(category) if category else FileCategory.OTHER
        except ValueError:
            raise BadRequestError(f"Invalid file category '{category}'")
        self.get(user_id)

        stored = self.media.store(upload.data, upload.filename, upload.content_type)

        def apply(user: User) -> List[UserFile]:
            user.files.append(UserFile(
                url=stored.url,
                ref=stored.ref,
                name=upload.filename,
                type=upload.content_type,
                size=len(upload.data),
                category=file_category,
            ))
            return list(user.files)

        try:
            _, files = self.users.update(user_id, apply)
        except Exception:
            self.media.delete(stored.ref)
            raise
        logger.info(f"File {upload.filename} ({file_category.value}) added for {user_id}")
        return files

    def delete_file(self, user_id: str, file_id: str) -> List[UserFile]:
        def apply(user: User):
            removed = next((f for f in user.files if f.id == file_id), None)
            if removed is None:
                raise NotFoundError(f"File {file_id} not found")
            user.files = [f for f in user.files if f.id != file_id]
            return removed, list(user.files)

        _, (removed, files) = self.users.update(user_id, apply)
        if removed.ref:
            self.media.delete(removed.ref)
        return files

    def files_for(self, actor: Actor, user_id: str) -> VolunteerFiles:
        self._require_coordinator(actor, "view volunteer files")
        user = self.get(user_id)
        return VolunteerFiles(user_id=user.id, username=user.username, files=user.files)


# Global service instance (singleton pattern)
_user_service: Optional[UserService] = None


def get_user_service() -> UserService:
    """
    Get or create UserService singleton instance.

    Returns:
        UserService: The global user service instance
    """
    global _user_service
    if _user_service is None:
        from cera.repositories import get_incident_repository, get_user_repository
        from cera.services.media.resolver import get_media_store
        from cera.services.notification_service import get_notification_service

        _user_service = UserService(
            users=get_user_repository(),
            incidents=get_incident_repository(),
            notifications=get_notification_service(),
            media=get_media_store(),
            max_file_bytes=settings.MAX_USER_FILE_BYTES,
            max_avatar_bytes=settings.MAX_PHOTO_BYTES,
            avatar_types=settings.allowed_photo_types,
        )
    return _user_service
