"""
Incident State Machine - owns incident status and the commands that move it.

DESIGN PRINCIPLES:
- Transitions come from a closed table, never from string comparisons at call sites
- Authority (role / assignment membership) is checked before anything changes
- Each command is one atomic mutation of one incident: status, assignments
  and log entries are written together or not at all
- Commands return domain events; notifying people is someone else's job
"""

from typing import Callable, Dict, List, Optional, Set
from datetime import datetime
import logging

from pydantic import BaseModel, Field

from cera.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from cera.models.events import DomainEvent, EventKind
from cera.models.incident import (
    AssignmentStatus,
    Incident,
    IncidentCreate,
    IncidentStatus,
    IncidentType,
    LogAction,
    Severity,
)
from cera.models.user import Actor, UserRole, UserStatus
from cera.repositories.base import IncidentRepository, UserRepository
from cera.services.activity_log import ActivityLog
from cera.services.assignment_ledger import AssignmentLedger
from cera.services.media.base import StoredMedia
from cera.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class TransitionResult(BaseModel):
    """The committed incident and the events the change produced."""
    incident: Incident
    events: List[DomainEvent] = Field(default_factory=list)


class IncidentStateMachine:
    """
    pending → approved → assigned → in_progress → completed

    assigned → approved happens when every assignment has been declined,
    which re-opens the incident for dispatch.
    """

    # Allowed transitions map: {from_status: [to_status, ...]}
    ALLOWED_TRANSITIONS: Dict[IncidentStatus, List[IncidentStatus]] = {
        IncidentStatus.PENDING: [IncidentStatus.APPROVED],
        IncidentStatus.APPROVED: [IncidentStatus.ASSIGNED],
        IncidentStatus.ASSIGNED: [IncidentStatus.IN_PROGRESS, IncidentStatus.APPROVED],
        IncidentStatus.IN_PROGRESS: [IncidentStatus.COMPLETED],
        IncidentStatus.COMPLETED: [],  # Terminal state
    }

    # Incident states in which each command may run
    COMMAND_STATES: Dict[str, Set[IncidentStatus]] = {
        "approve": {IncidentStatus.PENDING},
        "dispatch": {IncidentStatus.APPROVED, IncidentStatus.ASSIGNED, IncidentStatus.IN_PROGRESS},
        "accept": {IncidentStatus.ASSIGNED, IncidentStatus.IN_PROGRESS},
        "decline": {IncidentStatus.ASSIGNED, IncidentStatus.IN_PROGRESS},
        "start": {IncidentStatus.IN_PROGRESS},
        "complete": {IncidentStatus.IN_PROGRESS},
    }

    UNAVAILABLE_STATUSES = {UserStatus.AWAY, UserStatus.OFFLINE}

    def __init__(
        self,
        incidents: IncidentRepository,
        users: UserRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.incidents = incidents
        self.users = users
        self._now = clock or utcnow

    # ------------------------------------------------------------------
    # Table checks
    # ------------------------------------------------------------------

    @classmethod
    def is_valid_transition(cls, from_status: str, to_status: str) -> bool:
        try:
            from_enum = IncidentStatus(from_status)
            to_enum = IncidentStatus(to_status)
        except ValueError:
            return False

        # Same status is always valid (no-op)
        if from_enum == to_enum:
            return True
        return to_enum in cls.ALLOWED_TRANSITIONS.get(from_enum, [])

    @classmethod
    def _move(cls, incident: Incident, to_status: IncidentStatus) -> None:
        if not cls.is_valid_transition(incident.status, to_status):
            allowed = [s.value for s in cls.ALLOWED_TRANSITIONS.get(incident.status, [])]
            raise ConflictError(
                f"Invalid status transition: {incident.status.value} → {to_status.value}. "
                f"Allowed transitions from {incident.status.value}: {allowed}"
            )
        incident.status = to_status

    @classmethod
    def _require_state(cls, incident: Incident, command: str) -> None:
        if incident.status not in cls.COMMAND_STATES[command]:
            raise ConflictError(
                f"Cannot {command} incident {incident.id} while it is {incident.status.value}"
            )

    @staticmethod
    def _require_role(actor: Actor, role: UserRole, action: str) -> None:
        if actor.role != role:
            raise ForbiddenError(f"Access denied: only {role.value}s can {action}")

    @staticmethod
    def _event(kind: EventKind, incident: Incident, actor: Actor, **extra) -> DomainEvent:
        return DomainEvent(
            kind=kind,
            incident_id=incident.id,
            actor_id=actor.id,
            actor_name=actor.display_name,
            incident_type=incident.type_label,
            location_name=incident.location_label,
            **extra,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_type(raw_type: Optional[str], custom_type: Optional[str]):
        """
        Unknown or missing types become 'other'. The custom type survives only
        for 'other' incidents.
        """
        value = (raw_type or "").strip().lower()
        try:
            incident_type = IncidentType(value)
        except ValueError:
            incident_type = IncidentType.OTHER

        custom = (custom_type or "").strip() if incident_type == IncidentType.OTHER else ""
        return incident_type, custom

    @staticmethod
    def normalize_severity(raw_severity: Optional[str]) -> Severity:
        if raw_severity is None or not raw_severity.strip():
            return Severity.LOW
        for severity in Severity:
            if severity.value.lower() == raw_severity.strip().lower():
                return severity
        raise BadRequestError(
            f"Invalid severity '{raw_severity}'. Allowed: {[s.value for s in Severity]}"
        )

    def build_incident(self, actor: Actor, data: IncidentCreate, photos: List[StoredMedia]) -> Incident:
        incident_type, custom_type = self.normalize_type(data.type, data.custom_type)
        affected = data.affected or 0
        if affected < 0:
            raise BadRequestError("Affected count cannot be negative")

        now = self._now()
        return Incident(
            reporter=actor.id,
            reporter_name=actor.display_name or "Unknown",
            type=incident_type,
            custom_type=custom_type,
            description=data.description or "",
            severity=self.normalize_severity(data.severity),
            affected=affected,
            location=data.location.model_copy(),
            photos=[p.url for p in photos],
            photo_refs=[p.ref for p in photos],
            photo_url=photos[0].url if photos else "",
            status=IncidentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    def create(self, actor: Actor, data: IncidentCreate, photos: Optional[List[StoredMedia]] = None) -> TransitionResult:
        incident = self.incidents.create(self.build_incident(actor, data, photos or []))
        logger.info(f"Incident {incident.id} ({incident.type.value}) reported by {actor.id}")
        return TransitionResult(
            incident=incident,
            events=[self._event(EventKind.INCIDENT_CREATED, incident, actor)],
        )

    # ------------------------------------------------------------------
    # Coordinator commands
    # ------------------------------------------------------------------

    def approve(self, actor: Actor, incident_id: str) -> TransitionResult:
        self._require_role(actor, UserRole.COORDINATOR, "approve incidents")

        def apply(incident: Incident) -> None:
            self._require_state(incident, "approve")
            now = self._now()
            self._move(incident, IncidentStatus.APPROVED)
            ActivityLog.record(
                incident, LogAction.APPROVED, actor=actor.id,
                message=f"Incident approved by {actor.display_name}", now=now,
            )
            incident.updated_at = now

        incident, _ = self.incidents.mutate(incident_id, apply)
        logger.info(f"Incident {incident_id} approved by {actor.id}")
        return TransitionResult(incident=incident)

    def dispatch(self, actor: Actor, incident_id: str, volunteer_ids: List[str]) -> TransitionResult:
        """
        Assign volunteers. The whole batch is rejected if any volunteer is
        unknown, not an approved volunteer, or away/offline. Volunteers already
        on the incident are skipped silently.
        """
        self._require_role(actor, UserRole.COORDINATOR, "dispatch volunteers")

        requested = list(dict.fromkeys(v.strip() for v in (volunteer_ids or []) if v and v.strip()))
        if not requested:
            raise BadRequestError("No volunteers provided")

        if self.incidents.get(incident_id) is None:
            raise NotFoundError(f"Incident {incident_id} not found")

        found = {user.id: user for user in self.users.get_many(requested)}
        for volunteer_id in requested:
            volunteer = found.get(volunteer_id)
            if volunteer is None:
                raise NotFoundError(f"Volunteer {volunteer_id} not found")
            if volunteer.status in self.UNAVAILABLE_STATUSES:
                raise ConflictError(
                    f'Cannot assign {volunteer.display_name}. They are currently "{volunteer.status.value}".'
                )
            if not volunteer.is_dispatchable:
                raise ConflictError(
                    f"Cannot assign {volunteer.display_name}. They are not an approved, certified volunteer."
                )

        names = {vid: found[vid].display_name for vid in requested}

        def apply(incident: Incident) -> List[str]:
            self._require_state(incident, "dispatch")
            now = self._now()
            added = AssignmentLedger.add_entries(incident, requested, actor.id, names=names, now=now)
            for entry in added:
                ActivityLog.record(
                    incident, LogAction.ASSIGNED, actor=actor.id, target=entry.volunteer,
                    message=f"Coordinator assigned volunteer {entry.volunteer_name or entry.volunteer}",
                    now=now,
                )
            if added:
                if incident.status == IncidentStatus.APPROVED:
                    self._move(incident, IncidentStatus.ASSIGNED)
                if incident.assigned_at is None:
                    incident.assigned_at = now
                incident.updated_at = now
            return [entry.volunteer for entry in added]

        incident, added_ids = self.incidents.mutate(incident_id, apply)
        logger.info(f"Incident {incident_id}: dispatched {added_ids} (requested {requested})")

        events = []
        if added_ids:
            events.append(self._event(EventKind.VOLUNTEERS_DISPATCHED, incident, actor, volunteer_ids=added_ids))
        return TransitionResult(incident=incident, events=events)

    # ------------------------------------------------------------------
    # Volunteer commands
    # ------------------------------------------------------------------

    def _respond(
        self,
        actor: Actor,
        incident_id: str,
        command: str,
        apply_command: Callable[[Incident, datetime], None],
    ) -> Incident:
        self._require_role(actor, UserRole.VOLUNTEER, f"{command} tasks")

        def apply(incident: Incident) -> None:
            AssignmentLedger.require_entry(incident, actor.id)
            self._require_state(incident, command)
            now = self._now()
            apply_command(incident, now)
            incident.updated_at = now

        incident, _ = self.incidents.mutate(incident_id, apply)
        logger.info(f"Incident {incident_id}: volunteer {actor.id} {command} → incident {incident.status.value}")
        return incident

    def accept(self, actor: Actor, incident_id: str) -> TransitionResult:
        def apply_command(incident: Incident, now: datetime) -> None:
            AssignmentLedger.apply_response(incident, actor.id, AssignmentStatus.ACCEPTED, now)
            ActivityLog.record(
                incident, LogAction.ACCEPTED, actor=actor.id,
                message="Volunteer accepted the task.", now=now,
            )
            self._move(incident, IncidentStatus.IN_PROGRESS)

        incident = self._respond(actor, incident_id, "accept", apply_command)
        return TransitionResult(
            incident=incident,
            events=[self._event(EventKind.VOLUNTEER_ACCEPTED, incident, actor)],
        )

    def decline(self, actor: Actor, incident_id: str) -> TransitionResult:
        def apply_command(incident: Incident, now: datetime) -> None:
            AssignmentLedger.apply_response(incident, actor.id, AssignmentStatus.DECLINED, now)
            ActivityLog.record(
                incident, LogAction.DECLINED, actor=actor.id,
                message="Volunteer declined the task.", now=now,
            )
            if AssignmentLedger.every_declined(incident):
                self._move(incident, IncidentStatus.APPROVED)

        incident = self._respond(actor, incident_id, "decline", apply_command)
        return TransitionResult(
            incident=incident,
            events=[self._event(EventKind.VOLUNTEER_DECLINED, incident, actor)],
        )

    def start(self, actor: Actor, incident_id: str) -> TransitionResult:
        def apply_command(incident: Incident, now: datetime) -> None:
            AssignmentLedger.apply_response(incident, actor.id, AssignmentStatus.IN_PROGRESS, now)
            ActivityLog.record(
                incident, LogAction.IN_PROGRESS, actor=actor.id,
                message="Volunteer started working on the task.", now=now,
            )

        incident = self._respond(actor, incident_id, "start", apply_command)
        return TransitionResult(incident=incident)

    def complete(self, actor: Actor, incident_id: str) -> TransitionResult:
        def apply_command(incident: Incident, now: datetime) -> None:
            entry = AssignmentLedger.require_entry(incident, actor.id)
            if entry.status == AssignmentStatus.ACCEPTED:
                AssignmentLedger.apply_response(incident, actor.id, AssignmentStatus.IN_PROGRESS, now)
            AssignmentLedger.apply_response(incident, actor.id, AssignmentStatus.COMPLETED, now)
            ActivityLog.record(
                incident, LogAction.COMPLETED, actor=actor.id,
                message="Volunteer marked the task as completed.", now=now,
            )
            self._move(incident, IncidentStatus.COMPLETED)
            incident.completed_at = now

        incident = self._respond(actor, incident_id, "complete", apply_command)
        return TransitionResult(
            incident=incident,
            events=[self._event(EventKind.TASK_COMPLETED, incident, actor)],
        )

    def contact_coordinators(self, actor: Actor, incident_id: str, message: Optional[str] = None) -> TransitionResult:
        self._require_role(actor, UserRole.VOLUNTEER, "contact coordinators")
        message = (message or "").strip()

        def apply(incident: Incident) -> None:
            now = self._now()
            ActivityLog.record(
                incident, LogAction.CONTACTED_COORDINATORS, actor=actor.id,
                message=message or "Volunteer contacted coordinators.", now=now,
            )
            incident.updated_at = now

        incident, _ = self.incidents.mutate(incident_id, apply)
        return TransitionResult(
            incident=incident,
            events=[self._event(EventKind.COORDINATORS_CONTACTED, incident, actor, message=message or None)],
        )
