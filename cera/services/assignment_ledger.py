"""
Assignment Ledger - the volunteers assigned to an incident and each one's
response state.

DESIGN PRINCIPLES:
- A volunteer appears at most once per incident
- Response transitions follow a closed table; no skipping, no going back
- Side effects stay inside the incident's embedded list
- Never notifies anyone; the state machine owns that
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional
import logging

from cera.core.errors import ConflictError, NotFoundError
from cera.models.incident import AssignmentEntry, AssignmentStatus, Incident
from cera.repositories.base import IncidentRepository
from cera.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class AssignmentLedger:
    """
    Per-volunteer sub-state machine embedded in an incident.

    pending → accepted | declined
    accepted → in_progress → completed
    declined and completed are terminal for that entry.
    """

    # Allowed transitions map: {from_status: [to_status, ...]}
    ALLOWED_TRANSITIONS: Dict[AssignmentStatus, List[AssignmentStatus]] = {
        AssignmentStatus.PENDING: [AssignmentStatus.ACCEPTED, AssignmentStatus.DECLINED],
        AssignmentStatus.ACCEPTED: [AssignmentStatus.IN_PROGRESS],
        AssignmentStatus.IN_PROGRESS: [AssignmentStatus.COMPLETED],
        AssignmentStatus.DECLINED: [],
        AssignmentStatus.COMPLETED: [],
    }

    def __init__(self, incidents: IncidentRepository):
        self.incidents = incidents

    @classmethod
    def is_valid_transition(cls, from_status: str, to_status: str) -> bool:
        try:
            from_enum = AssignmentStatus(from_status)
            to_enum = AssignmentStatus(to_status)
        except ValueError:
            return False
        return to_enum in cls.ALLOWED_TRANSITIONS.get(from_enum, [])

    @classmethod
    def get_allowed_transitions(cls, current_status: str) -> List[str]:
        try:
            current_enum = AssignmentStatus(current_status)
        except ValueError:
            return []
        return [status.value for status in cls.ALLOWED_TRANSITIONS.get(current_enum, [])]

    # ------------------------------------------------------------------
    # Operations on an incident already held inside a mutation
    # ------------------------------------------------------------------

    @staticmethod
    def require_entry(incident: Incident, volunteer_id: str) -> AssignmentEntry:
        entry = incident.find_assignment(volunteer_id)
        if entry is None:
            raise NotFoundError(
                f"Volunteer {volunteer_id} is not assigned to incident {incident.id}"
            )
        return entry

    @staticmethod
    def add_entries(
        incident: Incident,
        volunteer_ids: Iterable[str],
        assigned_by: Optional[str],
        names: Optional[Dict[str, str]] = None,
        now: Optional[datetime] = None,
    ) -> List[AssignmentEntry]:
        """
        Add a pending entry for every volunteer not currently on the incident.

        A volunteer with a live entry is skipped. A volunteer whose entry was
        declined is re-opened in place (fresh pending entry, same position), so
        the one-entry-per-volunteer invariant always holds.

        Returns the entries that were added or re-opened, in request order.
        """
        now = now or utcnow()
        names = names or {}
        changed: List[AssignmentEntry] = []

        for volunteer_id in dict.fromkeys(volunteer_ids):
            existing = incident.find_assignment(volunteer_id)
            if existing is not None and existing.status != AssignmentStatus.DECLINED:
                continue

            entry = AssignmentEntry(
                volunteer=volunteer_id,
                volunteer_name=names.get(volunteer_id),
                assigned_by=assigned_by,
                assigned_at=now,
                status=AssignmentStatus.PENDING,
            )
            if existing is None:
                incident.assigned_volunteers.append(entry)
            else:
                position = incident.assigned_volunteers.index(existing)
                incident.assigned_volunteers[position] = entry
                logger.info(f"Re-opened declined assignment for {volunteer_id} on incident {incident.id}")
            changed.append(entry)

        return changed

    @classmethod
    def apply_response(
        cls,
        incident: Incident,
        volunteer_id: str,
        new_status: AssignmentStatus,
        now: Optional[datetime] = None,
    ) -> AssignmentEntry:
        entry = cls.require_entry(incident, volunteer_id)
        new_status = AssignmentStatus(new_status)

        if not cls.is_valid_transition(entry.status, new_status):
            allowed = cls.get_allowed_transitions(entry.status)
            raise ConflictError(
                f"Invalid assignment transition: {entry.status.value} → {new_status.value}. "
                f"Allowed transitions from {entry.status.value}: {allowed}"
            )

        entry.status = new_status
        entry.responded_at = now or utcnow()
        return entry

    @staticmethod
    def every_declined(incident: Incident) -> bool:
        entries = incident.assigned_volunteers
        return bool(entries) and all(e.status == AssignmentStatus.DECLINED for e in entries)

    # ------------------------------------------------------------------
    # Stand-alone operations by incident id
    # ------------------------------------------------------------------

    def _get(self, incident_id: str) -> Incident:
        incident = self.incidents.get(incident_id)
        if incident is None:
            raise NotFoundError(f"Incident {incident_id} not found")
        return incident

    def list_assignments(self, incident_id: str) -> List[AssignmentEntry]:
        return list(self._get(incident_id).assigned_volunteers)

    def add_assignments(
        self,
        incident_id: str,
        volunteer_ids: Iterable[str],
        assigned_by: Optional[str],
    ) -> List[AssignmentEntry]:
        volunteer_ids = list(volunteer_ids)

        def apply(incident: Incident) -> List[AssignmentEntry]:
            return self.add_entries(incident, volunteer_ids, assigned_by)

        _, added = self.incidents.mutate(incident_id, apply)
        return added

    def record_response(
        self,
        incident_id: str,
        volunteer_id: str,
        new_status: AssignmentStatus,
    ) -> AssignmentEntry:
        def apply(incident: Incident) -> AssignmentEntry:
            return self.apply_response(incident, volunteer_id, new_status)

        _, entry = self.incidents.mutate(incident_id, apply)
        return entry

    def all_declined(self, incident_id: str) -> bool:
        return self.every_declined(self._get(incident_id))
