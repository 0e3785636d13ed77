"""
Activity Log - append-only audit trail per incident.

Entries are never edited, reordered or removed. Insertion order is the
chronological order, so history is simply the stored list.
"""

from datetime import datetime
from typing import List, Optional
import logging

from cera.core.errors import NotFoundError
from cera.models.incident import Incident, LogAction, LogEntry
from cera.repositories.base import IncidentRepository
from cera.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class ActivityLog:

    def __init__(self, incidents: IncidentRepository):
        self.incidents = incidents

    @staticmethod
    def record(
        incident: Incident,
        action: LogAction,
        actor: Optional[str] = None,
        target: Optional[str] = None,
        message: str = "",
        now: Optional[datetime] = None,
    ) -> LogEntry:
        """Append to an incident already held inside a mutation."""
        if not actor and not target:
            raise ValueError("A log entry needs an actor or a target")

        entry = LogEntry(
            action=LogAction(action),
            actor=actor,
            target=target,
            message=message,
            timestamp=now or utcnow(),
        )
        incident.logs.append(entry)
        return entry

    def append(
        self,
        incident_id: str,
        action: LogAction,
        actor: Optional[str] = None,
        target: Optional[str] = None,
        message: str = "",
    ) -> LogEntry:
        def apply(incident: Incident) -> LogEntry:
            entry = self.record(incident, action, actor=actor, target=target, message=message)
            incident.updated_at = entry.timestamp
            return entry

        _, entry = self.incidents.mutate(incident_id, apply)
        logger.info(f"Logged '{entry.action.value}' on incident {incident_id}")
        return entry

    def history(self, incident_id: str) -> List[LogEntry]:
        incident = self.incidents.get(incident_id)
        if incident is None:
            raise NotFoundError(f"Incident {incident_id} not found")
        return list(incident.logs)
