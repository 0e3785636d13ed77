"""
Notification Dispatcher - maps a domain event to the messages it should produce.

Pure: no I/O, no delivery. Given an event and the current coordinator ids it
returns one NotificationRequest per recipient.

AUDIENCES:
- incident created → all coordinators
- volunteer accepted / declined / completed / contacted coordinators → all coordinators
- volunteers dispatched → each newly added volunteer only
- volunteer registered (pending approval) → all coordinators
"""

from typing import Dict, Iterable, List
import logging

from cera.models.events import DomainEvent, EventKind
from cera.models.notification import NotificationRequest

logger = logging.getLogger(__name__)


class NotificationDispatcher:

    COORDINATOR_EVENTS = {
        EventKind.INCIDENT_CREATED,
        EventKind.VOLUNTEER_ACCEPTED,
        EventKind.VOLUNTEER_DECLINED,
        EventKind.TASK_COMPLETED,
        EventKind.COORDINATORS_CONTACTED,
        EventKind.VOLUNTEER_REGISTERED,
    }

    TITLES: Dict[EventKind, str] = {
        EventKind.INCIDENT_CREATED: "New Incident Reported",
        EventKind.VOLUNTEERS_DISPATCHED: "New Task Assigned",
        EventKind.VOLUNTEER_ACCEPTED: "Volunteer Accepted Task",
        EventKind.VOLUNTEER_DECLINED: "Volunteer Declined Task",
        EventKind.TASK_COMPLETED: "Task Completed",
        EventKind.COORDINATORS_CONTACTED: "Volunteer Needs Assistance",
        EventKind.VOLUNTEER_REGISTERED: "New Volunteer Request",
    }

    @classmethod
    def needs_coordinators(cls, event: DomainEvent) -> bool:
        return event.kind in cls.COORDINATOR_EVENTS

    @staticmethod
    def body_for(event: DomainEvent) -> str:
        incident_type = event.incident_type or "Unknown Type"
        kind = event.kind

        if kind == EventKind.INCIDENT_CREATED:
            return f"{event.actor_name or 'A resident'} reported a new {incident_type} incident."
        if kind == EventKind.VOLUNTEERS_DISPATCHED:
            return f"You have been assigned to handle incident: {incident_type}"
        if kind == EventKind.VOLUNTEER_ACCEPTED:
            return f'{event.actor_name or "A volunteer"} accepted "{incident_type}" incident.'
        if kind == EventKind.VOLUNTEER_DECLINED:
            return f'{event.actor_name or "A volunteer"} declined "{incident_type}" incident.'
        if kind == EventKind.TASK_COMPLETED:
            return f'{event.actor_name or "A volunteer"} completed "{incident_type}" incident.'
        if kind == EventKind.COORDINATORS_CONTACTED:
            location = event.location_name or "Unknown Location"
            if event.message:
                return f"{event.message} (Incident: {incident_type} at {location})"
            return f"A volunteer requested guidance for incident: {incident_type} at {location}."
        if kind == EventKind.VOLUNTEER_REGISTERED:
            return f"{event.actor_name or 'A new user'} has requested approval to join as a volunteer."
        raise ValueError(f"No notification text for event {kind}")

    @staticmethod
    def metadata_for(event: DomainEvent) -> Dict[str, str]:
        metadata = {"event": event.kind.value}
        if event.incident_id:
            metadata["incident_id"] = event.incident_id
        if event.user_id:
            metadata["user_id"] = event.user_id
        return metadata

    def build(self, event: DomainEvent, coordinator_ids: Iterable[str] = ()) -> List[NotificationRequest]:
        if event.kind == EventKind.VOLUNTEERS_DISPATCHED:
            recipients = list(dict.fromkeys(event.volunteer_ids))
        elif self.needs_coordinators(event):
            recipients = list(dict.fromkeys(coordinator_ids))
        else:
            logger.debug(f"No audience for event {event.kind.value}")
            return []

        title = self.TITLES[event.kind]
        body = self.body_for(event)
        metadata = self.metadata_for(event)
        return [
            NotificationRequest(recipient_id=recipient, title=title, body=body, metadata=dict(metadata))
            for recipient in recipients
        ]
