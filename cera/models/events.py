"""
Domain events emitted by committed state changes.

The state machine returns these alongside the mutated incident; the
notification service consumes them after the mutation is persisted.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from enum import Enum


class EventKind(str, Enum):
    INCIDENT_CREATED = "incident_created"
    VOLUNTEERS_DISPATCHED = "volunteers_dispatched"
    VOLUNTEER_ACCEPTED = "volunteer_accepted"
    VOLUNTEER_DECLINED = "volunteer_declined"
    TASK_COMPLETED = "task_completed"
    COORDINATORS_CONTACTED = "coordinators_contacted"
    VOLUNTEER_REGISTERED = "volunteer_registered"


class DomainEvent(BaseModel):
    kind: EventKind
    incident_id: Optional[str] = None
    user_id: Optional[str] = None
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    incident_type: Optional[str] = None
    location_name: Optional[str] = None
    volunteer_ids: List[str] = Field(default_factory=list, description="Newly dispatched volunteers")
    message: Optional[str] = None
