"""
Pydantic models for incidents, their embedded assignment entries and log entries.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from enum import Enum

from cera.utils.timestamps import utcnow


class IncidentType(str, Enum):
    FIRE = "fire"
    FLOOD = "flood"
    MEDICAL = "medical"
    RESCUE = "rescue"
    ACCIDENT = "accident"
    CRIME = "crime"
    EARTHQUAKE = "earthquake"
    OTHER = "other"


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class IncidentStatus(str, Enum):
    """
    Overall incident lifecycle.

    pending → approved → assigned → in_progress → completed, with
    assigned/in_progress → approved when every assignment is declined.
    """
    PENDING = "pending"
    APPROVED = "approved"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AssignmentStatus(str, Enum):
    """Per-volunteer response state within one incident."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class LogAction(str, Enum):
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    APPROVED = "approved"
    RESOLVED = "resolved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CONTACTED_COORDINATORS = "contacted_coordinators"


class GeoPoint(BaseModel):
    """A geographic point with an optional human-readable name."""
    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)
    name: Optional[str] = Field(None, max_length=300)


class AssignmentEntry(BaseModel):
    volunteer: str = Field(..., description="Volunteer user id")
    volunteer_name: Optional[str] = Field(None, description="Volunteer display name at dispatch time")
    assigned_by: Optional[str] = Field(None, description="Coordinator user id")
    assigned_at: datetime = Field(default_factory=utcnow)
    status: AssignmentStatus = AssignmentStatus.PENDING
    responded_at: Optional[datetime] = None


class LogEntry(BaseModel):
    """Immutable audit record. Never edited or removed once appended."""
    action: LogAction
    actor: Optional[str] = None
    target: Optional[str] = None
    message: str = ""
    timestamp: datetime = Field(default_factory=utcnow)

    class Config:
        frozen = True


class Incident(BaseModel):
    id: str = ""
    reporter: str
    reporter_name: str = Field("Unknown", description="Reporter display name at creation time")
    type: IncidentType
    custom_type: str = ""
    description: str = ""
    severity: Severity = Severity.LOW
    affected: int = Field(0, ge=0)
    photos: List[str] = Field(default_factory=list)
    photo_refs: List[str] = Field(default_factory=list, description="Deletable storage refs, index-aligned with photos")
    photo_url: str = ""
    location: GeoPoint
    status: IncidentStatus = IncidentStatus.PENDING
    assigned_volunteers: List[AssignmentEntry] = Field(default_factory=list)
    logs: List[LogEntry] = Field(default_factory=list)
    worked_hours: float = 0
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def type_label(self) -> str:
        """What coordinators see: the custom type when given, else the type."""
        return self.custom_type or self.type.value

    @property
    def location_label(self) -> str:
        return self.location.name or "Unknown Location"

    def find_assignment(self, volunteer_id: str) -> Optional[AssignmentEntry]:
        for entry in self.assigned_volunteers:
            if entry.volunteer == volunteer_id:
                return entry
        return None


class IncidentCreate(BaseModel):
    """
    Fields a reporter supplies when creating an incident.
    Photos travel separately as uploads.
    """
    type: Optional[str] = Field(None, description="Incident type; unknown values become 'other'")
    custom_type: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    severity: Optional[str] = None
    affected: Optional[int] = None
    location: GeoPoint


class PhotoUpload(BaseModel):
    """An already-read upload, ready for the media store."""
    filename: str
    content_type: str
    data: bytes


class DispatchRequest(BaseModel):
    volunteer_ids: List[str] = Field(default_factory=list)


class ContactCoordinatorsRequest(BaseModel):
    message: Optional[str] = Field(None, max_length=1000)


class NearbyIncident(Incident):
    """Incident plus the caller-relative assignment projection."""
    distance_km: float
    is_assigned_to_user: bool = False
    user_assignment_status: Optional[AssignmentStatus] = None
