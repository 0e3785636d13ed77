"""
User models for the directory, volunteer onboarding and actor resolution.
"""

import uuid
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Union
from enum import Enum

from cera.models.incident import GeoPoint
from cera.utils.timestamps import utcnow


class UserRole(str, Enum):
    RESIDENT = "resident"
    VOLUNTEER = "volunteer"
    COORDINATOR = "coordinator"


class UserStatus(str, Enum):
    """Availability. Only active and busy volunteers can be dispatched."""
    ACTIVE = "active"
    BUSY = "busy"
    AWAY = "away"
    OFFLINE = "offline"


DISPATCHABLE_STATUSES = {UserStatus.ACTIVE, UserStatus.BUSY}


class PushToken(BaseModel):
    platform: str = "expo"
    token: str


class WorkLog(BaseModel):
    incident_id: str
    hours: float
    date: datetime = Field(default_factory=utcnow)


class EmergencyContact(BaseModel):
    name: str = ""
    relation: str = ""
    phone: str = ""


class FileCategory(str, Enum):
    CERTIFICATE = "Certificate"
    ID = "ID"
    TRAINING = "Training"
    OTHER = "Other"


class UserFile(BaseModel):
    """A credential document a volunteer uploaded (certificate, ID, training record)."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    url: str
    ref: str = ""
    name: str
    type: str = ""
    size: int = 0
    category: FileCategory = FileCategory.OTHER
    uploaded_at: datetime = Field(default_factory=utcnow)


WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


class AvailabilitySlot(BaseModel):
    """One day of a volunteer's weekly schedule. Times are free-form "HH:MM" strings."""
    week_number: int
    week_range: str = ""
    day: str
    start: str
    end: str
    repeat_all_week: bool = False


class User(BaseModel):
    id: str
    username: str
    email: str
    phone: str = ""
    role: UserRole = UserRole.RESIDENT
    status: UserStatus = UserStatus.ACTIVE
    certified: bool = False
    approved: bool = False
    approved_at: Optional[datetime] = None
    skills: List[str] = Field(default_factory=list)
    location: Optional[GeoPoint] = None
    push_tokens: List[PushToken] = Field(default_factory=list)
    work_logs: List[WorkLog] = Field(default_factory=list)
    total_volunteer_hours: float = 0
    first_name: str = ""
    last_name: str = ""
    birth_date: Optional[datetime] = None
    address1: str = ""
    address2: str = ""
    city: str = ""
    postal: str = ""
    emergency_contacts: List[EmergencyContact] = Field(default_factory=list)
    avatar_url: str = ""
    avatar_ref: str = ""
    files: List[UserFile] = Field(default_factory=list)
    availability: List[AvailabilitySlot] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def display_name(self) -> str:
        return self.username or self.email or "Unknown"

    @property
    def is_dispatchable(self) -> bool:
        return (
            self.role == UserRole.VOLUNTEER
            and self.approved
            and self.certified
            and self.status in DISPATCHABLE_STATUSES
        )


class Actor(BaseModel):
    """Verified identity of whoever issued a command."""
    id: str
    role: UserRole
    display_name: str = "Unknown"


class UserRegister(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    phone: str = Field("", max_length=30)
    role: UserRole = UserRole.RESIDENT
    skills: List[str] = Field(default_factory=list)
    location: Optional[GeoPoint] = None


class StatusUpdate(BaseModel):
    status: str


class LocationUpdate(BaseModel):
    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)


class PushTokenRequest(BaseModel):
    token: str = Field(..., min_length=1)
    platform: str = "expo"


class WorkLogRequest(BaseModel):
    incident_id: str = Field(..., min_length=1)
    hours: float = Field(..., gt=0, le=24)


class VolunteerStats(BaseModel):
    hours: float
    in_progress: int
    completed: int


class ProfileUpdate(BaseModel):
    """Self-service profile edit. Only fields that are sent are changed."""
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    birth_date: Optional[datetime] = None
    phone: Optional[str] = Field(None, max_length=30)
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    postal: Optional[str] = None
    skills: Optional[Union[List[str], str]] = Field(None, description="List or comma separated string")
    emergency_contacts: Optional[List[EmergencyContact]] = None
    status: Optional[str] = None


class AvailabilityRequest(BaseModel):
    week_number: int = Field(..., gt=0)
    week_range: str = ""
    day: str = Field(..., min_length=1)
    start: str = Field(..., min_length=1)
    end: str = Field(..., min_length=1)
    repeat_all_week: bool = False


class VolunteerFiles(BaseModel):
    user_id: str
    username: str
    files: List[UserFile] = Field(default_factory=list)
