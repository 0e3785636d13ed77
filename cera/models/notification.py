"""
Notification models: persisted in-app records and outgoing requests.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Dict, Any

from cera.utils.timestamps import utcnow


class NotificationRequest(BaseModel):
    """One message for one recipient, produced by the dispatcher."""
    recipient_id: str
    title: str
    body: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Notification(BaseModel):
    """In-app notification as stored for the notifications tab."""
    id: str = ""
    user: str
    title: str
    body: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
