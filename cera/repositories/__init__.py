"""
Repository Pattern - Storage abstraction layer.

Repositories hide storage details from the incident core.
- Firestore: production store (incidents, users, notifications collections)
- In-memory: USE_MOCK_DB=true for local development and tests
"""

import logging
from typing import Optional

from cera.core.settings import settings
from .base import IncidentRepository, NotificationRepository, UserRepository
from .memory_repository import (
    InMemoryIncidentRepository,
    InMemoryNotificationRepository,
    InMemoryUserRepository,
)

logger = logging.getLogger(__name__)

_incidents: Optional[IncidentRepository] = None
_users: Optional[UserRepository] = None
_notifications: Optional[NotificationRepository] = None


def _firestore_db():
    from cera.config.firebase import get_db
    return get_db()


def get_incident_repository() -> IncidentRepository:
    global _incidents
    if _incidents is None:
        if settings.USE_MOCK_DB:
            logger.info("[REPOSITORY] Using in-memory incident store")
            _incidents = InMemoryIncidentRepository()
        else:
            from .firestore_repository import FirestoreIncidentRepository
            _incidents = FirestoreIncidentRepository(_firestore_db())
    return _incidents


def get_user_repository() -> UserRepository:
    global _users
    if _users is None:
        if settings.USE_MOCK_DB:
            _users = InMemoryUserRepository()
        else:
            from .firestore_repository import FirestoreUserRepository
            _users = FirestoreUserRepository(_firestore_db())
    return _users


def get_notification_repository() -> NotificationRepository:
    global _notifications
    if _notifications is None:
        if settings.USE_MOCK_DB:
            _notifications = InMemoryNotificationRepository()
        else:
            from .firestore_repository import FirestoreNotificationRepository
            _notifications = FirestoreNotificationRepository(_firestore_db())
    return _notifications


__all__ = [
    "IncidentRepository",
    "UserRepository",
    "NotificationRepository",
    "get_incident_repository",
    "get_user_repository",
    "get_notification_repository",
]
