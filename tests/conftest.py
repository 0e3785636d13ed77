"""
Pytest configuration for CERA tests.

Everything runs against the in-process stores, the in-memory media store and
a recording push provider. Settings are read at import time, so the
environment is fixed before any cera module is imported.
"""

import os

os.environ["USE_MOCK_DB"] = "true"
os.environ["AUTH_PROVIDER"] = "header"
os.environ["PUSH_PROVIDER"] = "none"
os.environ["MEDIA_PROVIDER"] = "memory"

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from cera.models.incident import GeoPoint, IncidentCreate
from cera.models.user import Actor, User, UserRole, UserStatus
from cera.repositories.memory_repository import (
    InMemoryIncidentRepository,
    InMemoryNotificationRepository,
    InMemoryUserRepository,
)
from cera.services.incident_service import IncidentService
from cera.services.incident_state_machine import IncidentStateMachine
from cera.services.media.memory_provider import InMemoryMediaStore
from cera.services.notification_service import NotificationService
from cera.services.push.base import PushProvider
from cera.services.user_service import UserService

BASE_TIME = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

# Bengaluru city centre
CENTER = GeoPoint(longitude=77.5946, latitude=12.9716, name="MG Road")


class RecordingPushProvider(PushProvider):
    """Remembers every push; raises for tokens listed in `failing_tokens`."""

    name = "recording"

    def __init__(self, failing_tokens=()):
        self.sent: List[Dict[str, Any]] = []
        self.failing_tokens = set(failing_tokens)

    def send(self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> bool:
        if token in self.failing_tokens:
            raise RuntimeError(f"push gateway rejected {token}")
        self.sent.append({"token": token, "title": title, "body": body, "data": data or {}})
        return True


class SteppingClock:
    """Deterministic clock: every call is one minute after the previous one."""

    def __init__(self, start: datetime = BASE_TIME):
        self.current = start

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(minutes=1)
        return self.current


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=user.role, display_name=user.display_name)


def make_incident_data(**overrides) -> IncidentCreate:
    data = {
        "type": "fire",
        "description": "Smoke from a shop",
        "severity": "High",
        "affected": 3,
        "location": CENTER,
    }
    data.update(overrides)
    return IncidentCreate(**data)


# ============================================================================
# STORES & PROVIDERS
# ============================================================================

@pytest.fixture
def incident_repo():
    return InMemoryIncidentRepository()


@pytest.fixture
def user_repo():
    return InMemoryUserRepository()


@pytest.fixture
def notification_repo():
    return InMemoryNotificationRepository()


@pytest.fixture
def push():
    return RecordingPushProvider()


@pytest.fixture
def media():
    return InMemoryMediaStore()


@pytest.fixture
def clock():
    return SteppingClock()


# ============================================================================
# USERS
# ============================================================================

@pytest.fixture
def coordinator(user_repo):
    return user_repo.create(User(
        id="coord-1", username="Dana", email="dana@example.org",
        role=UserRole.COORDINATOR, certified=True, approved=True,
        push_tokens=[{"platform": "expo", "token": "ExponentPushToken[dana]"}],
    ))


@pytest.fixture
def coordinator2(user_repo):
    return user_repo.create(User(
        id="coord-2", username="Morgan", email="morgan@example.org",
        role=UserRole.COORDINATOR, certified=True, approved=True,
    ))


@pytest.fixture
def volunteer(user_repo):
    return user_repo.create(User(
        id="vol-1", username="Sam", email="sam@example.org",
        role=UserRole.VOLUNTEER, certified=True, approved=True,
        push_tokens=[{"platform": "expo", "token": "ExponentPushToken[sam]"}],
    ))


@pytest.fixture
def volunteer2(user_repo):
    return user_repo.create(User(
        id="vol-2", username="Alex", email="alex@example.org",
        role=UserRole.VOLUNTEER, certified=True, approved=True, status=UserStatus.BUSY,
    ))


@pytest.fixture
def offline_volunteer(user_repo):
    return user_repo.create(User(
        id="vol-off", username="Jo", email="jo@example.org",
        role=UserRole.VOLUNTEER, certified=True, approved=True, status=UserStatus.OFFLINE,
    ))


@pytest.fixture
def unapproved_volunteer(user_repo):
    return user_repo.create(User(
        id="vol-new", username="Kim", email="kim@example.org",
        role=UserRole.VOLUNTEER, certified=False, approved=False,
    ))


@pytest.fixture
def resident(user_repo):
    return user_repo.create(User(
        id="res-1", username="Riley", email="riley@example.org",
        role=UserRole.RESIDENT, certified=True, approved=True,
    ))


# ============================================================================
# SERVICES
# ============================================================================

@pytest.fixture
def state_machine(incident_repo, user_repo, clock):
    return IncidentStateMachine(incident_repo, user_repo, clock=clock)


@pytest.fixture
def notification_service(user_repo, notification_repo, push):
    return NotificationService(user_repo, notification_repo, push, max_workers=4)


@pytest.fixture
def incident_service(incident_repo, user_repo, media, notification_service, state_machine):
    return IncidentService(
        incidents=incident_repo,
        users=user_repo,
        media=media,
        notifications=notification_service,
        state_machine=state_machine,
        max_photos=5,
        max_photo_bytes=1024,
        allowed_photo_types={"image/jpeg", "image/png"},
    )


@pytest.fixture
def user_service(user_repo, incident_repo, notification_service, media):
    return UserService(user_repo, incident_repo, notification_service, media, max_file_bytes=2048, max_avatar_bytes=1024)


# ============================================================================
# INCIDENTS
# ============================================================================

@pytest.fixture
def pending_incident(state_machine, resident):
    return state_machine.create(actor_for(resident), make_incident_data()).incident


@pytest.fixture
def approved_incident(state_machine, pending_incident, coordinator):
    return state_machine.approve(actor_for(coordinator), pending_incident.id).incident
