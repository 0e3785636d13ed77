"""
In-process repositories for USE_MOCK_DB mode and tests.

Each incident (and user) has its own mutex. Mutations run on a deep copy that
replaces the stored value only when the mutation function returns, so a
failing command never leaves a half-applied change behind. Reads return
copies so callers cannot alias stored state.
"""

import threading
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, TypeVar

from cera.core.errors import NotFoundError
from cera.models.incident import Incident, IncidentStatus
from cera.models.notification import Notification
from cera.models.user import User, UserRole
from cera.repositories.base import IncidentRepository, NotificationRepository, UserRepository

T = TypeVar("T")


def _new_id() -> str:
    return uuid.uuid4().hex


class KeyedLock:
    """One lock per key, kept only while some caller holds or waits for it."""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of callers using it]
        self._locks: Dict[str, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def __call__(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


class InMemoryIncidentRepository(IncidentRepository):

    def __init__(self):
        self._items: Dict[str, Incident] = {}
        self._lock = KeyedLock()

    def _snapshot(self) -> List[Incident]:
        return [incident.model_copy(deep=True) for incident in list(self._items.values())]

    @staticmethod
    def _newest_first(items: List[Incident]) -> List[Incident]:
        return sorted(items, key=lambda item: item.created_at, reverse=True)

    def create(self, incident: Incident) -> Incident:
        incident = incident.model_copy(deep=True, update={"id": _new_id()})
        with self._lock(incident.id):
            self._items[incident.id] = incident
        return incident.model_copy(deep=True)

    def get(self, incident_id: str) -> Optional[Incident]:
        incident = self._items.get(incident_id)
        return incident.model_copy(deep=True) if incident else None

    def mutate(self, incident_id: str, fn: Callable[[Incident], T]) -> Tuple[Incident, T]:
        with self._lock(incident_id):
            current = self._items.get(incident_id)
            if current is None:
                raise NotFoundError(f"Incident {incident_id} not found")
            working = current.model_copy(deep=True)
            result = fn(working)
            self._items[incident_id] = working
            return working.model_copy(deep=True), result

    def list(self, statuses: Optional[Iterable[IncidentStatus]] = None) -> List[Incident]:
        items = self._snapshot()
        if statuses:
            wanted = {IncidentStatus(s) for s in statuses}
            items = [incident for incident in items if incident.status in wanted]
        return self._newest_first(items)

    def list_by_reporter(self, reporter_id: str) -> List[Incident]:
        return self._newest_first([i for i in self._snapshot() if i.reporter == reporter_id])

    def list_by_volunteer(self, volunteer_id: str) -> List[Incident]:
        return self._newest_first([i for i in self._snapshot() if i.find_assignment(volunteer_id)])

    def list_in_bounds(self, min_lat: float, max_lat: float, min_lon: float, max_lon: float) -> List[Incident]:
        return [
            incident for incident in self._snapshot()
            if min_lat <= incident.location.latitude <= max_lat
            and min_lon <= incident.location.longitude <= max_lon
        ]


class InMemoryUserRepository(UserRepository):

    def __init__(self):
        self._items: Dict[str, User] = {}
        self._lock = KeyedLock()

    def create(self, user: User) -> User:
        user = user.model_copy(deep=True, update={"id": user.id or _new_id()})
        self._items[user.id] = user
        return user.model_copy(deep=True)

    def get(self, user_id: str) -> Optional[User]:
        user = self._items.get(user_id)
        return user.model_copy(deep=True) if user else None

    def get_many(self, user_ids: Iterable[str]) -> List[User]:
        ids = list(dict.fromkeys(user_ids))
        return [self._items[i].model_copy(deep=True) for i in ids if i in self._items]

    def get_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        for user in list(self._items.values()):
            if user.email == email:
                return user.model_copy(deep=True)
        return None

    def update(self, user_id: str, fn: Callable[[User], T]) -> Tuple[User, T]:
        with self._lock(user_id):
            current = self._items.get(user_id)
            if current is None:
                raise NotFoundError(f"User {user_id} not found")
            working = current.model_copy(deep=True)
            result = fn(working)
            self._items[user_id] = working
            return working.model_copy(deep=True), result

    def delete(self, user_id: str) -> bool:
        with self._lock(user_id):
            return self._items.pop(user_id, None) is not None

    def list_by_role(self, role: UserRole) -> List[User]:
        role = UserRole(role)
        return [u.model_copy(deep=True) for u in list(self._items.values()) if u.role == role]

    def list_all(self) -> List[User]:
        return [u.model_copy(deep=True) for u in list(self._items.values())]


class InMemoryNotificationRepository(NotificationRepository):

    def __init__(self):
        self._items: Dict[str, Notification] = {}
        self._guard = threading.Lock()

    def add(self, notification: Notification) -> Notification:
        notification = notification.model_copy(deep=True, update={"id": _new_id()})
        with self._guard:
            self._items[notification.id] = notification
        return notification.model_copy(deep=True)

    def list_for_user(self, user_id: str) -> List[Notification]:
        with self._guard:
            items = [n.model_copy(deep=True) for n in self._items.values() if n.user == user_id]
        return sorted(items, key=lambda n: n.created_at, reverse=True)

    def mark_read(self, notification_id: str, user_id: str) -> Optional[Notification]:
        with self._guard:
            notification = self._items.get(notification_id)
            if notification is None or notification.user != user_id:
                return None
            notification.read = True
            return notification.model_copy(deep=True)
