"""
Repository contracts.

Repositories hide storage details (Firestore, in-process dicts) from the
incident core. Consumers work with the pydantic models, never with documents.
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

from cera.models.incident import Incident, IncidentStatus
from cera.models.notification import Notification
from cera.models.user import User, UserRole

T = TypeVar("T")


class IncidentRepository(ABC):
    """
    Contract:
    - `mutate` is the only way to change a stored incident. It runs `fn` on a
      private working copy under exclusive per-incident access and persists
      the copy only if `fn` returns normally. An exception leaves the stored
      incident untouched and propagates.
    - `fn` may be invoked more than once (optimistic retries), so it must
      not have side effects outside the incident it receives.
    - List methods return newest-first by `created_at`.
    """

    @abstractmethod
    def create(self, incident: Incident) -> Incident:
        """Persist a new incident and return it with its generated id."""
        raise NotImplementedError

    @abstractmethod
    def get(self, incident_id: str) -> Optional[Incident]:
        raise NotImplementedError

    @abstractmethod
    def mutate(self, incident_id: str, fn: Callable[[Incident], T]) -> Tuple[Incident, T]:
        """Atomic read-modify-write. Raises NotFoundError for unknown ids."""
        raise NotImplementedError

    @abstractmethod
    def list(self, statuses: Optional[Iterable[IncidentStatus]] = None) -> List[Incident]:
        raise NotImplementedError

    @abstractmethod
    def list_by_reporter(self, reporter_id: str) -> List[Incident]:
        raise NotImplementedError

    @abstractmethod
    def list_by_volunteer(self, volunteer_id: str) -> List[Incident]:
        """Incidents with an assignment entry (any status) for the volunteer."""
        raise NotImplementedError

    @abstractmethod
    def list_in_bounds(self, min_lat: float, max_lat: float, min_lon: float, max_lon: float) -> List[Incident]:
        """Candidate incidents whose location lies inside the lat/lon box."""
        raise NotImplementedError


class UserRepository(ABC):

    @abstractmethod
    def create(self, user: User) -> User:
        raise NotImplementedError

    @abstractmethod
    def get(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    def get_many(self, user_ids: Iterable[str]) -> List[User]:
        """Users that exist among `user_ids`, in the order requested."""
        raise NotImplementedError

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    def update(self, user_id: str, fn: Callable[[User], T]) -> Tuple[User, T]:
        """Atomic read-modify-write. Raises NotFoundError for unknown ids."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, user_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def list_by_role(self, role: UserRole) -> List[User]:
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> List[User]:
        raise NotImplementedError


class NotificationRepository(ABC):

    @abstractmethod
    def add(self, notification: Notification) -> Notification:
        raise NotImplementedError

    @abstractmethod
    def list_for_user(self, user_id: str) -> List[Notification]:
        """Newest first."""
        raise NotImplementedError

    @abstractmethod
    def mark_read(self, notification_id: str, user_id: str) -> Optional[Notification]:
        """Mark read if it exists and belongs to `user_id`; else None."""
        raise NotImplementedError
