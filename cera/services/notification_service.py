"""
Notification Service - consumes domain events and delivers notifications.

DESIGN PRINCIPLES:
- Notification is best-effort and decoupled from the state change that caused it
- Each recipient is attempted independently; one failure never stops the rest
- Failures are logged, never raised to the caller
- Every delivered message is persisted for the in-app notifications tab,
  then pushed to every token the recipient registered
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional
import logging

from cera.core.errors import NotFoundError
from cera.models.events import DomainEvent
from cera.models.notification import Notification, NotificationRequest
from cera.models.user import UserRole
from cera.repositories.base import NotificationRepository, UserRepository
from cera.services.notification_dispatcher import NotificationDispatcher
from cera.services.push.base import PushProvider

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(
        self,
        users: UserRepository,
        notifications: NotificationRepository,
        push: PushProvider,
        dispatcher: Optional[NotificationDispatcher] = None,
        max_workers: int = 8,
    ):
        self.users = users
        self.notifications = notifications
        self.push = push
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.max_workers = max(1, max_workers)

    def deliver(self, user_id: str, title: str, body: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[Notification]:
        """
        Persist one notification and push it to the user's devices.

        Returns the stored notification, or None if the user does not exist.
        Push failures are reported by the provider and do not undo the record.
        """
        user = self.users.get(user_id)
        if user is None:
            logger.info(f"deliver: user not found → {user_id}")
            return None

        note = self.notifications.add(Notification(
            user=user_id,
            title=title,
            body=body,
            metadata=metadata or {},
        ))

        if not user.push_tokens:
            logger.info(f"No push token for {user.display_name}")
            return note

        for push_token in user.push_tokens:
            self.push.send(push_token.token, title, body, metadata or {})
        return note

    def _deliver_isolated(self, request: NotificationRequest) -> bool:
        try:
            return self.deliver(request.recipient_id, request.title, request.body, request.metadata) is not None
        except Exception as e:
            logger.warning(f"Notification to {request.recipient_id} failed: {e}", exc_info=True)
            return False

    def build_requests(self, events: Iterable[DomainEvent]) -> List[NotificationRequest]:
        requests: List[NotificationRequest] = []
        coordinator_ids: Optional[List[str]] = None

        for event in events:
            if coordinator_ids is None and self.dispatcher.needs_coordinators(event):
                coordinator_ids = [u.id for u in self.users.list_by_role(UserRole.COORDINATOR)]
            requests.extend(self.dispatcher.build(event, coordinator_ids or []))
        return requests

    def publish(self, events: Iterable[DomainEvent]) -> int:
        """
        Deliver every notification the events call for.

        Returns how many recipients were reached. Never raises.
        """
        events = list(events)
        if not events:
            return 0

        try:
            requests = self.build_requests(events)
        except Exception as e:
            logger.error(f"Failed to resolve notification recipients for {[e.kind.value for e in events]}: {e}", exc_info=True)
            return 0

        if not requests:
            return 0

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(requests))) as pool:
            results = list(pool.map(self._deliver_isolated, requests))

        delivered = sum(1 for ok in results if ok)
        logger.info(f"Notifications delivered: {delivered}/{len(requests)}")
        return delivered

    def list_for_user(self, user_id: str) -> List[Notification]:
        return self.notifications.list_for_user(user_id)

    def mark_read(self, notification_id: str, user_id: str) -> Notification:
        note = self.notifications.mark_read(notification_id, user_id)
        if note is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return note


# Global service instance (singleton pattern)
_notification_service = None


def get_notification_service() -> NotificationService:
    """
    Get or create NotificationService singleton instance.
    """
    global _notification_service
    if _notification_service is None:
        from cera.core.settings import settings
        from cera.repositories import get_notification_repository, get_user_repository
        from cera.services.push.resolver import get_push_provider

        _notification_service = NotificationService(
            users=get_user_repository(),
            notifications=get_notification_repository(),
            push=get_push_provider(),
            max_workers=settings.NOTIFICATION_WORKERS,
        )
    return _notification_service
