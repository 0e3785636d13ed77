"""
Notification routes - the in-app notifications tab.
"""

from typing import List

from fastapi import APIRouter, Depends

from cera.models.notification import Notification
from cera.models.user import Actor
from cera.services.notification_service import NotificationService, get_notification_service
from cera.utils.security import get_current_actor

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/me", response_model=List[Notification])
def my_notifications(
    actor: Actor = Depends(get_current_actor),
    service: NotificationService = Depends(get_notification_service),
):
    """Newest first."""
    return service.list_for_user(actor.id)


@router.patch("/{notification_id}/read", response_model=Notification)
def mark_read(
    notification_id: str,
    actor: Actor = Depends(get_current_actor),
    service: NotificationService = Depends(get_notification_service),
):
    """Only the recipient can mark a notification read."""
    return service.mark_read(notification_id, actor.id)
