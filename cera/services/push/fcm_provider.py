import logging
from typing import Any, Dict, Optional

from firebase_admin import messaging

from .base import PushProvider

logger = logging.getLogger(__name__)


class FCMPushProvider(PushProvider):
    """
    Firebase Cloud Messaging provider.

    FCM data payloads must be string-to-string, so values are stringified.
    Never raises upstream exceptions; returns False on failure.
    """

    name = "fcm"

    def send(self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> bool:
        try:
            message = messaging.Message(
                token=token,
                notification=messaging.Notification(title=title, body=body),
                data={str(k): str(v) for k, v in (data or {}).items()},
            )
            message_id = messaging.send(message)
            logger.info(f"FCM message sent: {message_id}")
            return True
        except Exception as e:
            logger.warning(f"FCM push error: {e}")
            return False
