import logging
from typing import Any, Dict, Optional

import requests

from .base import PushProvider

logger = logging.getLogger(__name__)


class ExpoPushProvider(PushProvider):
    """
    Expo push API provider for the mobile app.

    - Posts one message per token.
    - Uses a strict timeout.
    - Never raises upstream exceptions; returns False on failure.
    """

    name = "expo"

    def __init__(self, url: str = "https://exp.host/--/api/v2/push/send", timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def send(self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> bool:
        message = {
            "to": token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": data or {},
        }
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(self.url, json=message, headers=headers, timeout=self.timeout)
            if resp.status_code != 200:
                logger.warning(f"Expo push failed with status {resp.status_code}")
                return False

            result: Dict[str, Any] = resp.json()
            status = (result.get("data") or {}).get("status")
            if status != "ok":
                logger.warning(f"Expo push error: {result}")
                return False

            logger.info(f"Push sent to {token[:12]}…")
            return True
        except Exception as e:
            logger.warning(f"Expo push error: {e}")
            return False
