from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class PushProvider(ABC):
    """
    Abstract push-notification provider.

    Contract:
    - Input: a device push token, title, body and optional data payload.
    - Output: True if the provider accepted the message, False otherwise.
    - MUST NEVER raise upstream exceptions; failures are logged only.
    - Implementations should enforce a network timeout.
    """

    name = "base"

    @abstractmethod
    def send(self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> bool:
        raise NotImplementedError


class LoggingPushProvider(PushProvider):
    """Logs instead of sending. Used when PUSH_PROVIDER='none'."""

    name = "none"

    def send(self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> bool:
        logger.info(f"[PUSH:none] {title!r} → {token[:12]}…")
        return True
