import logging
from typing import Optional

from cera.core.settings import settings
from .base import LoggingPushProvider, PushProvider
from .expo_provider import ExpoPushProvider

logger = logging.getLogger(__name__)

_provider_instance: Optional[PushProvider] = None


def get_push_provider() -> PushProvider:
    """
    Resolve the active push provider based on settings.

    Rules:
    - Default: Expo push API (what the mobile app registers tokens with).
    - PUSH_PROVIDER='fcm': Firebase Cloud Messaging; falls back to logging
      if the Firebase app cannot be initialized.
    - PUSH_PROVIDER='none': log only.
    """
    global _provider_instance
    if _provider_instance is not None:
        return _provider_instance

    provider_name = (settings.PUSH_PROVIDER or "expo").lower()

    if provider_name == "fcm":
        try:
            from cera.config.firebase import initialize_firebase_app
            from .fcm_provider import FCMPushProvider

            initialize_firebase_app()
            _provider_instance = FCMPushProvider()
            logger.info("Push provider initialized: fcm")
            return _provider_instance
        except Exception as e:
            logger.warning(f"Failed to initialize FCMPushProvider: {e}. Falling back to logging provider.")
            _provider_instance = LoggingPushProvider()
            return _provider_instance

    if provider_name == "none":
        _provider_instance = LoggingPushProvider()
    else:
        _provider_instance = ExpoPushProvider(
            url=settings.EXPO_PUSH_URL,
            timeout=settings.PUSH_TIMEOUT_SECONDS,
        )
    logger.info(f"Push provider initialized: {_provider_instance.name}")
    return _provider_instance
