import logging
from typing import Optional

from cera.core.settings import settings
from .base import MediaStore
from .memory_provider import InMemoryMediaStore

logger = logging.getLogger(__name__)

_store_instance: Optional[MediaStore] = None


def get_media_store() -> MediaStore:
    """
    Resolve the active media store based on settings.

    Rules:
    - MEDIA_PROVIDER='firebase' (default): the project's Cloud Storage bucket.
    - MEDIA_PROVIDER='memory', or USE_MOCK_DB: in-process store.
    """
    global _store_instance
    if _store_instance is not None:
        return _store_instance

    provider_name = (settings.MEDIA_PROVIDER or "firebase").lower()

    if provider_name == "firebase" and not settings.USE_MOCK_DB:
        from cera.config.firebase import get_bucket
        from .firebase_storage_provider import FirebaseStorageProvider

        _store_instance = FirebaseStorageProvider(get_bucket(), folder=settings.MEDIA_FOLDER)
        logger.info("Media store initialized: firebase")
    else:
        _store_instance = InMemoryMediaStore()
        logger.info("Media store initialized: memory")

    return _store_instance
