import logging
import threading
import uuid
from typing import Dict

from .base import MediaStore, StoredMedia

logger = logging.getLogger(__name__)


class InMemoryMediaStore(MediaStore):
    """Keeps uploads in process memory. For USE_MOCK_DB mode and tests."""

    BASE_URL = "memory://media"

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self._guard = threading.Lock()

    def store(self, data: bytes, filename: str, content_type: str) -> StoredMedia:
        ref = f"{uuid.uuid4().hex}-{filename}"
        with self._guard:
            self.objects[ref] = data
        return StoredMedia(url=f"{self.BASE_URL}/{ref}", ref=ref)

    def delete(self, ref: str) -> None:
        with self._guard:
            if self.objects.pop(ref, None) is None:
                logger.warning(f"Delete of unknown media ref {ref}")
