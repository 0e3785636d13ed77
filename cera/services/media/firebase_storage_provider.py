import logging
import os
import uuid

from cera.core.errors import UpstreamError
from .base import MediaStore, StoredMedia

logger = logging.getLogger(__name__)


class FirebaseStorageProvider(MediaStore):
    """
    Cloud Storage bucket attached to the Firebase project.

    Each upload gets a unique object name under `folder`; the object name is
    the deletable reference.
    """

    def __init__(self, bucket, folder: str = "cera/incidents", timeout: float = 30.0):
        self.bucket = bucket
        self.folder = folder.strip("/")
        self.timeout = timeout

    def _object_name(self, filename: str) -> str:
        _, ext = os.path.splitext(filename or "")
        return f"{self.folder}/{uuid.uuid4().hex}{ext.lower() or '.jpg'}"

    def store(self, data: bytes, filename: str, content_type: str) -> StoredMedia:
        name = self._object_name(filename)
        try:
            blob = self.bucket.blob(name)
            blob.upload_from_string(data, content_type=content_type, timeout=self.timeout)
            blob.make_public()
        except Exception as e:
            logger.error(f"Photo upload failed for {filename}: {e}", exc_info=True)
            raise UpstreamError(f"Photo upload failed for {filename}")

        logger.info(f"Stored photo {filename} as {name}")
        return StoredMedia(url=blob.public_url, ref=name)

    def delete(self, ref: str) -> None:
        try:
            self.bucket.blob(ref).delete(timeout=self.timeout)
            logger.info(f"Deleted stored photo {ref}")
        except Exception as e:
            logger.warning(f"Storage delete failed for {ref}: {e}")
