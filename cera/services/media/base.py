from abc import ABC, abstractmethod
import logging

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class StoredMedia(BaseModel):
    """Where an uploaded file lives and how to delete it later."""
    url: str
    ref: str


class MediaStore(ABC):
    """
    Abstract media store for incident photos.

    Contract:
    - `store` returns the public URL and a deletable reference, or raises
      UpstreamError. It must not return partially stored media.
    - `delete` is best-effort: it logs failures and MUST NEVER raise.
    - Implementations enforce their own network timeouts.
    """

    @abstractmethod
    def store(self, data: bytes, filename: str, content_type: str) -> StoredMedia:
        raise NotImplementedError

    @abstractmethod
    def delete(self, ref: str) -> None:
        raise NotImplementedError
