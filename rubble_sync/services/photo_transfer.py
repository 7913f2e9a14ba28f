"""
Photo transfer to remote object storage.

A single-shot upload: no retries here, and failure is reported as ``None``
so the upload protocol can still sync the record without its photo.
"""
import asyncio
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional
from urllib.parse import unquote, urlparse

from .remote_backend import RemoteBackend, RemoteBackendError

logger = logging.getLogger(__name__)

PHOTO_CONTENT_TYPE = "image/jpeg"


def local_path_from_uri(uri: str) -> Path:
    """Accept plain paths as well as ``file://`` URIs."""
    if uri.startswith("file:"):
        return Path(unquote(urlparse(uri).path))
    return Path(uri)


class PhotoTransfer:
    def __init__(self, backend: RemoteBackend, clock: Callable[[], float] = time.time):
        self.backend = backend
        self._clock = clock

    def object_path(self, report_id: str) -> str:
        return f"{report_id}/{int(self._clock() * 1000)}.jpg"

    async def upload(self, local_uri: str, report_id: str) -> Optional[str]:
        """Upload the photo for ``report_id``; returns its public URL or None."""
        path = local_path_from_uri(local_uri)
        try:
            if not path.is_file():
                logger.warning("Photo for report %s does not exist: %s", report_id, local_uri)
                return None
            data = await asyncio.to_thread(path.read_bytes)
            object_path = self.object_path(report_id)
            url = await self.backend.upload_object(object_path, data, PHOTO_CONTENT_TYPE)
        except (OSError, RemoteBackendError) as exc:
            logger.error("Photo upload failed for report %s: %s", report_id, exc)
            return None

        logger.info("Photo uploaded for report %s: %s", report_id, url)
        return url

    async def list_photos(self, report_id: str) -> List[str]:
        """Public URLs of every photo stored for a report; empty on error."""
        try:
            names = await self.backend.list_objects(report_id)
        except RemoteBackendError as exc:
            logger.error("Could not list photos for report %s: %s", report_id, exc)
            return []
        return [self.backend.public_url(f"{report_id}/{name}") for name in names]

    async def delete_photos(self, report_id: str) -> int:
        """Remove every stored photo of a report; returns how many were removed."""
        try:
            names = await self.backend.list_objects(report_id)
            if not names:
                return 0
            await self.backend.remove_objects([f"{report_id}/{name}" for name in names])
        except RemoteBackendError as exc:
            logger.error("Could not delete photos for report %s: %s", report_id, exc)
            return 0
        logger.info("Deleted %d photos for report %s", len(names), report_id)
        return len(names)
