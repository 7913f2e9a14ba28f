"""
Single-report upload protocol.

For one pending report: resolve identity, upload the photo (optional), build
the remote record, insert it, re-key the local row with the remote id, mark
it synced and emit a :class:`ReportSynced` event. The whole attempt is
retried with exponential backoff; exhausted retries leave the row UNSYNCED
for the next pass.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from ..core.config import settings
from ..models.report import Report
from .local_store import LocalReportStore
from .notifications import ReportSynced, SyncEvents
from .photo_transfer import PhotoTransfer
from .remote_backend import RemoteBackend

logger = logging.getLogger(__name__)

INITIAL_REMOTE_STATUS = "pending"


@dataclass
class UploadResult:
    local_id: str
    success: bool
    attempts: int
    remote_id: Optional[str] = None
    photo_url: Optional[str] = None
    error: Optional[str] = None


def iso_timestamp(epoch_millis: int) -> str:
    return datetime.fromtimestamp(epoch_millis / 1000, tz=timezone.utc).isoformat()


def build_remote_record(
    report: Report,
    owner_id: Optional[str],
    photo_url: Optional[str],
    include_client_ref: bool = False,
) -> Dict[str, Any]:
    record = {
        "zone": report.zone,
        "category": report.category,
        "subcategory": report.subcategory,
        "latitude": report.latitude,
        "longitude": report.longitude,
        "description": report.description,
        "timestamp": iso_timestamp(report.created_at),
        "owner_id": owner_id,
        "status": INITIAL_REMOTE_STATUS,
        "photo_url": photo_url,
    }
    if include_client_ref:
        record["client_ref"] = report.local_id
    return record


class ReportUploader:
    def __init__(
        self,
        store: LocalReportStore,
        backend: RemoteBackend,
        photos: PhotoTransfer,
        events: Optional[SyncEvents] = None,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        include_client_ref: Optional[bool] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.backend = backend
        self.photos = photos
        self.events = events or SyncEvents()
        self.max_attempts = max_attempts or settings.SYNC_MAX_ATTEMPTS
        self.backoff_base = settings.SYNC_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
        self.include_client_ref = (
            settings.SEND_CLIENT_REFERENCE if include_client_ref is None else include_client_ref
        )
        self._sleep = sleep

    async def sync_report(self, report: Report) -> UploadResult:
        """Run the protocol with retries. Never raises."""
        delay = self.backoff_base
        photo_url: Optional[str] = None
        remote_id: Optional[str] = None
        last_error: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            logger.info(
                "Syncing report %s (attempt %d/%d)", report.local_id, attempt, self.max_attempts
            )
            try:
                if report.photo_path and photo_url is None and remote_id is None:
                    photo_url = await self.photos.upload(report.photo_path, report.local_id)
                    if photo_url is None:
                        logger.warning("Syncing report %s without its photo", report.local_id)
                # An accepted insert is never repeated within the same call
                if remote_id is None:
                    remote_id = await self._insert(report, photo_url)
                await self._reconcile(report, remote_id)
            except Exception as exc:
                last_error = str(exc)
                logger.error(
                    "Sync attempt %d failed for report %s: %s", attempt, report.local_id, exc
                )
                if attempt < self.max_attempts:
                    logger.info("Retrying report %s in %.1fs", report.local_id, delay)
                    await self._sleep(delay)
                    delay *= 2
                continue

            self.events.emit(ReportSynced(
                local_id=report.local_id,
                report_id=remote_id,
                category=report.category,
                photo_url=photo_url,
            ))
            return UploadResult(
                local_id=report.local_id,
                success=True,
                attempts=attempt,
                remote_id=remote_id,
                photo_url=photo_url,
            )

        logger.error("Failed to sync report %s after %d attempts", report.local_id, self.max_attempts)
        return UploadResult(
            local_id=report.local_id,
            success=False,
            attempts=self.max_attempts,
            photo_url=photo_url,
            error=last_error,
        )

    async def _insert(self, report: Report, photo_url: Optional[str]) -> str:
        # Anonymous submissions are allowed; a session overrides the submitted owner
        session = self.backend.current_session()
        owner_id = session.user_id if session else report.owner_id

        record = build_remote_record(report, owner_id, photo_url, self.include_client_ref)
        remote_id = await self.backend.insert_report(record)
        logger.info("Report %s accepted remotely as %s", report.local_id, remote_id)
        return remote_id

    async def _reconcile(self, report: Report, remote_id: str) -> None:
        # Re-key before declaring success so lookups by remote id work at once
        if remote_id != report.local_id:
            await self.store.reassign_id(report.local_id, remote_id)
        await self.store.mark_synced(remote_id, remote_id)
