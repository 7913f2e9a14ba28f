"""
Wiring of the sync engine: one instance of each service sharing a store,
a backend client, a connectivity monitor and an event stream.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from ..core.config import Settings, settings as default_settings
from .connectivity import ConnectivityMonitor, HttpReachabilityProbe
from .local_store import LocalReportStore
from .notifications import LoggingNotifier, NotificationDispatcher, Notifier, SummaryPresenter, SyncEvents
from .photo_transfer import PhotoTransfer
from .remote_backend import RemoteBackend
from .report_uploader import ReportUploader
from .submission import ReportSubmitter
from .sync_scheduler import SyncScheduler

logger = logging.getLogger(__name__)


class AppLifecycle:
    """Tracks whether the app is in the foreground."""

    def __init__(self, foreground: bool = True):
        self.foreground = foreground

    def is_foreground(self) -> bool:
        return self.foreground


@dataclass
class SyncServices:
    store: LocalReportStore
    backend: RemoteBackend
    monitor: ConnectivityMonitor
    events: SyncEvents
    photos: PhotoTransfer
    uploader: ReportUploader
    scheduler: SyncScheduler
    submitter: ReportSubmitter
    dispatcher: NotificationDispatcher
    lifecycle: AppLifecycle
    probe: Optional[HttpReachabilityProbe] = None

    async def start(self) -> None:
        await self.store.ready()
        if self.probe is not None:
            self.probe.start()
        self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        if self.probe is not None:
            await self.probe.stop()
        await self.scheduler.wait_idle()
        await self.backend.aclose()
        await self.store.close()


def build_services(
    config: Optional[Settings] = None,
    backend: Optional[RemoteBackend] = None,
    notifier: Optional[Notifier] = None,
    presenter: Optional[SummaryPresenter] = None,
) -> SyncServices:
    cfg = config or default_settings
    store = LocalReportStore(cfg.LOCAL_DATABASE_URL, auto_migrate=cfg.LOCAL_DB_AUTO_MIGRATE)
    backend = backend or RemoteBackend(
        base_url=cfg.REMOTE_URL,
        anon_key=cfg.REMOTE_ANON_KEY,
        bucket=cfg.PHOTO_BUCKET,
        timeout=cfg.REMOTE_TIMEOUT_SECONDS,
    )
    monitor = ConnectivityMonitor()
    events = SyncEvents()
    dispatcher = NotificationDispatcher(notifier or LoggingNotifier())
    dispatcher.attach(events)
    lifecycle = AppLifecycle()

    photos = PhotoTransfer(backend)
    uploader = ReportUploader(
        store,
        backend,
        photos,
        events=events,
        max_attempts=cfg.SYNC_MAX_ATTEMPTS,
        backoff_base=cfg.SYNC_BACKOFF_BASE_SECONDS,
        include_client_ref=cfg.SEND_CLIENT_REFERENCE,
    )
    scheduler = SyncScheduler(
        store,
        uploader,
        monitor,
        events=events,
        interval=cfg.SYNC_INTERVAL_SECONDS,
        debounce=cfg.SYNC_DEBOUNCE_SECONDS,
        watchdog_timeout=cfg.SYNC_WATCHDOG_SECONDS,
        is_foreground=lifecycle.is_foreground,
        presenter=presenter,
    )
    submitter = ReportSubmitter(store, photo_required_categories=cfg.PHOTO_REQUIRED_CATEGORIES)

    probe = None
    if cfg.CONNECTIVITY_PROBE_URL:
        probe = HttpReachabilityProbe(
            monitor, cfg.CONNECTIVITY_PROBE_URL, interval=cfg.CONNECTIVITY_CHECK_INTERVAL
        )
    else:
        logger.info("No connectivity probe configured; waiting for platform updates")

    return SyncServices(
        store=store,
        backend=backend,
        monitor=monitor,
        events=events,
        photos=photos,
        uploader=uploader,
        scheduler=scheduler,
        submitter=submitter,
        dispatcher=dispatcher,
        lifecycle=lifecycle,
        probe=probe,
    )
