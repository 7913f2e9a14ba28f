"""
Sync scheduler.

Decides when a sync pass runs (connectivity restored, interval timer, manual
trigger) and guarantees passes never overlap:

  * an in-progress flag turns concurrent triggers into silent no-ops
  * a debounce window drops automatic triggers arriving too soon after the
    previous pass started
  * a watchdog clears the flag of a pass that runs too long, so one stuck
    upload cannot block every future sync

A pass processes pending reports strictly one at a time, oldest first, and
emits one :class:`SyncSummary` at the end.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Set

from ..core.config import settings
from .connectivity import ConnectivityMonitor
from .local_store import LocalReportStore
from .notifications import SummaryPresenter, SyncEvents, SyncSummary
from .report_uploader import ReportUploader

logger = logging.getLogger(__name__)

MANUAL = "manual"
CONNECTIVITY = "connectivity"
INTERVAL = "interval"
STARTUP = "startup"


@dataclass
class SchedulerState:
    in_progress: bool = False
    current_pass: int = 0
    pass_count: int = 0
    last_started_at: Optional[float] = None
    last_summary: Optional[SyncSummary] = None
    watchdog: Optional[asyncio.TimerHandle] = None

    def to_dict(self) -> dict:
        return {
            "in_progress": self.in_progress,
            "pass_count": self.pass_count,
            "last_started_at": self.last_started_at,
            "last_summary": self.last_summary.to_dict() if self.last_summary else None,
        }


class SyncScheduler:
    def __init__(
        self,
        store: LocalReportStore,
        uploader: ReportUploader,
        monitor: ConnectivityMonitor,
        events: Optional[SyncEvents] = None,
        interval: Optional[float] = None,
        debounce: Optional[float] = None,
        watchdog_timeout: Optional[float] = None,
        is_foreground: Callable[[], bool] = lambda: False,
        presenter: Optional[SummaryPresenter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.uploader = uploader
        self.monitor = monitor
        self.events = events or uploader.events
        self.interval = settings.SYNC_INTERVAL_SECONDS if interval is None else interval
        self.debounce = settings.SYNC_DEBOUNCE_SECONDS if debounce is None else debounce
        self.watchdog_timeout = (
            settings.SYNC_WATCHDOG_SECONDS if watchdog_timeout is None else watchdog_timeout
        )
        self.is_foreground = is_foreground
        self.presenter = presenter or SummaryPresenter()
        self.state = SchedulerState()
        self._clock = clock
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._pass_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Watch connectivity, start the interval timer, and sync once if online."""
        if self._unsubscribe is None:
            self._unsubscribe = self.monitor.on_change(self._on_connectivity_change)
        if self._timer_task is None or self._timer_task.done():
            self._timer_task = asyncio.get_running_loop().create_task(self._interval_loop())
        logger.info(
            "Sync scheduler started (interval=%.0fs, debounce=%.1fs, watchdog=%.0fs)",
            self.interval, self.debounce, self.watchdog_timeout,
        )
        if self.monitor.is_connected():
            self.request_sync(STARTUP)

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None
        self._cancel_watchdog()
        logger.info("Sync scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait for passes started through :meth:`request_sync` to finish."""
        while self._pass_tasks:
            await asyncio.gather(*list(self._pass_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def _on_connectivity_change(self, connected: Optional[bool]) -> None:
        # Unknown status never triggers a sync
        if connected is True:
            logger.info("Connectivity restored, requesting sync")
            self.request_sync(CONNECTIVITY)

    async def _interval_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.monitor.is_connected():
                self.request_sync(INTERVAL)

    def request_sync(self, reason: str) -> Optional[asyncio.Task]:
        """Schedule a pass in the background; returns None when the trigger is dropped."""
        if not self._may_start(reason):
            return None
        task = asyncio.get_running_loop().create_task(self.run_pass(reason))
        self._pass_tasks.add(task)
        task.add_done_callback(self._pass_tasks.discard)
        return task

    def _may_start(self, reason: str) -> bool:
        if self.state.in_progress:
            logger.debug("Sync already in progress, ignoring %s trigger", reason)
            return False
        if reason != MANUAL and self.state.last_started_at is not None:
            elapsed = self._clock() - self.state.last_started_at
            if elapsed < self.debounce:
                logger.debug("Debounced %s trigger (%.2fs since last pass)", reason, elapsed)
                return False
        return True

    # ------------------------------------------------------------------
    # Pass
    # ------------------------------------------------------------------

    async def run_pass(self, reason: str = MANUAL, foreground: Optional[bool] = None) -> Optional[SyncSummary]:
        """Run one sync pass now, unless one is already running.

        Returns the pass summary, or None when the trigger was a no-op.
        """
        if not self._may_start(reason):
            return None
        if reason == MANUAL and self.monitor.status is False:
            logger.info("Manual sync skipped: device is offline")
            return None

        state = self.state
        state.in_progress = True
        state.pass_count += 1
        pass_id = state.pass_count
        state.current_pass = pass_id
        state.last_started_at = self._clock()
        self._arm_watchdog(pass_id)

        summary = SyncSummary(reason=reason, started_at=time.time())
        try:
            await self._process_pending(summary)
        except Exception as exc:
            # Only the pending-queue read can fail here; rows stay UNSYNCED
            logger.error("Sync pass %d aborted: %s", pass_id, exc)
        finally:
            summary.finished_at = time.time()
            if state.current_pass == pass_id:
                self._cancel_watchdog()
                state.in_progress = False
            else:
                logger.warning("Sync pass %d finished after the watchdog released it", pass_id)

        state.last_summary = summary
        if summary.total == 0:
            return summary

        logger.info(
            "Sync pass %d (%s) done: %d succeeded, %d failed",
            pass_id, reason, summary.succeeded, summary.failed,
        )
        self.events.emit(summary)
        show = self.is_foreground() if foreground is None else foreground
        if show:
            try:
                self.presenter.present(summary)
            except Exception as exc:
                logger.warning("Could not present sync summary: %s", exc)
        return summary

    async def _process_pending(self, summary: SyncSummary) -> None:
        pending = await self.store.list_unsynced()
        if not pending:
            logger.info("No reports to sync")
            return

        logger.info("Found %d reports to sync", len(pending))
        summary.total = len(pending)
        for report in pending:
            try:
                result = await self.uploader.sync_report(report)
                ok = result.success
                final_id = result.remote_id or report.local_id
            except Exception as exc:
                logger.error("Unexpected error syncing report %s: %s", report.local_id, exc)
                ok, final_id = False, report.local_id
            if ok:
                summary.succeeded += 1
                summary.synced_ids.append(final_id)
            else:
                summary.failed += 1
                summary.failed_ids.append(report.local_id)

    # ------------------------------------------------------------------
    # Watchdog
    # ------------------------------------------------------------------

    def _arm_watchdog(self, pass_id: int) -> None:
        self._cancel_watchdog()
        loop = asyncio.get_running_loop()
        self.state.watchdog = loop.call_later(self.watchdog_timeout, self._on_watchdog, pass_id)

    def _cancel_watchdog(self) -> None:
        if self.state.watchdog is not None:
            self.state.watchdog.cancel()
            self.state.watchdog = None

    def _on_watchdog(self, pass_id: int) -> None:
        state = self.state
        state.watchdog = None
        if state.in_progress and state.current_pass == pass_id:
            logger.warning(
                "Sync pass %d exceeded %.0fs, releasing the in-progress flag",
                pass_id, self.watchdog_timeout,
            )
            state.in_progress = False
            state.current_pass = 0
