"""
Sync outcome events and the device notification adapter.

The uploader and scheduler only emit events; :class:`NotificationDispatcher`
turns them into fire-and-forget device notifications.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ReportSynced:
    """One report was accepted remotely and reconciled locally."""
    local_id: str
    report_id: str  # final id (remote id)
    category: str
    photo_url: Optional[str] = None


@dataclass
class SyncSummary:
    """Aggregated result of one sync pass."""
    reason: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    started_at: float = 0.0
    finished_at: float = 0.0
    synced_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)

    @property
    def outcome(self) -> str:
        if self.total == 0:
            return "empty"
        if self.failed == 0:
            return "success"
        if self.succeeded == 0:
            return "failure"
        return "partial"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "outcome": self.outcome,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "synced_ids": list(self.synced_ids),
            "failed_ids": list(self.failed_ids),
        }


EventHandler = Callable[[Any], None]


class SyncEvents:
    """Minimal synchronous event stream shared by uploader and scheduler."""

    def __init__(self):
        self._handlers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, event: Any) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as exc:
                logger.error("Event handler %r failed for %s: %s", handler, type(event).__name__, exc)


# ---------------------------------------------------------------------------
# Device surface
# ---------------------------------------------------------------------------

class Notifier:
    """Device-local notification surface."""

    def notify(self, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Default surface for headless runs: notifications go to the log."""

    def notify(self, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> None:
        logger.info("[NOTIFY] %s: %s %s", title, body, data or {})


class SummaryPresenter:
    """Synchronous summary shown while the app is in the foreground."""

    def present(self, summary: SyncSummary) -> None:
        title, body = summary_message(summary)
        logger.info("[ALERT] %s: %s", title, body)


def summary_message(summary: SyncSummary):
    """User-facing title/body for a pass; counts only, never error text."""
    if summary.outcome == "success":
        return "Sync Complete", f"{summary.succeeded} reports synced successfully"
    if summary.outcome == "failure":
        return (
            "Sync Failed",
            f"{summary.failed} reports could not be synced. Will retry when online.",
        )
    return (
        "Sync Incomplete",
        f"{summary.succeeded} reports synced, {summary.failed} could not be synced. "
        "Will retry when online.",
    )


class NotificationDispatcher:
    """Consumes sync events and forwards them to a :class:`Notifier`."""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    def attach(self, events: SyncEvents) -> Callable[[], None]:
        return events.subscribe(self.handle)

    def handle(self, event: Any) -> None:
        if isinstance(event, ReportSynced):
            self._send(
                "Report Synced",
                f"Your {event.category.replace('_', ' ')} report has been uploaded",
                {"report_id": event.report_id, "category": event.category},
            )
        elif isinstance(event, SyncSummary) and event.total > 0:
            title, body = summary_message(event)
            self._send(title, body, {
                "outcome": event.outcome,
                "succeeded": event.succeeded,
                "failed": event.failed,
            })

    def _send(self, title: str, body: str, data: Dict[str, Any]) -> None:
        try:
            self.notifier.notify(title, body, data)
        except Exception as exc:
            logger.warning("Notification %r could not be delivered: %s", title, exc)
