import asyncio

import pytest

from conftest import FakeBackend, RecordingEvents, RecordingNotifier, make_report
from rubble_sync.services.connectivity import ConnectivityMonitor
from rubble_sync.services.notifications import NotificationDispatcher, SummaryPresenter, SyncSummary
from rubble_sync.services.photo_transfer import PhotoTransfer
from rubble_sync.services.report_uploader import ReportUploader
from rubble_sync.services.submission import ReportSubmitter
from rubble_sync.services.sync_scheduler import CONNECTIVITY, INTERVAL, MANUAL, SyncScheduler


class GatedBackend(FakeBackend):
    """Holds every insert until ``gate`` is set."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gate = asyncio.Event()

    async def insert_report(self, record):
        await self.gate.wait()
        return await super().insert_report(record)


class RecordingPresenter(SummaryPresenter):
    def __init__(self):
        self.presented = []

    def present(self, summary):
        self.presented.append(summary)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _scheduler(store, backend, sleeper, monitor=None, **kwargs):
    events = RecordingEvents()
    uploader = ReportUploader(
        store, backend, PhotoTransfer(backend), events=events,
        max_attempts=3, backoff_base=1.0, sleep=sleeper,
    )
    options = dict(interval=3600, debounce=2, watchdog_timeout=60)
    options.update(kwargs)
    scheduler = SyncScheduler(store, uploader, monitor or ConnectivityMonitor(initial=True), **options)
    return scheduler, events


async def _wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
async def test_pass_processes_oldest_first(store, backend, sleeper):
    for ts in (100, 50, 200):
        await store.insert(make_report(created_at=ts, description=str(ts)))
    scheduler, _ = _scheduler(store, backend, sleeper)

    summary = await scheduler.run_pass(MANUAL)

    assert [r["description"] for r in backend.insert_calls] == ["50", "100", "200"]
    assert summary.total == 3 and summary.succeeded == 3
    assert summary.synced_ids == ["r-1", "r-2", "r-3"]
    assert await store.count_unsynced() == 0
    assert scheduler.state.in_progress is False


@pytest.mark.asyncio
async def test_concurrent_triggers_are_no_ops(store, sleeper):
    backend = GatedBackend()
    await store.insert(make_report())
    scheduler, _ = _scheduler(store, backend, sleeper)

    first = asyncio.ensure_future(scheduler.run_pass(MANUAL))
    await _wait_until(lambda: scheduler.state.in_progress)

    assert await scheduler.run_pass(MANUAL) is None
    assert scheduler.request_sync(CONNECTIVITY) is None

    backend.gate.set()
    summary = await first
    assert summary.succeeded == 1
    assert len(backend.insert_calls) == 1
    assert scheduler.state.pass_count == 1


@pytest.mark.asyncio
async def test_automatic_triggers_are_debounced(store, backend, sleeper):
    clock = FakeClock()
    await store.insert(make_report())
    scheduler, _ = _scheduler(store, backend, sleeper, clock=clock)

    await scheduler.run_pass(INTERVAL)
    clock.now = 1.0
    assert await scheduler.run_pass(CONNECTIVITY) is None
    # Manual triggers only wait for the running pass
    assert await scheduler.run_pass(MANUAL) is not None
    clock.now = 3.5
    assert await scheduler.run_pass(INTERVAL) is not None
    assert scheduler.state.pass_count == 3


@pytest.mark.asyncio
async def test_watchdog_releases_stuck_pass(store, sleeper):
    backend = GatedBackend()
    await store.insert(make_report())
    scheduler, _ = _scheduler(store, backend, sleeper, watchdog_timeout=0.05)

    stuck = asyncio.ensure_future(scheduler.run_pass(MANUAL))
    await _wait_until(lambda: scheduler.state.in_progress)
    await _wait_until(lambda: not scheduler.state.in_progress)

    # A new pass may start; the stale one finishing must not clear its flag
    second = asyncio.ensure_future(scheduler.run_pass(MANUAL))
    await _wait_until(lambda: scheduler.state.in_progress)
    assert scheduler.state.current_pass == 2

    backend.gate.set()
    await stuck
    await second
    assert scheduler.state.in_progress is False
    assert await store.count_unsynced() == 0


@pytest.mark.asyncio
async def test_offline_submission_syncs_when_connectivity_returns(store, sleeper):
    """A report queued offline is uploaded and re-keyed once the device is back online."""
    backend = FakeBackend(remote_ids=["r-123"])
    monitor = ConnectivityMonitor(initial=False)
    scheduler, events = _scheduler(store, backend, sleeper, monitor=monitor)
    submitter = ReportSubmitter(store, photo_required_categories=[])
    scheduler.start()
    try:
        local_id = await submitter.submit(None, "hazard", 31.52, 34.47, description="gas leak")
        assert backend.insert_calls == []

        monitor.update(True)
        await scheduler.wait_idle()
    finally:
        await scheduler.stop()

    assert await store.get(local_id) is None
    synced = await store.get("r-123")
    assert synced.is_synced
    assert synced.zone == "Gaza City"
    assert scheduler.state.last_summary.reason == CONNECTIVITY


@pytest.mark.asyncio
async def test_failed_report_is_retried_on_next_pass(store, sleeper):
    backend = FakeBackend(fail_insert=lambda record: True)
    await store.insert(make_report())
    scheduler, events = _scheduler(store, backend, sleeper)

    summary = await scheduler.run_pass(MANUAL)
    assert summary.failed == 1
    assert len(backend.insert_calls) == 3
    assert await store.count_unsynced() == 1

    backend.fail_insert = lambda record: False
    summary = await scheduler.run_pass(MANUAL)
    assert summary.succeeded == 1
    assert await store.count_unsynced() == 0


@pytest.mark.asyncio
async def test_partial_pass_notifies_counts(store, sleeper):
    backend = FakeBackend(fail_insert=lambda record: record["description"] == "bad")
    for ts, description in ((1, "ok"), (2, "bad"), (3, "ok")):
        await store.insert(make_report(created_at=ts, description=description))
    notifier = RecordingNotifier()
    presenter = RecordingPresenter()
    scheduler, events = _scheduler(store, backend, sleeper, presenter=presenter, is_foreground=lambda: True)
    NotificationDispatcher(notifier).attach(events)

    summary = await scheduler.run_pass(MANUAL)

    assert (summary.succeeded, summary.failed, summary.outcome) == (2, 1, "partial")
    assert [n["title"] for n in notifier.sent] == ["Report Synced", "Report Synced", "Sync Incomplete"]
    assert notifier.sent[-1]["body"] == (
        "2 reports synced, 1 could not be synced. Will retry when online."
    )
    assert presenter.presented == [summary]
    assert await store.count_unsynced() == 1


@pytest.mark.asyncio
async def test_summary_not_presented_in_background(store, backend, sleeper):
    await store.insert(make_report())
    presenter = RecordingPresenter()
    scheduler, events = _scheduler(store, backend, sleeper, presenter=presenter)
    summary = await scheduler.run_pass(MANUAL)
    assert presenter.presented == []
    assert events.emitted[-1] is summary


@pytest.mark.asyncio
async def test_empty_pass_is_silent(store, backend, sleeper):
    scheduler, events = _scheduler(store, backend, sleeper, is_foreground=lambda: True)
    summary = await scheduler.run_pass(MANUAL)
    assert isinstance(summary, SyncSummary)
    assert summary.total == 0
    assert events.emitted == []


@pytest.mark.asyncio
async def test_manual_sync_skipped_while_offline(store, backend, sleeper):
    await store.insert(make_report())
    scheduler, _ = _scheduler(store, backend, sleeper, monitor=ConnectivityMonitor(initial=False))
    assert await scheduler.run_pass(MANUAL) is None
    assert backend.insert_calls == []


@pytest.mark.asyncio
async def test_unknown_connectivity_never_triggers(store, backend, sleeper):
    await store.insert(make_report())
    monitor = ConnectivityMonitor(initial=True)
    scheduler, _ = _scheduler(store, backend, sleeper, monitor=monitor)
    scheduler.start()
    try:
        await scheduler.wait_idle()
        assert scheduler.state.pass_count == 1
        monitor.report_error(RuntimeError("listener failed"))
        await scheduler.wait_idle()
        assert scheduler.state.pass_count == 1
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_interval_tick_syncs_while_connected(store, backend, sleeper):
    scheduler, events = _scheduler(store, backend, sleeper, interval=0.01, debounce=0)
    scheduler.start()
    try:
        await scheduler.wait_idle()
        await store.insert(make_report())
        await _wait_until(lambda: any(isinstance(e, SyncSummary) for e in events.emitted))
    finally:
        await scheduler.stop()
        await scheduler.wait_idle()

    summaries = [e for e in events.emitted if isinstance(e, SyncSummary)]
    assert [(s.reason, s.succeeded) for s in summaries] == [(INTERVAL, 1)]
    assert await store.count_unsynced() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [False, None])
async def test_interval_tick_ignored_unless_connected(store, backend, sleeper, status):
    await store.insert(make_report())
    monitor = ConnectivityMonitor(initial=status)
    scheduler, _ = _scheduler(store, backend, sleeper, monitor=monitor, interval=0.01, debounce=0)
    scheduler.start()
    try:
        await asyncio.sleep(0.1)
    finally:
        await scheduler.stop()
    assert scheduler.state.pass_count == 0
    assert backend.insert_calls == []
