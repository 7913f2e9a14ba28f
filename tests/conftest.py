import os
import sys
from typing import Any, Callable, Dict, List, Optional

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rubble_sync.models.report import NewReport  # noqa: E402
from rubble_sync.services.local_store import LocalReportStore  # noqa: E402
from rubble_sync.services.notifications import Notifier, SyncEvents  # noqa: E402
from rubble_sync.services.remote_backend import AuthSession, RemoteBackendError  # noqa: E402


class FakeBackend:
    """In-memory stand-in for :class:`RemoteBackend`."""

    def __init__(
        self,
        remote_ids: Optional[List[str]] = None,
        fail_insert: Optional[Callable[[Dict[str, Any]], bool]] = None,
        fail_upload: bool = False,
    ):
        self.inserted: List[Dict[str, Any]] = []
        self.insert_calls: List[Dict[str, Any]] = []
        self.uploads: List[Dict[str, Any]] = []
        self._remote_ids = list(remote_ids or [])
        self._counter = 0
        self.fail_insert = fail_insert or (lambda record: False)
        self.fail_upload = fail_upload
        self.session: Optional[AuthSession] = None
        self.closed = False

    def current_session(self) -> Optional[AuthSession]:
        return self.session

    async def insert_report(self, record: Dict[str, Any]) -> str:
        self.insert_calls.append(record)
        if self.fail_insert(record):
            raise RemoteBackendError("network unreachable")
        self.inserted.append(record)
        if self._remote_ids:
            return self._remote_ids.pop(0)
        self._counter += 1
        return f"r-{self._counter}"

    async def upload_object(self, path: str, data: bytes, content_type: str) -> str:
        if self.fail_upload:
            raise RemoteBackendError("storage unavailable", status_code=503)
        self.uploads.append({"path": path, "data": data, "content_type": content_type})
        return self.public_url(path)

    def public_url(self, path: str) -> str:
        return f"https://backend.test/storage/v1/object/public/report-photos/{path}"

    async def list_objects(self, prefix: str) -> List[str]:
        return [u["path"].split("/", 1)[1] for u in self.uploads if u["path"].startswith(prefix + "/")]

    async def remove_objects(self, paths: List[str]) -> None:
        self.uploads = [u for u in self.uploads if u["path"] not in paths]

    async def aclose(self) -> None:
        self.closed = True


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def notify(self, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.sent.append({"title": title, "body": body, "data": data or {}})


class RecordingEvents(SyncEvents):
    def __init__(self):
        super().__init__()
        self.emitted: List[Any] = []
        self.subscribe(self.emitted.append)


def make_report(zone="Gaza City", category="rubble", created_at=1_000, **kwargs) -> NewReport:
    fields = dict(
        zone=zone,
        category=category,
        latitude=31.5,
        longitude=34.45,
        created_at=created_at,
    )
    fields.update(kwargs)
    return NewReport(**fields)


class SleepRecorder:
    """Replaces ``asyncio.sleep`` in backoff loops and records the delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@pytest.fixture()
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'reports.db'}"


@pytest.fixture()
def store(db_url):
    return LocalReportStore(db_url, auto_migrate=True)


@pytest.fixture()
def backend():
    return FakeBackend()


@pytest.fixture()
def sleeper():
    return SleepRecorder()


@pytest.fixture()
def photo_file(tmp_path):
    path = tmp_path / "x.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0jpegdata")
    return path
