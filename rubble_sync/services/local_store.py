"""
Local durable report store.

Reports are written here first and stay UNSYNCED until the upload protocol
reconciles them with the remote backend. The store survives restarts (SQLite
file) and tolerates stores created by earlier app versions that lack the
additive ``owner_id`` / ``remote_id`` columns.
"""
import asyncio
import logging
from enum import Enum
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import delete, func, inspect, insert, literal_column, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..core.config import settings
from ..models.base import Base, generate_uuid, make_engine
from ..models.report import (
    ADDITIVE_COLUMNS,
    LEGACY_COLUMNS,
    NewReport,
    Report,
    ReportRow,
    SyncState,
)

logger = logging.getLogger(__name__)

reports_table = ReportRow.__table__


class WriteOutcome(str, Enum):
    OK = "ok"
    COLUMN_MISSING = "column_missing"
    ERROR = "error"


class LocalReportStore:
    """Async CRUD over the ``reports`` table.

    Every public method awaits :meth:`ready`, so callers may use the store
    before the database has finished opening. Blocking SQLite calls run in a
    worker thread.
    """

    def __init__(self, database_url: Optional[str] = None, auto_migrate: Optional[bool] = None):
        self.database_url = database_url or settings.LOCAL_DATABASE_URL
        self.auto_migrate = settings.LOCAL_DB_AUTO_MIGRATE if auto_migrate is None else auto_migrate
        self._engine: Optional[Engine] = None
        self._columns: Set[str] = set()
        self._init_task: Optional[asyncio.Future] = None

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def ready(self) -> None:
        """Open the database once; concurrent callers share the same attempt."""
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(asyncio.to_thread(self._open))
        task = self._init_task
        try:
            await asyncio.shield(task)
        except Exception:
            # Let the next caller retry
            if self._init_task is task:
                self._init_task = None
            raise

    def _open(self) -> None:
        engine = make_engine(self.database_url)
        try:
            columns = self._prepare_schema(engine)
        except Exception:
            engine.dispose()
            raise
        self._columns = columns
        self._engine = engine
        logger.info("Local store ready at %s (columns=%d)", self.database_url, len(columns))

    def _prepare_schema(self, engine: Engine) -> Set[str]:
        Base.metadata.create_all(bind=engine)
        columns = self._live_columns(engine)
        if not self.auto_migrate:
            return columns
        for name, sql_type in ADDITIVE_COLUMNS.items():
            if name in columns:
                continue
            try:
                with engine.begin() as conn:
                    conn.execute(text(f"ALTER TABLE reports ADD COLUMN {name} {sql_type}"))
                logger.info("Migrated local store: added column %s", name)
            except OperationalError as exc:
                logger.warning("Could not add column %s to local store: %s", name, exc)
        return self._live_columns(engine)

    @staticmethod
    def _live_columns(engine: Engine) -> Set[str]:
        return {c["name"] for c in inspect(engine).get_columns("reports")}

    async def close(self) -> None:
        if self._init_task is not None:
            try:
                await self._init_task
            except Exception as exc:
                logger.debug("Closing store whose initialization failed: %s", exc)
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        self._init_task = None

    @property
    def columns(self) -> Set[str]:
        return set(self._columns)

    # ------------------------------------------------------------------
    # Write helpers
    # ------------------------------------------------------------------

    def _execute_write(self, stmt, columns: Iterable[str]) -> Tuple[WriteOutcome, Optional[Exception], int]:
        """Run one write and classify the result instead of raising."""
        try:
            with self._engine.begin() as conn:
                result = conn.execute(stmt)
            return WriteOutcome.OK, None, result.rowcount
        except OperationalError as exc:
            self._columns = self._live_columns(self._engine)
            if any(name not in self._columns for name in columns):
                return WriteOutcome.COLUMN_MISSING, exc, 0
            return WriteOutcome.ERROR, exc, 0
        except SQLAlchemyError as exc:
            return WriteOutcome.ERROR, exc, 0

    def _select_columns(self):
        return [reports_table.c[name] for name in reports_table.c.keys() if name in self._columns]

    def _query(self, stmt) -> List[Report]:
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [Report.from_mapping(row) for row in rows]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def insert(self, report: NewReport) -> str:
        """Persist a new UNSYNCED report and return its fresh local id."""
        await self.ready()
        local_id = generate_uuid()
        values = {
            "local_id": local_id,
            "zone": report.zone,
            "category": report.category,
            "subcategory": report.subcategory,
            "latitude": report.latitude,
            "longitude": report.longitude,
            "photo_path": report.photo_path,
            "description": report.description,
            "created_at": report.created_at,
            "sync_state": int(SyncState.UNSYNCED),
            "owner_id": report.owner_id,
        }
        await asyncio.to_thread(self._insert, values)
        logger.info("Report saved locally: %s", local_id)
        return local_id

    def _insert(self, values: dict) -> None:
        outcome, error, _ = self._execute_write(insert(reports_table).values(**values), values)
        if outcome is WriteOutcome.COLUMN_MISSING:
            logger.warning("Local store lacks newer columns, writing legacy row: %s", error)
            legacy = {k: v for k, v in values.items() if k in LEGACY_COLUMNS}
            outcome, error, _ = self._execute_write(insert(reports_table).values(**legacy), legacy)
        if outcome is not WriteOutcome.OK:
            raise error

    async def get(self, report_id: str) -> Optional[Report]:
        await self.ready()
        stmt = select(*self._select_columns()).where(reports_table.c.local_id == report_id)
        rows = await asyncio.to_thread(self._query, stmt)
        return rows[0] if rows else None

    async def list_all(self) -> List[Report]:
        """All reports, newest first."""
        await self.ready()
        stmt = select(*self._select_columns()).order_by(reports_table.c.created_at.desc())
        return await asyncio.to_thread(self._query, stmt)

    async def list_by_zone(self, zone: str) -> List[Report]:
        await self.ready()
        stmt = (
            select(*self._select_columns())
            .where(reports_table.c.zone == zone)
            .order_by(reports_table.c.created_at.desc())
        )
        return await asyncio.to_thread(self._query, stmt)

    async def list_unsynced(self) -> List[Report]:
        """Pending reports in processing order: oldest first, then insertion order."""
        await self.ready()
        stmt = (
            select(*self._select_columns())
            .where(reports_table.c.sync_state == int(SyncState.UNSYNCED))
            .order_by(reports_table.c.created_at.asc(), literal_column("rowid").asc())
        )
        return await asyncio.to_thread(self._query, stmt)

    async def count_unsynced(self) -> int:
        await self.ready()
        stmt = select(func.count()).select_from(reports_table).where(
            reports_table.c.sync_state == int(SyncState.UNSYNCED)
        )

        def _count() -> int:
            with self._engine.connect() as conn:
                return conn.execute(stmt).scalar_one()

        return await asyncio.to_thread(_count)

    async def mark_synced(self, report_id: str, remote_id: str) -> bool:
        """Flip a row to SYNCED and record its remote id.

        Returns False (and changes nothing) when the row is missing or
        already synced; a recorded remote id is never overwritten.
        """
        await self.ready()
        return await asyncio.to_thread(self._mark_synced, report_id, remote_id)

    def _mark_synced(self, report_id: str, remote_id: str) -> bool:
        pending = (reports_table.c.local_id == report_id) & (
            reports_table.c.sync_state == int(SyncState.UNSYNCED)
        )
        stmt = update(reports_table).where(pending).values(
            sync_state=int(SyncState.SYNCED),
            remote_id=func.coalesce(reports_table.c.remote_id, remote_id),
        )
        outcome, error, rowcount = self._execute_write(stmt, ("sync_state", "remote_id"))
        if outcome is WriteOutcome.COLUMN_MISSING:
            # Legacy store: the key already holds the remote id after reassignment
            stmt = update(reports_table).where(pending).values(sync_state=int(SyncState.SYNCED))
            outcome, error, rowcount = self._execute_write(stmt, ("sync_state",))
        if outcome is not WriteOutcome.OK:
            raise error
        if rowcount:
            logger.info("Report marked as synced: %s", report_id)
        return bool(rowcount)

    async def reassign_id(self, old_id: str, new_id: str) -> bool:
        """Rewrite a row's primary key in place, keeping every other field."""
        await self.ready()
        stmt = update(reports_table).where(reports_table.c.local_id == old_id).values(local_id=new_id)

        def _reassign() -> bool:
            outcome, error, rowcount = self._execute_write(stmt, ("local_id",))
            if outcome is not WriteOutcome.OK:
                raise error
            return bool(rowcount)

        changed = await asyncio.to_thread(_reassign)
        if changed:
            logger.info("Report %s now keyed by remote id %s", old_id, new_id)
        return changed

    async def delete(self, report_id: str) -> None:
        """Remove a row regardless of its sync state; missing rows are ignored."""
        await self.ready()
        stmt = delete(reports_table).where(reports_table.c.local_id == report_id)

        def _delete() -> None:
            outcome, error, _ = self._execute_write(stmt, ("local_id",))
            if outcome is not WriteOutcome.OK:
                raise error

        await asyncio.to_thread(_delete)
        logger.info("Report deleted: %s", report_id)
