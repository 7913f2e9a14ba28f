from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Mapping, Optional

from sqlalchemy import Column, Float, Integer, String, Text
from .base import Base


class ReportCategory(str, Enum):
    RUBBLE = "rubble"
    HAZARD = "hazard"
    BLOCKED_ROAD = "blocked_road"

    @classmethod
    def values(cls):
        return [c.value for c in cls]


class SyncState(IntEnum):
    UNSYNCED = 0
    SYNCED = 1


class ReportRow(Base):
    __tablename__ = "reports"

    local_id = Column(String, primary_key=True)
    zone = Column(String, nullable=False)
    category = Column(String, nullable=False)  # rubble | hazard | blocked_road
    subcategory = Column(String, nullable=True)  # e.g. "materials:concrete|hazards:uxo"
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    photo_path = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(Integer, nullable=False, index=True)  # epoch millis
    sync_state = Column(Integer, nullable=False, default=SyncState.UNSYNCED)

    # Added after the first release; older stores may lack them
    owner_id = Column(String, nullable=True)
    remote_id = Column(String, nullable=True)


# Columns present in every store ever shipped
LEGACY_COLUMNS = (
    "local_id", "zone", "category", "subcategory", "latitude", "longitude",
    "photo_path", "description", "created_at", "sync_state",
)
ADDITIVE_COLUMNS = {
    "owner_id": "TEXT",
    "remote_id": "TEXT",
}


@dataclass
class NewReport:
    """Payload of a report before the store assigns its identity and state."""
    zone: str
    category: str
    latitude: float
    longitude: float
    created_at: int
    subcategory: Optional[str] = None
    photo_path: Optional[str] = None
    description: Optional[str] = None
    owner_id: Optional[str] = None


@dataclass
class Report:
    """A report row as read back from the local store."""
    local_id: str
    zone: str
    category: str
    latitude: float
    longitude: float
    created_at: int
    sync_state: SyncState = SyncState.UNSYNCED
    subcategory: Optional[str] = None
    photo_path: Optional[str] = None
    description: Optional[str] = None
    owner_id: Optional[str] = None
    remote_id: Optional[str] = None

    @property
    def is_synced(self) -> bool:
        return self.sync_state == SyncState.SYNCED

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "Report":
        sync_state = SyncState(int(row.get("sync_state") or 0))
        remote_id = row.get("remote_id")
        if remote_id is None and sync_state == SyncState.SYNCED:
            # Stores without a remote_id column carry it in the key
            remote_id = row["local_id"]
        return cls(
            local_id=row["local_id"],
            zone=row["zone"],
            category=row["category"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            created_at=row["created_at"],
            sync_state=sync_state,
            subcategory=row.get("subcategory") or None,
            photo_path=row.get("photo_path") or None,
            description=row.get("description") or None,
            owner_id=row.get("owner_id"),
            remote_id=remote_id,
        )

    def to_dict(self) -> dict:
        return {
            "local_id": self.local_id,
            "remote_id": self.remote_id,
            "zone": self.zone,
            "category": self.category,
            "subcategory": self.subcategory,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "photo_path": self.photo_path,
            "description": self.description,
            "created_at": self.created_at,
            "synced": self.is_synced,
            "owner_id": self.owner_id,
        }
