"""
Report submission: the producer side of the sync queue.

Validates a new report, stores it locally as UNSYNCED and returns its local
id immediately. Nothing here touches the network.
"""
import logging
import time
from typing import Callable, Iterable, List, Optional

from pydantic import BaseModel, ValidationError, field_validator

from ..core.config import settings
from ..models.report import NewReport, ReportCategory
from .local_store import LocalReportStore
from .zones import zone_from_coords

logger = logging.getLogger(__name__)


class ReportValidationError(ValueError):
    """A submitted report was rejected before reaching the queue."""


def build_subcategory(materials: Iterable[str], hazards: Iterable[str] = ()) -> Optional[str]:
    """Encode selected tags as ``materials:a,b|hazards:c``."""
    materials = [m for m in materials if m]
    hazards = [h for h in hazards if h]
    parts = []
    if materials:
        parts.append("materials:" + ",".join(materials))
    if hazards:
        parts.append("hazards:" + ",".join(hazards))
    return "|".join(parts) or None


class ReportSubmission(BaseModel):
    zone: Optional[str] = None
    category: str
    latitude: float
    longitude: float
    subcategory: Optional[str] = None
    photo_path: Optional[str] = None
    description: Optional[str] = None
    owner_id: Optional[str] = None

    @field_validator("category")
    @classmethod
    def known_category(cls, value: str) -> str:
        if value not in ReportCategory.values():
            raise ValueError(f"Unknown category {value!r}. Choose from: {ReportCategory.values()}")
        return ReportCategory(value).value

    @field_validator("latitude")
    @classmethod
    def valid_latitude(cls, value: float) -> float:
        if not -90.0 <= value <= 90.0:
            raise ValueError("latitude must be between -90 and 90")
        return value

    @field_validator("longitude")
    @classmethod
    def valid_longitude(cls, value: float) -> float:
        if not -180.0 <= value <= 180.0:
            raise ValueError("longitude must be between -180 and 180")
        return value

    @field_validator("zone", "subcategory", "photo_path", "description", "owner_id")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            value = value.strip()
        return value or None


class ReportSubmitter:
    def __init__(
        self,
        store: LocalReportStore,
        photo_required_categories: Optional[List[str]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.photo_required_categories = (
            settings.PHOTO_REQUIRED_CATEGORIES
            if photo_required_categories is None
            else photo_required_categories
        )
        self._clock = clock

    def validate(self, **fields) -> ReportSubmission:
        try:
            submission = ReportSubmission(**fields)
        except ValidationError as exc:
            messages = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'report'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ReportValidationError(messages) from exc
        if submission.category in self.photo_required_categories and not submission.photo_path:
            raise ReportValidationError(f"photo_path: a photo is required for {submission.category} reports")
        return submission

    async def submit(
        self,
        zone: Optional[str],
        category: str,
        latitude: float,
        longitude: float,
        subcategory: Optional[str] = None,
        photo_path: Optional[str] = None,
        description: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> str:
        """Queue a report for sync and return its local id."""
        submission = self.validate(
            zone=zone,
            category=category,
            latitude=latitude,
            longitude=longitude,
            subcategory=subcategory,
            photo_path=photo_path,
            description=description,
            owner_id=owner_id,
        )
        new_report = NewReport(
            zone=submission.zone or zone_from_coords(submission.latitude, submission.longitude),
            category=submission.category,
            latitude=submission.latitude,
            longitude=submission.longitude,
            created_at=int(self._clock() * 1000),
            subcategory=submission.subcategory,
            photo_path=submission.photo_path,
            description=submission.description,
            owner_id=submission.owner_id,
        )
        local_id = await self.store.insert(new_report)
        logger.info("Report %s queued (%s in %s)", local_id, new_report.category, new_report.zone)
        return local_id
