"""Reports API: submit to the local queue, list, count pending, delete."""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from typing import List, Optional
from pydantic import BaseModel

from .deps import get_services
from ..services.container import SyncServices
from ..services.submission import ReportValidationError

router = APIRouter(prefix="/reports", tags=["reports"])


class ReportCreate(BaseModel):
    zone: Optional[str] = None
    category: str
    latitude: float
    longitude: float
    subcategory: Optional[str] = None
    photo_path: Optional[str] = None
    description: Optional[str] = None
    owner_id: Optional[str] = None


class ReportResponse(BaseModel):
    local_id: str
    remote_id: Optional[str]
    zone: str
    category: str
    subcategory: Optional[str]
    latitude: float
    longitude: float
    photo_path: Optional[str]
    description: Optional[str]
    created_at: int
    synced: bool
    owner_id: Optional[str]


@router.post("/", status_code=status.HTTP_201_CREATED)
async def submit_report(report_in: ReportCreate, services: SyncServices = Depends(get_services)):
    """Queue a report locally; syncing happens in the background."""
    try:
        local_id = await services.submitter.submit(**report_in.model_dump())
    except ReportValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"local_id": local_id, "synced": False}


@router.get("/", response_model=List[ReportResponse])
async def list_reports(zone: Optional[str] = None, services: SyncServices = Depends(get_services)):
    """All local reports, newest first, optionally filtered by zone."""
    if zone:
        reports = await services.store.list_by_zone(zone)
    else:
        reports = await services.store.list_all()
    return [r.to_dict() for r in reports]


@router.get("/unsynced-count")
async def unsynced_count(services: SyncServices = Depends(get_services)):
    return {"unsynced_count": await services.store.count_unsynced()}


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(report_id: str, services: SyncServices = Depends(get_services)):
    await services.store.delete(report_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
