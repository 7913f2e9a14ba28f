"""Sync API: manual trigger, status, and platform signals (connectivity, app state)."""
from fastapi import APIRouter, Depends
from typing import Optional
from pydantic import BaseModel

from .deps import get_services
from ..services.container import SyncServices
from ..services.sync_scheduler import MANUAL

router = APIRouter(prefix="/sync", tags=["sync"])


class ConnectivityUpdate(BaseModel):
    connected: Optional[bool] = None


class AppStateUpdate(BaseModel):
    foreground: bool


@router.post("/")
async def trigger_sync(services: SyncServices = Depends(get_services)):
    """Run one sync pass now; a no-op while another pass is running."""
    summary = await services.scheduler.run_pass(MANUAL, foreground=services.lifecycle.is_foreground())
    if summary is None:
        return {"status": "skipped"}
    return {"status": "completed", **summary.to_dict()}


@router.get("/status")
async def sync_status(services: SyncServices = Depends(get_services)):
    return {
        "connectivity": services.monitor.status,
        "unsynced_count": await services.store.count_unsynced(),
        "scheduler": services.scheduler.state.to_dict(),
    }


@router.put("/connectivity")
async def update_connectivity(update: ConnectivityUpdate, services: SyncServices = Depends(get_services)):
    services.monitor.update(update.connected)
    return {"connectivity": services.monitor.status}


@router.put("/app-state")
async def update_app_state(update: AppStateUpdate, services: SyncServices = Depends(get_services)):
    services.lifecycle.foreground = update.foreground
    return {"foreground": services.lifecycle.foreground}
