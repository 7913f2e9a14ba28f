from fastapi import HTTPException, Request

from ..services.container import SyncServices


def get_services(request: Request) -> SyncServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Sync services are not running")
    return services
