"""
Rubble Report Sync - local API for the offline-first report queue.
The device shell submits reports here and forwards connectivity changes;
the sync engine uploads pending reports in the background.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .api import reports, sync
from .core.config import Settings, settings as default_settings
from .core.logging_config import setup_logging
from .services.container import SyncServices, build_services


def create_app(config: Optional[Settings] = None, services: Optional[SyncServices] = None) -> FastAPI:
    cfg = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(cfg.LOG_LEVEL, cfg.LOG_FILE)
        app.state.services = services or build_services(cfg)
        await app.state.services.start()
        try:
            yield
        finally:
            await app.state.services.stop()

    app = FastAPI(
        title="Rubble Report Sync API",
        description=(
            "Offline-first queue for field hazard reports. Reports are stored "
            "locally and uploaded with their photos once connectivity returns."
        ),
        version=cfg.VERSION,
        lifespan=lifespan,
    )

    app.include_router(reports.router, prefix="/api/v1")
    app.include_router(sync.router, prefix="/api/v1")

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "service": cfg.APP_NAME, "version": cfg.VERSION}

    return app


app = create_app()
