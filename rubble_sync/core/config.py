from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    APP_NAME: str = "Rubble Report Sync"
    VERSION: str = "1.0.0"

    # Local durable store
    LOCAL_DATABASE_URL: str = "sqlite:///./reports.db"
    LOCAL_DB_AUTO_MIGRATE: bool = True  # Add missing additive columns on open

    # Remote backend (Supabase-style REST + storage)
    REMOTE_URL: str = "http://localhost:54321"
    REMOTE_ANON_KEY: str = ""
    REMOTE_TIMEOUT_SECONDS: float = 10.0
    PHOTO_BUCKET: str = "report-photos"
    SEND_CLIENT_REFERENCE: bool = False  # Include local id as an idempotency token

    # Sync scheduling
    SYNC_INTERVAL_SECONDS: float = 30.0
    SYNC_DEBOUNCE_SECONDS: float = 2.0
    SYNC_WATCHDOG_SECONDS: float = 60.0
    SYNC_MAX_ATTEMPTS: int = 3
    SYNC_BACKOFF_BASE_SECONDS: float = 1.0

    # Connectivity probe; disabled when unset
    CONNECTIVITY_PROBE_URL: Optional[str] = None
    CONNECTIVITY_CHECK_INTERVAL: float = 15.0

    # Submission policy
    PHOTO_REQUIRED_CATEGORIES: List[str] = ["rubble"]

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    class Config:
        env_file = ".env"


settings = Settings()
