"""
Configuration and application state management.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from fastapi import HTTPException

if TYPE_CHECKING:
    from .adapters import PlatformAdapter
    from .database import Database
    from .downloader import Downloader
    from .scheduler import SyncScheduler
    from .sync import SyncSupervisor

# Load environment variables
load_dotenv()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_int(value: str | None, default: int, minimum: int = 1) -> int:
    """Parse a positive integer from environment variable, falling back on junk."""
    if not value:
        return default
    try:
        return max(minimum, int(float(value)))
    except ValueError:
        return default


class Config:
    """Application configuration from environment."""
    DB_PATH: Path = Path(os.getenv("DB_PATH", "./data/patronhub.db"))
    PORT: int = int(os.getenv("PORT", "5006"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    RATE_LIMIT_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "120"))
    # Routes that make Patreon requests for the caller
    UPSTREAM_RATE_LIMIT_PER_MINUTE: int = int(os.getenv("PATRON_HUB_UPSTREAM_RATE_LIMIT", "10"))

    # Process-level overrides; each beats the value persisted in settings
    ARCHIVE_DIR: str = os.getenv("PATRON_HUB_ARCHIVE_DIR", "")
    PATREON_COOKIE: str = os.getenv("PATRON_HUB_PATREON_COOKIE", "")
    AUTO_DOWNLOAD: bool | None = (
        _parse_bool(os.getenv("PATRON_HUB_AUTO_DOWNLOAD"))
        if os.getenv("PATRON_HUB_AUTO_DOWNLOAD") is not None else None
    )
    AUTO_SYNC: bool | None = (
        _parse_bool(os.getenv("PATRON_HUB_AUTO_SYNC"))
        if os.getenv("PATRON_HUB_AUTO_SYNC") is not None else None
    )

    # Shared secret for the headless worker; the internal API is disabled when empty
    INTERNAL_TOKEN: str = os.getenv("PATRON_HUB_INTERNAL_TOKEN", "")

    # Upstream pagination and harvest queue tuning
    PATREON_MAX_PAGES: int = _parse_int(os.getenv("PATRON_HUB_PATREON_MAX_PAGES"), 40)
    HARVEST_MAX_ATTEMPTS: int = _parse_int(os.getenv("PATRON_HUB_HARVEST_MAX_ATTEMPTS"), 6)
    HEADLESS_MAX_ATTEMPTS: int = _parse_int(os.getenv("PATRON_HUB_HEADLESS_MAX_ATTEMPTS"), 6)
    HARVEST_LEASE_MINUTES: int = _parse_int(os.getenv("PATRON_HUB_HARVEST_LEASE_MINUTES"), 30)
    HARVEST_BATCH_SIZE: int = _parse_int(os.getenv("PATRON_HUB_HARVEST_BATCH"), 25)

    SYNC_INTERVAL_MINUTES: int = _parse_int(os.getenv("SYNC_INTERVAL_MINUTES"), 360)
    HTTP_TIMEOUT_SECONDS: int = _parse_int(os.getenv("HTTP_TIMEOUT_SECONDS"), 60)


config = Config()


class AppState:
    """Shared application state."""
    db: "Database | None" = None
    supervisor: "SyncSupervisor | None" = None
    scheduler: "SyncScheduler | None" = None

    # Optional overrides; when unset the adapter is built from the cookie per
    # run and archive writes use a default Downloader
    adapter: "PlatformAdapter | None" = None
    downloader: "Downloader | None" = None


state = AppState()


def get_db() -> "Database":
    """Dependency to get database instance."""
    if not state.db:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return state.db


def get_supervisor() -> "SyncSupervisor":
    """Dependency to get the sync run supervisor."""
    if not state.supervisor:
        raise HTTPException(status_code=500, detail="Sync supervisor not initialized")
    return state.supervisor
