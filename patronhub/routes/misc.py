"""
Miscellaneous routes: health check, settings, JSON import.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from .. import __version__
from ..adapters.patreon import normalize_cookie
from ..archive import format_bytes, get_archive_stats, is_archive_writable
from ..config import state, get_db
from ..database import Database
from ..exceptions import InvalidCookieError
from ..importer import import_from_json
from ..schemas import (
    ArchiveStatsResponse,
    ImportRequest,
    ImportResponse,
    SettingsResponse,
    SettingsUpdateRequest,
    StatusResponse,
)
from ..services import SettingsService, SettingsServiceDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["misc"])


# ─────────────────────────────────────────────────────────────
# Health Check
# ─────────────────────────────────────────────────────────────

@router.get("/status")
async def health_check(
    db: Annotated[Database, Depends(get_db)],
    settings: SettingsServiceDep,
) -> StatusResponse:
    """API health check with archive and queue statistics."""
    archive_root = settings.archive_root()
    stats = get_archive_stats(archive_root)
    counts = db.content.get_counts()
    sync_state = state.supervisor.snapshot().state.value if state.supervisor else "idle"

    return StatusResponse(
        status="ok",
        version=__version__,
        archive_dir=str(archive_root),
        archive_writable=is_archive_writable(archive_root),
        archive_stats=ArchiveStatsResponse(
            total_size=stats.total_size,
            total_size_human=format_bytes(stats.total_size),
            file_count=stats.file_count,
            directory_count=stats.directory_count,
        ),
        creators=db.creators.count(),
        content_items=counts["total"],
        unseen_items=counts["unseen"],
        archived_items=counts["archived"],
        items_with_errors=counts["with_errors"],
        harvest_jobs=db.harvest.get_status_counts(),
        sync_state=sync_state,
    )


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────

def _settings_response(settings: SettingsService) -> SettingsResponse:
    effective = settings.effective()
    return SettingsResponse(
        archive_dir=effective.archive_dir,
        patreon_cookie_configured=effective.patreon_cookie_configured,
        auto_download=effective.auto_download,
        auto_sync=effective.auto_sync,
        env_overrides=effective.env_overrides,
        internal_api_enabled=settings.internal_api_enabled(),
    )


@router.get("/settings")
async def get_settings(settings: SettingsServiceDep) -> SettingsResponse:
    """Get effective application settings."""
    return _settings_response(settings)


@router.put("/settings")
async def update_settings(
    request: SettingsUpdateRequest,
    settings: SettingsServiceDep,
) -> SettingsResponse:
    """Update settings. Values pinned by environment variables are left as they are."""
    if request.patreon_cookie and request.patreon_cookie.strip():
        try:
            normalize_cookie(request.patreon_cookie)
        except InvalidCookieError as e:
            raise HTTPException(status_code=400, detail=str(e))

    was_auto_sync = settings.auto_sync()
    settings.update(
        archive_dir=request.archive_dir,
        patreon_cookie=request.patreon_cookie,
        auto_download=request.auto_download,
        auto_sync=request.auto_sync,
    )

    if state.scheduler and settings.auto_sync() != was_auto_sync:
        await state.scheduler.restart()

    return _settings_response(settings)


# ─────────────────────────────────────────────────────────────
# Import
# ─────────────────────────────────────────────────────────────

@router.post("/import/json")
async def import_json(
    request: ImportRequest,
    db: Annotated[Database, Depends(get_db)]
) -> ImportResponse:
    """Import creators, subscriptions and content from a JSON document."""
    return ImportResponse(result=import_from_json(db, request))
