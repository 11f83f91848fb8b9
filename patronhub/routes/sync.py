"""
Sync routes: start a sync run and report its progress.
"""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from ..adapters.patreon import normalize_cookie
from ..config import state, get_db, get_supervisor
from ..database import Database
from ..exceptions import InvalidCookieError
from ..rate_limit import limiter, upstream_rate_limit
from ..schemas import StartSyncResponse, SyncProgressResponse, SyncStatusResponse
from ..services import SettingsService, SettingsServiceDep
from ..sync import SyncSupervisor, run_sync_job

router = APIRouter(prefix="/sync", tags=["sync"])


def _status(db: Database, supervisor: SyncSupervisor) -> SyncStatusResponse:
    snap = supervisor.snapshot()
    progress = supervisor.progress(db)
    return SyncStatusResponse(
        state=snap.state.value,
        is_running=snap.is_running,
        started_at=snap.started_at.isoformat() if snap.started_at else None,
        finished_at=snap.finished_at.isoformat() if snap.finished_at else None,
        last_error=snap.last_error,
        summary=supervisor.summary(db),
        progress=SyncProgressResponse(**asdict(progress)) if progress else None,
        stats=snap.stats.to_dict() if snap.stats else None,
    )


@router.get("")
async def get_sync_status(
    db: Annotated[Database, Depends(get_db)],
    supervisor: Annotated[SyncSupervisor, Depends(get_supervisor)],
) -> SyncStatusResponse:
    """Current or last sync run with live progress."""
    return _status(db, supervisor)


@router.post("")
@limiter.limit(upstream_rate_limit)
async def start_sync(
    request: Request,
    db: Annotated[Database, Depends(get_db)],
    supervisor: Annotated[SyncSupervisor, Depends(get_supervisor)],
    settings: SettingsServiceDep,
    background_tasks: BackgroundTasks,
) -> StartSyncResponse:
    """Start a sync run in the background."""
    if state.adapter is None:
        cookie = settings.patreon_cookie()
        if not cookie:
            raise HTTPException(
                status_code=409,
                detail="Patreon cookie not configured. Set it in settings or PATRON_HUB_PATREON_COOKIE.",
            )
        try:
            normalize_cookie(cookie)
        except InvalidCookieError as e:
            raise HTTPException(status_code=400, detail=str(e))

    if not supervisor.try_start():
        return StartSyncResponse(started=False, message="Sync already running")

    background_tasks.add_task(
        run_sync_job,
        db,
        supervisor,
        SettingsService(db),
        state.adapter,
        state.downloader,
    )
    return StartSyncResponse(started=True, message="Sync started")
