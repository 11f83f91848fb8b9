"""
Internal API for the headless worker.

The worker claims ``headless_asset_discover`` jobs, renders the post page
itself, reports the asset URLs it found and asks for the item to be archived.
Every route requires the X-Patron-Hub-Internal-Token header.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response

from ..archive import ArchiveWriter
from ..auth import verify_internal_token
from ..config import config, get_db
from ..database import Database
from ..exceptions import require_content
from ..harvest import HEADLESS_ASSET_DISCOVER, JOB_KINDS
from ..schemas import (
    ArchiveResponse,
    ClaimJobRequest,
    ClaimJobResponse,
    CompleteJobRequest,
    CompleteJobResponse,
    HarvestJobResponse,
    ReportAssetsRequest,
    ReportAssetsResponse,
)
from ..services import get_archive_writer
from .content import archive_item

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(verify_internal_token)],
)

MISSING_URL_ERROR = "Missing external URL on content item"


def _max_attempts(kind: str) -> int:
    if kind == HEADLESS_ASSET_DISCOVER:
        return config.HEADLESS_MAX_ATTEMPTS
    return config.HARVEST_MAX_ATTEMPTS


# ─────────────────────────────────────────────────────────────
# Harvest jobs
# ─────────────────────────────────────────────────────────────

@router.post("/harvest/claim", response_model=ClaimJobResponse)
async def claim_job(
    db: Annotated[Database, Depends(get_db)],
    body: ClaimJobRequest | None = None,
):
    """
    Claim the next due job of a kind, or 204 when none is due.

    Jobs whose content item has no URL to render can never succeed, so they
    are failed outright and the next job is tried.
    """
    kind = body.kind if body else HEADLESS_ASSET_DISCOVER
    if kind not in JOB_KINDS:
        raise HTTPException(status_code=400, detail=f"Unknown job kind: {kind}")

    while True:
        job = db.harvest.claim(kind, _max_attempts(kind), config.HARVEST_LEASE_MINUTES)
        if job is None:
            return Response(status_code=204)
        if job.external_url:
            logger.info(f"Worker claimed {kind} job {job.id} (attempt {job.attempt_count})")
            return ClaimJobResponse(job=HarvestJobResponse.from_db(job))

        db.harvest.fail(job.id, MISSING_URL_ERROR)
        logger.warning(f"Harvest job {job.id} failed: {MISSING_URL_ERROR}")


@router.post("/harvest/complete")
async def complete_job(
    request: CompleteJobRequest,
    db: Annotated[Database, Depends(get_db)]
) -> CompleteJobResponse:
    """Record a job outcome; failures are retried with backoff until attempts run out."""
    job = db.get_harvest_job(request.job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Harvest job not found")

    error = request.error or "headless job failed"
    updated = db.harvest.complete(job.id, request.ok, error, _max_attempts(job.kind))
    return CompleteJobResponse(status=updated.status)


# ─────────────────────────────────────────────────────────────
# Assets & archiving
# ─────────────────────────────────────────────────────────────

@router.post("/assets")
async def report_assets(
    request: ReportAssetsRequest,
    db: Annotated[Database, Depends(get_db)]
) -> ReportAssetsResponse:
    """Register asset URLs discovered for a content item. Known URLs are ignored."""
    require_content(db.get_content_item(request.content_item_id))

    attempted = 0
    inserted = 0
    for asset in request.assets:
        url = asset.url.strip()
        if not url.lower().startswith(("http://", "https://")):
            continue
        attempted += 1
        asset_type = (asset.asset_type or "attachment").lower()
        if db.assets.add(request.content_item_id, url, asset.file_name_hint, asset_type):
            inserted += 1

    return ReportAssetsResponse(attempted=attempted, inserted=inserted)


@router.post("/content/{content_id}/archive")
async def archive_content(
    content_id: int,
    db: Annotated[Database, Depends(get_db)],
    writer: Annotated[ArchiveWriter, Depends(get_archive_writer)],
) -> ArchiveResponse:
    """Archive a content item after the worker has reported its assets."""
    return await archive_item(db, writer, content_id)
