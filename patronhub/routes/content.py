"""
Content routes: item details, seen state, archived files and archiving.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request

from ..archive import ArchiveWriter
from ..config import get_db
from ..database import Database
from ..exceptions import ContentNotFoundError, PatronHubError, UpstreamError, require_content
from ..rate_limit import limiter, upstream_rate_limit
from ..schemas import (
    ArchiveResponse,
    AssetResponse,
    ContentFilesResponse,
    ContentItemResponse,
    DownloadResponse,
    MarkSeenRequest,
)
from ..services import get_archive_writer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/content", tags=["content"])


async def archive_item(db: Database, writer: ArchiveWriter, content_id: int) -> ArchiveResponse:
    """
    Run the archive writer for one item and translate failures to HTTP errors.

    A failure is persisted on the item (archive_error set, is_archived cleared)
    before the error response is raised.
    """
    try:
        outcome = await writer.archive_content_item(content_id)
    except ContentNotFoundError:
        raise HTTPException(status_code=404, detail="Content item not found")
    except (PatronHubError, OSError) as e:
        logger.warning(f"Archive failed for content item {content_id}: {e}")
        db.content.set_archive_error(content_id, str(e))
        status_code = 502 if isinstance(e, UpstreamError) else 500
        raise HTTPException(status_code=status_code, detail=f"Archive failed: {e}")

    return ArchiveResponse(
        local_path=outcome.local_path,
        downloaded=outcome.downloaded,
        archive_error=" | ".join(outcome.errors[:3]) if outcome.errors else None,
    )


@router.get("/{content_id}")
async def get_content_item(
    content_id: int,
    db: Annotated[Database, Depends(get_db)]
) -> ContentItemResponse:
    """Get a content item."""
    item = require_content(db.get_content_item(content_id))
    return ContentItemResponse.from_db(item)


@router.post("/{content_id}/seen")
async def mark_seen(
    content_id: int,
    db: Annotated[Database, Depends(get_db)],
    body: MarkSeenRequest | None = None,
) -> ContentItemResponse:
    """Mark a content item seen (or unseen)."""
    is_seen = body.is_seen if body else True
    if not db.mark_content_seen(content_id, is_seen):
        raise HTTPException(status_code=404, detail="Content item not found")
    return ContentItemResponse.from_db(db.get_content_item(content_id))


@router.get("/{content_id}/files")
async def list_files(
    content_id: int,
    db: Annotated[Database, Depends(get_db)]
) -> ContentFilesResponse:
    """List archived files and known assets for a content item."""
    require_content(db.get_content_item(content_id))
    return ContentFilesResponse(
        content_item_id=content_id,
        files=[DownloadResponse.from_db(d) for d in db.get_downloads(content_id)],
        assets=[AssetResponse.from_db(a) for a in db.get_assets(content_id)],
    )


@router.post("/{content_id}/archive")
@limiter.limit(upstream_rate_limit)
async def archive_content(
    request: Request,
    content_id: int,
    db: Annotated[Database, Depends(get_db)],
    writer: Annotated[ArchiveWriter, Depends(get_archive_writer)],
) -> ArchiveResponse:
    """Archive a content item now: snapshot plus every pending asset."""
    return await archive_item(db, writer, content_id)
