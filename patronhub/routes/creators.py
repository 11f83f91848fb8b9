"""
Creator routes: dashboard overview and per-creator content.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ..config import get_db
from ..database import Database
from ..exceptions import require_creator
from ..schemas import ContentItemResponse, CreatorOverviewResponse, SubscriptionResponse

router = APIRouter(prefix="/creators", tags=["creators"])


@router.get("")
async def list_creators(
    db: Annotated[Database, Depends(get_db)]
) -> list[CreatorOverviewResponse]:
    """Creators with content totals, unseen counts and content-type breakdown."""
    return [CreatorOverviewResponse.from_db(c) for c in db.get_creator_overview()]


@router.get("/{creator_id}/subscriptions")
async def list_creator_subscriptions(
    creator_id: int,
    db: Annotated[Database, Depends(get_db)]
) -> list[SubscriptionResponse]:
    """Subscriptions held for one creator."""
    require_creator(db.get_creator(creator_id))
    return [SubscriptionResponse.from_db(s) for s in db.subscriptions.get_for_creator(creator_id)]


@router.get("/{creator_id}/content")
async def list_creator_content(
    creator_id: int,
    db: Annotated[Database, Depends(get_db)],
    unseen_only: bool = False,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> list[ContentItemResponse]:
    """Content for one creator, newest first."""
    require_creator(db.get_creator(creator_id))
    items = db.content.get_for_creator(creator_id, unseen_only=unseen_only, limit=limit, offset=offset)
    return [ContentItemResponse.from_db(i) for i in items]
