"""
Subscription routes: listing, manual creation and per-subscription settings.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from ..config import get_db
from ..database import Database
from ..database.converters import normalize_timestamp
from ..exceptions import require_subscription
from ..schemas import (
    CreateSubscriptionRequest,
    SubscriptionResponse,
    UpdateSubscriptionSettingsRequest,
)
from ..sync import slugify

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("")
async def list_subscriptions(
    db: Annotated[Database, Depends(get_db)]
) -> list[SubscriptionResponse]:
    """List all subscriptions with their creators."""
    return [SubscriptionResponse.from_db(s) for s in db.get_subscriptions()]


@router.get("/{subscription_id}")
async def get_subscription(
    subscription_id: int,
    db: Annotated[Database, Depends(get_db)]
) -> SubscriptionResponse:
    """Get a single subscription."""
    return SubscriptionResponse.from_db(require_subscription(db.get_subscription(subscription_id)))


@router.post("", status_code=201)
async def create_subscription(
    request: CreateSubscriptionRequest,
    db: Annotated[Database, Depends(get_db)]
) -> SubscriptionResponse:
    """Track a subscription by hand, creating its creator if needed."""
    name = request.creator_name.strip()
    slug = slugify(name)
    if not slug:
        raise HTTPException(status_code=400, detail="Creator name must contain letters or digits")

    creator = db.creators.get_by_slug(slug)
    if creator:
        creator_id = creator.id
    else:
        creator_id, _ = db.creators.upsert(name=name, slug=slug, website_url=request.website_url)

    subscription_id = db.subscriptions.create(
        creator_id=creator_id,
        platform=request.platform,
        tier_name=request.tier_name,
        cost_cents=request.cost_cents,
        currency=request.currency.strip().upper()[:3] or "USD",
        billing_cycle=request.billing_cycle,
        status=request.status,
        member_since=normalize_timestamp(request.member_since),
    )
    return SubscriptionResponse.from_db(db.get_subscription(subscription_id))


@router.put("/{subscription_id}/settings")
async def update_subscription_settings(
    subscription_id: int,
    request: UpdateSubscriptionSettingsRequest,
    db: Annotated[Database, Depends(get_db)]
) -> SubscriptionResponse:
    """Update sync and auto-download flags, tier and pricing."""
    require_subscription(db.get_subscription(subscription_id))

    fields = request.model_dump(exclude_none=True)
    if "currency" in fields:
        fields["currency"] = fields["currency"].upper()
    db.subscriptions.update(subscription_id, **fields)

    return SubscriptionResponse.from_db(db.get_subscription(subscription_id))
