"""
JSON bulk import of creators, subscriptions and content.

Used to seed the archive with platforms that have no working sync, or to
migrate from another tracker. Creators are matched by slug, subscriptions by
(creator, platform), and content by (subscription, title, published_at).
"""

import logging

from .database import Database
from .database.converters import normalize_timestamp
from .schemas import ImportRequest, ImportResult
from .sync import slugify

logger = logging.getLogger(__name__)


def _currency(value: str | None) -> str:
    return value.strip().upper()[:3] if value and value.strip() else "USD"


def import_from_json(db: Database, payload: ImportRequest) -> ImportResult:
    """Import a payload. Entries without a usable name, slug or title are skipped."""
    result = ImportResult()

    for c in payload.creators:
        name = c.name.strip()
        if not name:
            continue
        slug = (c.slug or "").strip() or slugify(name)
        if not slug:
            continue

        existing = db.creators.get_by_slug(slug)
        if existing is None:
            creator_id, _ = db.creators.upsert(
                name=name,
                slug=slug,
                avatar_url=c.avatar_url,
                website_url=c.website_url,
                bio=c.bio,
            )
            result.creators_created += 1
        else:
            creator_id = existing.id
            if existing.name != name:
                db.creators.rename(creator_id, name)
                result.creators_updated += 1

        sub = c.subscription
        if sub is None:
            continue

        fields = dict(
            tier_name=sub.tier_name,
            cost_cents=max(0, sub.cost_cents or 0),
            currency=_currency(sub.currency),
            billing_cycle=sub.billing_cycle,
            status=sub.status,
            member_since=normalize_timestamp(sub.member_since),
            sync_enabled=sub.sync_enabled,
            auto_download_enabled=sub.auto_download_enabled,
        )
        existing_sub = db.subscriptions.find_latest(creator_id, sub.platform)
        if existing_sub is None:
            subscription_id = db.subscriptions.create(creator_id=creator_id, platform=sub.platform, **fields)
            result.subscriptions_created += 1
        else:
            subscription_id = existing_sub.id
            db.subscriptions.update(subscription_id, **fields)
            result.subscriptions_updated += 1

        for item in c.content:
            title = item.title.strip()
            if not title:
                continue
            published_at = normalize_timestamp(item.published_at)
            if db.content.exists_with_title(subscription_id, title, published_at):
                result.content_items_skipped += 1
                continue

            db.content.add_imported(
                subscription_id=subscription_id,
                title=title,
                content_type=item.content_type,
                description=item.description,
                external_url=item.external_url,
                published_at=published_at,
                tags=item.tags,
                is_seen=item.is_seen,
                is_archived=item.is_archived,
            )
            result.content_items_created += 1

    logger.info(
        f"Import finished: {result.creators_created} creators created, "
        f"{result.subscriptions_created} subscriptions created, "
        f"{result.content_items_created} items created, {result.content_items_skipped} skipped"
    )
    return result
