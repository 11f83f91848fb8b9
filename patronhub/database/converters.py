"""
Database row converters - convert SQLite rows to dataclasses.

Timestamps are stored as fixed-width UTC ISO-8601 strings so that
lexicographic comparison in SQL matches chronological order.
"""

import json
import sqlite3
from datetime import datetime, timedelta, timezone

from .models import (
    DBContentAsset,
    DBContentItem,
    DBCreator,
    DBDownload,
    DBHarvestJob,
    DBSubscription,
    DBSyncLog,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: datetime) -> str:
    """Serialize a datetime into the stored timestamp format."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def now_db() -> str:
    return to_db_time(utc_now())


def minutes_from_now_db(minutes: int) -> str:
    return to_db_time(utc_now() + timedelta(minutes=minutes))


def parse_timestamp(value: str | None) -> datetime | None:
    """
    Parse an ISO-8601 timestamp as stored by us or as sent by upstream APIs.

    Naive values are assumed to be UTC. Returns None for empty or invalid input.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_timestamp(value: str | None) -> str | None:
    """Normalize an upstream timestamp string into the stored format."""
    parsed = parse_timestamp(value)
    return to_db_time(parsed) if parsed else None


def _required_time(value: str | None) -> datetime:
    return parse_timestamp(value) or utc_now()


def _json_list(value: str | None) -> list:
    if not value:
        return []
    try:
        loaded = json.loads(value)
    except json.JSONDecodeError:
        return []
    return loaded if isinstance(loaded, list) else []


def _optional(row: sqlite3.Row, col: str):
    """Read a column that only some queries select."""
    try:
        return row[col]
    except (IndexError, KeyError):
        return None


def row_to_creator(row: sqlite3.Row) -> DBCreator:
    """Convert a database row to a DBCreator."""
    return DBCreator(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        avatar_url=row["avatar_url"],
        bio=row["bio"],
        website_url=row["website_url"],
        created_at=_required_time(row["created_at"]),
        updated_at=_required_time(row["updated_at"]),
    )


def row_to_subscription(row: sqlite3.Row) -> DBSubscription:
    """Convert a database row to a DBSubscription."""
    return DBSubscription(
        id=row["id"],
        creator_id=row["creator_id"],
        platform=row["platform"],
        external_id=row["external_id"],
        profile_url=row["profile_url"],
        tier_name=row["tier_name"],
        cost_cents=row["cost_cents"] or 0,
        currency=row["currency"] or "USD",
        billing_cycle=row["billing_cycle"],
        status=row["status"],
        member_since=parse_timestamp(row["member_since"]),
        last_synced_at=parse_timestamp(row["last_synced_at"]),
        sync_enabled=bool(row["sync_enabled"]),
        auto_download_enabled=bool(row["auto_download_enabled"]),
        created_at=_required_time(row["created_at"]),
        updated_at=_required_time(row["updated_at"]),
        creator_name=_optional(row, "creator_name"),
        creator_slug=_optional(row, "creator_slug"),
    )


def row_to_content_item(row: sqlite3.Row) -> DBContentItem:
    """Convert a database row to a DBContentItem."""
    return DBContentItem(
        id=row["id"],
        subscription_id=row["subscription_id"],
        external_id=row["external_id"],
        external_url=row["external_url"],
        download_url=row["download_url"],
        file_name_hint=row["file_name_hint"],
        title=row["title"],
        description=row["description"],
        content_type=row["content_type"],
        published_at=parse_timestamp(row["published_at"]),
        tags=_json_list(row["tags"]),
        is_seen=bool(row["is_seen"]),
        seen_at=parse_timestamp(row["seen_at"]),
        is_archived=bool(row["is_archived"]),
        archive_error=row["archive_error"],
        created_at=_required_time(row["created_at"]),
        updated_at=_required_time(row["updated_at"]),
    )


def row_to_content_asset(row: sqlite3.Row) -> DBContentAsset:
    """Convert a database row to a DBContentAsset."""
    return DBContentAsset(
        id=row["id"],
        content_item_id=row["content_item_id"],
        url=row["url"],
        file_name_hint=row["file_name_hint"],
        asset_type=row["asset_type"] or "attachment",
        status=row["status"] or "discovered",
        last_error=row["last_error"],
        downloaded_at=parse_timestamp(row["downloaded_at"]),
        created_at=_required_time(row["created_at"]),
        updated_at=_required_time(row["updated_at"]),
        mime_type_hint=_optional(row, "mime_type_hint"),
    )


def row_to_download(row: sqlite3.Row) -> DBDownload:
    """Convert a database row to a DBDownload."""
    return DBDownload(
        id=row["id"],
        content_item_id=row["content_item_id"],
        file_name=row["file_name"],
        file_type=row["file_type"],
        mime_type=row["mime_type"],
        size_bytes=row["size_bytes"] or 0,
        local_path=row["local_path"],
        downloaded_at=_required_time(row["downloaded_at"]),
        created_at=_required_time(row["created_at"]),
    )


def row_to_harvest_job(row: sqlite3.Row) -> DBHarvestJob:
    """Convert a database row to a DBHarvestJob."""
    return DBHarvestJob(
        id=row["id"],
        content_item_id=row["content_item_id"],
        kind=row["kind"],
        status=row["status"],
        attempt_count=row["attempt_count"] or 0,
        last_attempt_at=parse_timestamp(row["last_attempt_at"]),
        next_attempt_at=parse_timestamp(row["next_attempt_at"]),
        last_error=row["last_error"],
        created_at=_required_time(row["created_at"]),
        updated_at=_required_time(row["updated_at"]),
        external_url=_optional(row, "external_url"),
        external_id=_optional(row, "external_id"),
        title=_optional(row, "title"),
    )


def row_to_sync_log(row: sqlite3.Row) -> DBSyncLog:
    """Convert a database row to a DBSyncLog."""
    return DBSyncLog(
        id=row["id"],
        subscription_id=row["subscription_id"],
        started_at=_required_time(row["started_at"]),
        completed_at=parse_timestamp(row["completed_at"]),
        status=row["status"],
        items_found=row["items_found"] or 0,
        items_downloaded=row["items_downloaded"] or 0,
        errors=_json_list(row["errors"]),
    )
