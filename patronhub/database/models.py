"""
Database models - dataclasses for database entities.
"""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class DBCreator:
    id: int
    name: str
    slug: str
    avatar_url: str | None
    bio: str | None
    website_url: str | None
    created_at: datetime
    updated_at: datetime


@dataclass
class DBSubscription:
    id: int
    creator_id: int
    platform: str  # patreon, substack, gumroad, discord
    external_id: str | None
    profile_url: str | None
    tier_name: str | None
    cost_cents: int
    currency: str
    billing_cycle: str  # monthly, yearly, one-time
    status: str  # active, paused, cancelled
    member_since: datetime | None
    last_synced_at: datetime | None
    sync_enabled: bool
    auto_download_enabled: bool
    created_at: datetime
    updated_at: datetime

    # Joined from creators when listing
    creator_name: str | None = None
    creator_slug: str | None = None


@dataclass
class DBContentItem:
    id: int
    subscription_id: int
    external_id: str | None
    external_url: str | None
    download_url: str | None
    file_name_hint: str | None
    title: str
    description: str | None
    content_type: str
    published_at: datetime | None
    tags: list[str]
    is_seen: bool
    seen_at: datetime | None
    is_archived: bool
    archive_error: str | None
    created_at: datetime
    updated_at: datetime


@dataclass
class ArchiveTarget:
    """A content item joined with the identity fields the archive layout needs."""
    item: DBContentItem
    platform: str
    creator_slug: str


@dataclass
class DBContentAsset:
    id: int
    content_item_id: int
    url: str
    file_name_hint: str | None
    asset_type: str
    status: str  # discovered, downloaded, failed
    last_error: str | None
    downloaded_at: datetime | None
    created_at: datetime
    updated_at: datetime
    mime_type_hint: str | None = None


@dataclass
class DBDownload:
    id: int
    content_item_id: int
    file_name: str
    file_type: str
    mime_type: str | None
    size_bytes: int
    local_path: str  # Relative to the archive root
    downloaded_at: datetime
    created_at: datetime


@dataclass
class DBHarvestJob:
    id: int
    content_item_id: int
    kind: str
    status: str  # pending, running, done, failed
    attempt_count: int
    last_attempt_at: datetime | None
    next_attempt_at: datetime | None
    last_error: str | None
    created_at: datetime
    updated_at: datetime

    # Joined from content_items when claimed
    external_url: str | None = None
    external_id: str | None = None
    title: str | None = None


@dataclass
class DBSyncLog:
    id: int
    subscription_id: int
    started_at: datetime
    completed_at: datetime | None
    status: str  # running, success, failed
    items_found: int
    items_downloaded: int
    errors: list[str] = field(default_factory=list)


@dataclass
class CreatorOverview:
    """Dashboard row: a creator with aggregate content counts."""
    id: int
    name: str
    slug: str
    avatar_url: str | None
    platforms: list[str]
    total_items: int
    unseen_items: int
    archived_items: int
    last_published_at: datetime | None
    content_types: dict[str, int] = field(default_factory=dict)
