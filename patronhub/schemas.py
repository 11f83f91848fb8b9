"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from .database import (
    CreatorOverview,
    DBContentAsset,
    DBContentItem,
    DBDownload,
    DBHarvestJob,
    DBSubscription,
)

PlatformName = Literal["patreon", "substack", "gumroad", "discord"]
ContentTypeName = Literal["video", "image", "pdf", "audio", "article", "attachment"]
BillingCycleName = Literal["monthly", "yearly", "one-time"]
SubscriptionStatusName = Literal["active", "paused", "cancelled"]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ─────────────────────────────────────────────────────────────
# Creator Schemas
# ─────────────────────────────────────────────────────────────

class CreatorOverviewResponse(BaseModel):
    """Creator card for the dashboard."""
    id: int
    name: str
    slug: str
    avatar_url: str | None
    platforms: list[str]
    total_items: int
    unseen_items: int
    archived_items: int
    last_published_at: str | None
    content_types: dict[str, int]

    @classmethod
    def from_db(cls, overview: CreatorOverview) -> "CreatorOverviewResponse":
        return cls(
            id=overview.id,
            name=overview.name,
            slug=overview.slug,
            avatar_url=overview.avatar_url,
            platforms=overview.platforms,
            total_items=overview.total_items,
            unseen_items=overview.unseen_items,
            archived_items=overview.archived_items,
            last_published_at=_iso(overview.last_published_at),
            content_types=overview.content_types,
        )


# ─────────────────────────────────────────────────────────────
# Subscription Schemas
# ─────────────────────────────────────────────────────────────

class SubscriptionResponse(BaseModel):
    """Subscription with its creator's display fields."""
    id: int
    creator_id: int
    creator_name: str | None
    creator_slug: str | None
    platform: str
    external_id: str | None
    profile_url: str | None
    tier_name: str | None
    cost_cents: int
    currency: str
    billing_cycle: str
    status: str
    member_since: str | None
    last_synced_at: str | None
    sync_enabled: bool
    auto_download_enabled: bool

    @classmethod
    def from_db(cls, sub: DBSubscription) -> "SubscriptionResponse":
        return cls(
            id=sub.id,
            creator_id=sub.creator_id,
            creator_name=sub.creator_name,
            creator_slug=sub.creator_slug,
            platform=sub.platform,
            external_id=sub.external_id,
            profile_url=sub.profile_url,
            tier_name=sub.tier_name,
            cost_cents=sub.cost_cents,
            currency=sub.currency,
            billing_cycle=sub.billing_cycle,
            status=sub.status,
            member_since=_iso(sub.member_since),
            last_synced_at=_iso(sub.last_synced_at),
            sync_enabled=sub.sync_enabled,
            auto_download_enabled=sub.auto_download_enabled,
        )


class CreateSubscriptionRequest(BaseModel):
    """Request to track a subscription by hand."""
    creator_name: str = Field(min_length=1)
    platform: PlatformName
    tier_name: str | None = None
    cost_cents: int = Field(default=0, ge=0)
    currency: str = "USD"
    billing_cycle: BillingCycleName = "monthly"
    status: SubscriptionStatusName = "active"
    member_since: str | None = None
    website_url: str | None = None


class UpdateSubscriptionSettingsRequest(BaseModel):
    """Request to change a subscription's sync settings."""
    sync_enabled: bool | None = None
    auto_download_enabled: bool | None = None
    tier_name: str | None = None
    cost_cents: int | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)


# ─────────────────────────────────────────────────────────────
# Content Schemas
# ─────────────────────────────────────────────────────────────

class ContentItemResponse(BaseModel):
    """Content item for list views."""
    id: int
    subscription_id: int
    external_id: str | None
    external_url: str | None
    title: str
    description: str | None
    content_type: str
    published_at: str | None
    tags: list[str]
    is_seen: bool
    is_archived: bool
    archive_error: str | None
    has_download_url: bool

    @classmethod
    def from_db(cls, item: DBContentItem) -> "ContentItemResponse":
        return cls(
            id=item.id,
            subscription_id=item.subscription_id,
            external_id=item.external_id,
            external_url=item.external_url,
            title=item.title,
            description=item.description,
            content_type=item.content_type,
            published_at=_iso(item.published_at),
            tags=item.tags,
            is_seen=item.is_seen,
            is_archived=item.is_archived,
            archive_error=item.archive_error,
            has_download_url=bool(item.download_url),
        )


class DownloadResponse(BaseModel):
    """A file stored in the archive for a content item."""
    id: int
    file_name: str
    file_type: str
    mime_type: str | None
    size_bytes: int
    local_path: str
    downloaded_at: str

    @classmethod
    def from_db(cls, download: DBDownload) -> "DownloadResponse":
        return cls(
            id=download.id,
            file_name=download.file_name,
            file_type=download.file_type,
            mime_type=download.mime_type,
            size_bytes=download.size_bytes,
            local_path=download.local_path,
            downloaded_at=download.downloaded_at.isoformat(),
        )


class AssetResponse(BaseModel):
    """A discovered asset and its download state."""
    id: int
    url: str
    file_name_hint: str | None
    asset_type: str
    status: str
    last_error: str | None

    @classmethod
    def from_db(cls, asset: DBContentAsset) -> "AssetResponse":
        return cls(
            id=asset.id,
            url=asset.url,
            file_name_hint=asset.file_name_hint,
            asset_type=asset.asset_type,
            status=asset.status,
            last_error=asset.last_error,
        )


class ContentFilesResponse(BaseModel):
    """Archived files and known assets for a content item."""
    content_item_id: int
    files: list[DownloadResponse]
    assets: list[AssetResponse]


class MarkSeenRequest(BaseModel):
    is_seen: bool = True


class ArchiveResponse(BaseModel):
    """Result of archiving a content item."""
    ok: bool = True
    local_path: str
    downloaded: bool
    archive_error: str | None = None


# ─────────────────────────────────────────────────────────────
# Sync Schemas
# ─────────────────────────────────────────────────────────────

class SyncProgressResponse(BaseModel):
    subscriptions_total: int
    subscriptions_completed: int
    subscriptions_succeeded: int
    subscriptions_failed: int
    items_found: int
    items_downloaded: int
    harvest_pending: int
    harvest_running: int
    harvest_failed: int
    elapsed_seconds: int


class SyncStatusResponse(BaseModel):
    """Current or last sync run."""
    state: str
    is_running: bool
    started_at: str | None
    finished_at: str | None
    last_error: str | None
    summary: str
    progress: SyncProgressResponse | None = None
    stats: dict | None = None


class StartSyncResponse(BaseModel):
    started: bool
    message: str


# ─────────────────────────────────────────────────────────────
# Harvest (internal API) Schemas
# ─────────────────────────────────────────────────────────────

class ClaimJobRequest(BaseModel):
    kind: str = "headless_asset_discover"


class HarvestJobResponse(BaseModel):
    """A claimed job as handed to the headless worker."""
    id: int
    kind: str
    content_item_id: int
    attempt_count: int
    external_url: str | None
    external_id: str | None
    title: str | None

    @classmethod
    def from_db(cls, job: DBHarvestJob) -> "HarvestJobResponse":
        return cls(
            id=job.id,
            kind=job.kind,
            content_item_id=job.content_item_id,
            attempt_count=job.attempt_count,
            external_url=job.external_url,
            external_id=job.external_id,
            title=job.title,
        )


class ClaimJobResponse(BaseModel):
    ok: bool = True
    job: HarvestJobResponse


class CompleteJobRequest(BaseModel):
    job_id: int
    ok: bool
    error: str | None = None


class CompleteJobResponse(BaseModel):
    ok: bool = True
    status: str


class DiscoveredAssetRequest(BaseModel):
    url: str
    file_name_hint: str | None = None
    asset_type: str | None = None


class ReportAssetsRequest(BaseModel):
    """Assets the headless worker found on a rendered post page."""
    content_item_id: int
    assets: list[DiscoveredAssetRequest] = []


class ReportAssetsResponse(BaseModel):
    ok: bool = True
    attempted: int
    inserted: int


# ─────────────────────────────────────────────────────────────
# Import Schemas
# ─────────────────────────────────────────────────────────────

class ImportContentItem(BaseModel):
    title: str
    content_type: ContentTypeName
    description: str | None = None
    published_at: str | None = None
    tags: list[str] = []
    external_url: str | None = None
    is_seen: bool = False
    is_archived: bool = False


class ImportSubscription(BaseModel):
    platform: PlatformName
    tier_name: str | None = None
    cost_cents: int | None = None
    currency: str | None = None
    billing_cycle: BillingCycleName = "monthly"
    status: SubscriptionStatusName = "active"
    member_since: str | None = None
    sync_enabled: bool = True
    auto_download_enabled: bool = True


class ImportCreator(BaseModel):
    name: str
    slug: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    website_url: str | None = None
    subscription: ImportSubscription | None = None
    content: list[ImportContentItem] = []


class ImportRequest(BaseModel):
    """Bulk import payload: creators with a subscription and its content."""
    creators: list[ImportCreator]


class ImportResult(BaseModel):
    creators_created: int = 0
    creators_updated: int = 0
    subscriptions_created: int = 0
    subscriptions_updated: int = 0
    content_items_created: int = 0
    content_items_skipped: int = 0


class ImportResponse(BaseModel):
    ok: bool = True
    result: ImportResult


# ─────────────────────────────────────────────────────────────
# Settings / Status Schemas
# ─────────────────────────────────────────────────────────────

class SettingsResponse(BaseModel):
    """Effective settings. The cookie itself is never returned."""
    archive_dir: str
    patreon_cookie_configured: bool
    auto_download: bool
    auto_sync: bool
    env_overrides: list[str]
    internal_api_enabled: bool


class SettingsUpdateRequest(BaseModel):
    archive_dir: str | None = None
    patreon_cookie: str | None = None
    auto_download: bool | None = None
    auto_sync: bool | None = None


class ArchiveStatsResponse(BaseModel):
    total_size: int
    total_size_human: str
    file_count: int
    directory_count: int


class StatusResponse(BaseModel):
    status: str
    version: str
    archive_dir: str
    archive_writable: bool
    archive_stats: ArchiveStatsResponse
    creators: int
    content_items: int
    unseen_items: int
    archived_items: int
    items_with_errors: int
    harvest_jobs: dict[str, int]
    sync_state: str
