"""
Sync pipeline and run supervision.

A sync run discovers the user's memberships, upserts creators and
subscriptions, walks the posts of every active sync-enabled subscription and
either archives each post right away or queues it for media resolution. The
harvest backlog pass runs once all subscriptions are done.

Only one run may be in flight per process; ``SyncSupervisor`` enforces that
and exposes run state for the status endpoint.
"""

import logging
import re
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum

from .adapters import Membership, PlatformAdapter, Post, create_adapter
from .archive import ArchiveWriter
from .config import Config, config as default_config
from .database import Database, DBSubscription
from .database.converters import normalize_timestamp, utc_now
from .downloader import Downloader
from .exceptions import PatronHubError
from .harvest import DOWNLOAD_URL_RESOLVE, BacklogReport, HarvestProcessor
from .services.settings_service import SettingsService

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 60
MAX_CREATOR_SLUG_LENGTH = 80


def slugify(value: str) -> str:
    """Lowercase ASCII slug: quotes dropped, other runs of non-alphanumerics become '-'."""
    slug = value.lower().strip()
    slug = re.sub(r"['\"]", "", slug)
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    return slug.strip("-")[:MAX_SLUG_LENGTH]


def creator_slug(membership: Membership) -> str:
    """Stable creator slug; the campaign id suffix keeps it unique per campaign."""
    base = slugify(membership.creator_name or membership.campaign_name or f"patreon-{membership.campaign_id}")
    return f"{base or 'patreon-creator'}-{membership.campaign_id}"[:MAX_CREATOR_SLUG_LENGTH]


# ─────────────────────────────────────────────────────────────
# Run supervision
# ─────────────────────────────────────────────────────────────

class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class SyncStats:
    memberships_discovered: int = 0
    subscriptions_synced: int = 0
    posts_found: int = 0
    posts_inserted: int = 0
    posts_updated: int = 0
    items_downloaded: int = 0
    jobs_queued: int = 0
    errors: list[str] = field(default_factory=list)
    backlog: BacklogReport | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SyncProgress:
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


@dataclass
class SyncSnapshot:
    state: SyncState
    started_at: datetime | None
    finished_at: datetime | None
    last_error: str | None
    stats: SyncStats | None

    @property
    def is_running(self) -> bool:
        return self.state == SyncState.RUNNING


class SyncSupervisor:
    """
    Single-run guard and state holder for sync runs.

    States move idle -> running -> succeeded | failed, and back to running on
    the next start. State lives in memory, so the guard only covers one
    process.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._state = SyncState.IDLE
        self._started_at: datetime | None = None
        self._finished_at: datetime | None = None
        self._last_error: str | None = None
        self._stats: SyncStats | None = None

    def try_start(self) -> bool:
        """Move to running. Returns False if a run is already in flight."""
        with self._lock:
            if self._state == SyncState.RUNNING:
                return False
            self._state = SyncState.RUNNING
            self._started_at = utc_now()
            self._finished_at = None
            self._last_error = None
            self._stats = None
            return True

    def succeed(self, stats: SyncStats):
        with self._lock:
            self._state = SyncState.SUCCEEDED
            self._finished_at = utc_now()
            self._stats = stats

    def fail(self, error: str, stats: SyncStats | None = None):
        with self._lock:
            self._state = SyncState.FAILED
            self._finished_at = utc_now()
            self._last_error = error
            self._stats = stats

    def snapshot(self) -> SyncSnapshot:
        with self._lock:
            return SyncSnapshot(
                state=self._state,
                started_at=self._started_at,
                finished_at=self._finished_at,
                last_error=self._last_error,
                stats=self._stats,
            )

    def progress(self, db: Database) -> SyncProgress | None:
        """Progress of the current or last run, read from sync logs and the harvest queue."""
        snap = self.snapshot()
        if snap.started_at is None:
            return None

        logs = db.sync_logs.get_since(snap.started_at)
        finished = [log for log in logs if log.status != "running"]
        harvest = db.harvest.get_status_counts()
        end = snap.finished_at or utc_now()

        return SyncProgress(
            subscriptions_total=db.subscriptions.count_sync_enabled(),
            subscriptions_completed=len(finished),
            subscriptions_succeeded=sum(1 for log in finished if log.status == "success"),
            subscriptions_failed=sum(1 for log in finished if log.status == "failed"),
            items_found=sum(log.items_found for log in logs),
            items_downloaded=sum(log.items_downloaded for log in logs),
            harvest_pending=harvest["pending"],
            harvest_running=harvest["running"],
            harvest_failed=harvest["failed"],
            elapsed_seconds=int((end - snap.started_at).total_seconds()),
        )

    def summary(self, db: Database) -> str:
        """One-line human summary of the current or last run."""
        snap = self.snapshot()
        progress = self.progress(db)
        if snap.state == SyncState.IDLE or progress is None:
            return "No sync has run yet"

        counts = (
            f"{progress.subscriptions_completed}/{progress.subscriptions_total} subscriptions, "
            f"{progress.items_found} posts found, {progress.items_downloaded} downloaded"
        )
        if snap.state == SyncState.RUNNING:
            return f"Sync running ({progress.elapsed_seconds}s): {counts}"
        if snap.state == SyncState.FAILED:
            return f"Sync failed: {snap.last_error}"
        failed = f", {progress.subscriptions_failed} failed" if progress.subscriptions_failed else ""
        return f"Sync finished in {progress.elapsed_seconds}s: {counts}{failed}"


# ─────────────────────────────────────────────────────────────
# Pipeline
# ─────────────────────────────────────────────────────────────

def upsert_memberships(db: Database, memberships: list[Membership], platform: str = "patreon") -> list[str]:
    """Upsert creators and subscriptions for discovered memberships. Returns campaign ids."""
    campaign_ids = []
    for m in memberships:
        creator_id, _ = db.creators.upsert(
            name=m.creator_name,
            slug=creator_slug(m),
            avatar_url=m.creator_avatar_url,
            website_url=m.profile_url,
        )
        db.subscriptions.upsert_external(
            creator_id=creator_id,
            platform=platform,
            external_id=m.campaign_id,
            profile_url=m.profile_url,
            tier_name=m.tier_name,
            cost_cents=m.cost_cents,
            currency=m.currency,
            status=m.status,
            member_since=normalize_timestamp(m.member_since),
        )
        campaign_ids.append(m.campaign_id)
    return campaign_ids


class PatreonSync:
    """Runs the membership, post and archive stages for one sync."""

    def __init__(
        self,
        db: Database,
        adapter: PlatformAdapter,
        writer: ArchiveWriter,
        settings: SettingsService | None = None,
    ):
        self.db = db
        self.adapter = adapter
        self.writer = writer
        self.settings = settings or SettingsService(db)

    async def run(self) -> SyncStats:
        """
        Sync memberships and posts.

        Raises:
            UpstreamError: If membership discovery fails outright
        """
        stats = SyncStats()
        memberships = await self.adapter.list_memberships()
        stats.memberships_discovered = len(memberships)

        campaign_ids = upsert_memberships(self.db, memberships)
        if not campaign_ids:
            logger.info("No memberships discovered, nothing to sync")
            return stats

        auto_download = self.settings.auto_download()
        for subscription in self.db.subscriptions.get_syncable("patreon", campaign_ids):
            await self._sync_subscription(subscription, auto_download, stats)

        logger.info(
            f"Sync complete: {stats.subscriptions_synced} subscriptions, {stats.posts_found} posts, "
            f"{stats.items_downloaded} downloaded, {len(stats.errors)} errors"
        )
        return stats

    async def _sync_subscription(self, subscription: DBSubscription, auto_download: bool, stats: SyncStats):
        log_id = self.db.sync_logs.start(subscription.id)
        status = "failed"
        items_found = 0
        items_downloaded = 0
        errors: list[str] = []

        try:
            posts = await self.adapter.list_posts(subscription.external_id)
            items_found = len(posts)
            stats.posts_found += len(posts)

            archive_enabled = auto_download and subscription.auto_download_enabled
            for post in posts:
                downloaded = await self._sync_post(subscription.id, post, archive_enabled, stats, errors)
                if downloaded:
                    items_downloaded += 1
                    stats.items_downloaded += 1

            self.db.subscriptions.mark_synced(subscription.id)
            stats.subscriptions_synced += 1
            status = "success"
        except PatronHubError as e:
            errors.append(str(e))
            stats.errors.append(f"Subscription {subscription.id}: {e}")
            logger.warning(f"Sync failed for subscription {subscription.id}: {e}")
        finally:
            self.db.sync_logs.finish(log_id, status, items_found, items_downloaded, errors)

    async def _sync_post(
        self,
        subscription_id: int,
        post: Post,
        archive_enabled: bool,
        stats: SyncStats,
        errors: list[str],
    ) -> bool:
        """Upsert one post and archive or queue it. Returns True if files were downloaded."""
        item_id, inserted = self.db.content.upsert_post(
            subscription_id=subscription_id,
            external_id=post.external_id,
            title=post.title,
            description=post.description,
            content_type=post.content_type,
            external_url=post.external_url,
            download_url=post.download_url,
            file_name_hint=post.file_name_hint,
            published_at=normalize_timestamp(post.published_at),
            tags=post.tags,
        )
        if inserted:
            stats.posts_inserted += 1
        else:
            stats.posts_updated += 1

        for asset in post.assets:
            self.db.assets.add(item_id, asset.url, asset.file_name_hint, asset.asset_type)
        if post.download_url:
            self.db.assets.add(item_id, post.download_url, post.file_name_hint, post.content_type)

        item = self.db.get_content_item(item_id)
        assets = self.db.get_assets(item_id)
        if not item.download_url and not assets:
            _, created = self.db.harvest.ensure(item_id, DOWNLOAD_URL_RESOLVE)
            if created:
                stats.jobs_queued += 1
            return False

        pending = any(a.status != "downloaded" for a in assets)
        if not archive_enabled or (item.is_archived and not pending):
            return False

        try:
            outcome = await self.writer.archive_content_item(item_id)
        except (PatronHubError, OSError) as e:
            message = f"Archive failed for content {item_id}: {e}"
            errors.append(message)
            logger.warning(message)
            self.db.content.set_archive_error(item_id, str(e))
            return False
        return outcome.downloaded


async def run_sync_job(
    db: Database,
    supervisor: SyncSupervisor,
    settings: SettingsService | None = None,
    adapter: PlatformAdapter | None = None,
    downloader: Downloader | None = None,
    cfg: Config | None = None,
) -> SyncStats | None:
    """
    Execute a sync run the supervisor has already started.

    Runs the sync followed by the harvest backlog pass and records the
    outcome on the supervisor. Returns the stats, or None on failure.
    """
    cfg = cfg or default_config
    settings = settings or SettingsService(db, cfg)
    stats: SyncStats | None = None

    try:
        if adapter is None:
            adapter = create_adapter(
                "patreon",
                cookie=settings.patreon_cookie(),
                max_pages=cfg.PATREON_MAX_PAGES,
                timeout=cfg.HTTP_TIMEOUT_SECONDS,
            )
        writer = ArchiveWriter(db, settings, downloader, adapters={adapter.platform.value: adapter})

        stats = await PatreonSync(db, adapter, writer, settings).run()
        stats.backlog = await HarvestProcessor(db, adapter, writer, settings, cfg).process_backlog()
    except Exception as e:
        logger.exception(f"Sync run failed: {e}")
        supervisor.fail(str(e), stats)
        return None

    supervisor.succeed(stats)
    return stats
