"""
Database facade - provides unified access to all repositories.

Callers may use the repositories directly (``db.harvest.claim(...)``) or the
delegating methods below for the common operations.
"""

from pathlib import Path

from .connection import DatabaseConnection
from .asset_repository import AssetRepository
from .content_repository import ContentRepository
from .creator_repository import CreatorRepository
from .harvest_repository import HarvestRepository
from .settings_repository import SettingsRepository
from .subscription_repository import SubscriptionRepository
from .sync_log_repository import SyncLogRepository
from .models import (
    ArchiveTarget,
    CreatorOverview,
    DBContentAsset,
    DBContentItem,
    DBCreator,
    DBDownload,
    DBHarvestJob,
    DBSubscription,
)


class Database:
    """Unified database access facade."""

    def __init__(self, db_path: Path):
        self._connection = DatabaseConnection(db_path)

        # Initialize repositories
        self.creators = CreatorRepository(self._connection)
        self.subscriptions = SubscriptionRepository(self._connection)
        self.content = ContentRepository(self._connection)
        self.assets = AssetRepository(self._connection)
        self.harvest = HarvestRepository(self._connection)
        self.sync_logs = SyncLogRepository(self._connection)
        self.settings = SettingsRepository(self._connection)

    # ─────────────────────────────────────────────────────────────
    # Creator operations (delegated to CreatorRepository)
    # ─────────────────────────────────────────────────────────────

    def get_creator(self, creator_id: int) -> DBCreator | None:
        return self.creators.get(creator_id)

    def get_creator_overview(self) -> list[CreatorOverview]:
        return self.creators.get_overview()

    # ─────────────────────────────────────────────────────────────
    # Subscription operations (delegated to SubscriptionRepository)
    # ─────────────────────────────────────────────────────────────

    def get_subscription(self, subscription_id: int) -> DBSubscription | None:
        return self.subscriptions.get(subscription_id)

    def get_subscriptions(self) -> list[DBSubscription]:
        return self.subscriptions.get_all()

    # ─────────────────────────────────────────────────────────────
    # Content operations (delegated to ContentRepository)
    # ─────────────────────────────────────────────────────────────

    def get_content_item(self, content_item_id: int) -> DBContentItem | None:
        return self.content.get(content_item_id)

    def get_archive_target(self, content_item_id: int) -> ArchiveTarget | None:
        return self.content.get_archive_target(content_item_id)

    def mark_content_seen(self, content_item_id: int, is_seen: bool = True) -> bool:
        return self.content.mark_seen(content_item_id, is_seen)

    # ─────────────────────────────────────────────────────────────
    # Asset and download operations (delegated to AssetRepository)
    # ─────────────────────────────────────────────────────────────

    def get_assets(self, content_item_id: int) -> list[DBContentAsset]:
        return self.assets.get_for_item(content_item_id)

    def get_downloads(self, content_item_id: int) -> list[DBDownload]:
        return self.assets.get_downloads(content_item_id)

    # ─────────────────────────────────────────────────────────────
    # Harvest queue operations (delegated to HarvestRepository)
    # ─────────────────────────────────────────────────────────────

    def get_harvest_job(self, job_id: int) -> DBHarvestJob | None:
        return self.harvest.get(job_id)

    # ─────────────────────────────────────────────────────────────
    # Settings operations (delegated to SettingsRepository)
    # ─────────────────────────────────────────────────────────────

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        return self.settings.get(key, default)

    def set_setting(self, key: str, value: str):
        return self.settings.set(key, value)

    def get_all_settings(self) -> dict[str, str]:
        return self.settings.get_all()
