"""
Database module - SQLite storage for creators, subscriptions, content and harvest jobs.

Uses repository pattern for better separation of concerns.
"""

from .connection import DatabaseConnection
from .models import (
    ArchiveTarget,
    CreatorOverview,
    DBContentAsset,
    DBContentItem,
    DBCreator,
    DBDownload,
    DBHarvestJob,
    DBSubscription,
    DBSyncLog,
)
from .asset_repository import AssetRepository
from .content_repository import ContentRepository
from .creator_repository import CreatorRepository
from .harvest_repository import HarvestRepository, retry_delay_minutes
from .settings_repository import SettingsRepository
from .subscription_repository import SubscriptionRepository
from .sync_log_repository import SyncLogRepository
from .database import Database

__all__ = [
    "Database",
    "DatabaseConnection",
    "ArchiveTarget",
    "CreatorOverview",
    "DBContentAsset",
    "DBContentItem",
    "DBCreator",
    "DBDownload",
    "DBHarvestJob",
    "DBSubscription",
    "DBSyncLog",
    "AssetRepository",
    "ContentRepository",
    "CreatorRepository",
    "HarvestRepository",
    "SettingsRepository",
    "SubscriptionRepository",
    "SyncLogRepository",
    "retry_delay_minutes",
]
