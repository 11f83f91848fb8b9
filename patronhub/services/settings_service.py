"""
Settings service: effective runtime settings.

Each setting resolves in order: process environment, then the value stored
in the settings table, then the built-in default. Values pinned by the
environment cannot be changed through the API.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from ..archive.paths import resolve_archive_root
from ..config import Config, config as default_config
from ..database import Database

logger = logging.getLogger(__name__)

ARCHIVE_DIR_KEY = "archive_dir"
PATREON_COOKIE_KEY = "patreon_cookie"
AUTO_DOWNLOAD_KEY = "auto_download"
AUTO_SYNC_KEY = "auto_sync"


@dataclass
class EffectiveSettings:
    archive_dir: str
    patreon_cookie_configured: bool
    auto_download: bool
    auto_sync: bool
    env_overrides: list[str]


class SettingsService:
    """Resolves archive, cookie and automation settings."""

    def __init__(self, db: Database, cfg: Config | None = None):
        self.db = db
        self.config = cfg or default_config

    # ─────────────────────────────────────────────────────────────
    # Resolution
    # ─────────────────────────────────────────────────────────────

    def archive_root(self) -> Path:
        configured = self.config.ARCHIVE_DIR or self.db.get_setting(ARCHIVE_DIR_KEY)
        return resolve_archive_root(configured)

    def patreon_cookie(self) -> str | None:
        cookie = self.config.PATREON_COOKIE or self.db.get_setting(PATREON_COOKIE_KEY)
        return cookie.strip() if cookie and cookie.strip() else None

    def auto_download(self) -> bool:
        if self.config.AUTO_DOWNLOAD is not None:
            return self.config.AUTO_DOWNLOAD
        return self.db.settings.get_bool(AUTO_DOWNLOAD_KEY, default=True)

    def auto_sync(self) -> bool:
        if self.config.AUTO_SYNC is not None:
            return self.config.AUTO_SYNC
        return self.db.settings.get_bool(AUTO_SYNC_KEY, default=False)

    def internal_api_enabled(self) -> bool:
        return bool(self.config.INTERNAL_TOKEN)

    def env_overrides(self) -> list[str]:
        overrides = []
        if self.config.ARCHIVE_DIR:
            overrides.append(ARCHIVE_DIR_KEY)
        if self.config.PATREON_COOKIE:
            overrides.append(PATREON_COOKIE_KEY)
        if self.config.AUTO_DOWNLOAD is not None:
            overrides.append(AUTO_DOWNLOAD_KEY)
        if self.config.AUTO_SYNC is not None:
            overrides.append(AUTO_SYNC_KEY)
        return overrides

    def effective(self) -> EffectiveSettings:
        return EffectiveSettings(
            archive_dir=str(self.archive_root()),
            patreon_cookie_configured=self.patreon_cookie() is not None,
            auto_download=self.auto_download(),
            auto_sync=self.auto_sync(),
            env_overrides=self.env_overrides(),
        )

    # ─────────────────────────────────────────────────────────────
    # Updates
    # ─────────────────────────────────────────────────────────────

    def update(
        self,
        archive_dir: str | None = None,
        patreon_cookie: str | None = None,
        auto_download: bool | None = None,
        auto_sync: bool | None = None,
    ) -> list[str]:
        """
        Persist the given settings, skipping any pinned by the environment.

        An empty string for archive_dir or patreon_cookie clears the stored value.

        Returns:
            Keys that were ignored because the environment overrides them
        """
        requested: dict[str, str | bool] = {}
        if archive_dir is not None:
            requested[ARCHIVE_DIR_KEY] = archive_dir.strip()
        if patreon_cookie is not None:
            requested[PATREON_COOKIE_KEY] = patreon_cookie.strip()
        if auto_download is not None:
            requested[AUTO_DOWNLOAD_KEY] = auto_download
        if auto_sync is not None:
            requested[AUTO_SYNC_KEY] = auto_sync

        pinned = set(self.env_overrides())
        ignored = [key for key in requested if key in pinned]
        self.db.settings.apply({key: value for key, value in requested.items() if key not in pinned})

        if ignored:
            logger.info(f"Settings pinned by environment, not updated: {', '.join(ignored)}")
        return ignored
