"""
Archive Writer - materialize one content item on disk.

Writes the post snapshot, downloads every known asset into the item's
directory and records the outcome. Safe to re-run: download rows are upserted
by path and assets already downloaded are skipped.
"""

import logging
from dataclasses import dataclass
from datetime import timezone
from typing import TYPE_CHECKING

from ..database import Database
from ..database.asset_repository import asset_url_key
from ..database.converters import utc_now
from ..exceptions import ContentNotFoundError, PatronHubError, UpstreamError

from .paths import SNAPSHOT_FILE_NAME, content_directory, relative_archive_path
from .snapshot import PLACEHOLDER_BODY, capture_body, render_snapshot, sanitize_post_html

if TYPE_CHECKING:
    from ..adapters.base import PlatformAdapter
    from ..downloader import Downloader
    from ..services.settings_service import SettingsService

logger = logging.getLogger(__name__)

MAX_REPORTED_ERRORS = 3
SNAPSHOT_MIME_TYPE = "text/html; charset=utf-8"


@dataclass
class ArchiveOutcome:
    local_path: str
    downloaded: bool
    errors: list[str]


@dataclass
class _Candidate:
    asset_id: int | None
    url: str
    file_name_hint: str | None
    asset_type: str
    status: str


class ArchiveWriter:
    """Writes content items into the archive directory tree."""

    def __init__(
        self,
        db: Database,
        settings: "SettingsService | None" = None,
        downloader: "Downloader | None" = None,
        adapters: "dict[str, PlatformAdapter] | None" = None,
    ):
        self.db = db
        if settings is None:
            from ..services.settings_service import SettingsService
            settings = SettingsService(db)
        self.settings = settings
        if downloader is None:
            from ..downloader import Downloader
            downloader = Downloader()
        self.downloader = downloader
        self._adapters = dict(adapters or {})

    def _adapter_for(self, platform: str) -> "PlatformAdapter | None":
        """Authenticated adapter for a platform, or None when it has no credentials."""
        if platform in self._adapters:
            return self._adapters[platform]
        if platform != "patreon":
            return None
        cookie = self.settings.patreon_cookie()
        if not cookie:
            return None

        from ..adapters import create_adapter
        adapter = create_adapter(platform, cookie=cookie)
        self._adapters[platform] = adapter
        return adapter

    async def archive_content_item(self, content_item_id: int) -> ArchiveOutcome:
        """
        Archive a content item.

        Per-asset failures are recorded on the asset row and summarized in the
        item's archive_error; they do not abort the run.

        Raises:
            ContentNotFoundError: If the content item does not exist
            InvalidCookieError: If the configured cookie is unusable
        """
        target = self.db.get_archive_target(content_item_id)
        if target is None:
            raise ContentNotFoundError(content_item_id)

        item = target.item
        archive_root = self.settings.archive_root()
        published_at = item.published_at.astimezone(timezone.utc) if item.published_at else utc_now()
        item_dir = content_directory(archive_root, target.platform, target.creator_slug, published_at, item.title)
        item_dir.mkdir(parents=True, exist_ok=True)

        adapter = self._adapter_for(target.platform)
        errors: list[str] = []

        logger.info(f"Archiving content item {content_item_id} into {item_dir}")

        # Snapshot
        body = await self._snapshot_body(target.platform, item.description, item.external_url, adapter, errors)
        snapshot_path = item_dir / SNAPSHOT_FILE_NAME
        snapshot_path.write_text(
            render_snapshot(item.title, published_at, item.external_url, body),
            encoding="utf-8",
        )
        snapshot_local_path = relative_archive_path(snapshot_path, archive_root)
        self.db.assets.upsert_download(
            content_item_id,
            SNAPSHOT_FILE_NAME,
            "snapshot",
            SNAPSHOT_MIME_TYPE,
            snapshot_path.stat().st_size,
            snapshot_local_path,
        )

        # Assets
        downloaded_any = False
        cookie = adapter.cookie_header if adapter else None
        referer = adapter.referer if adapter else None
        trusted_host = adapter.trusted_host if adapter else None
        # Names already on disk for this item, including post.html
        reserved = {d.file_name for d in self.db.get_downloads(content_item_id)}

        for candidate in self._candidates(content_item_id, item.download_url, item.file_name_hint, item.content_type):
            if candidate.status == "downloaded":
                continue
            if not candidate.url.lower().startswith(("http://", "https://")):
                continue

            try:
                result = await self.downloader.download_to_file(
                    candidate.url,
                    item_dir,
                    file_name_hint=candidate.file_name_hint,
                    cookie=cookie,
                    referer=referer,
                    reserved=reserved,
                    trusted_host=trusted_host,
                )
            except PatronHubError as e:
                message = str(e)
                errors.append(message)
                logger.warning(f"Asset download failed for item {content_item_id} ({candidate.url}): {message}")
                if candidate.asset_id is not None:
                    self.db.assets.mark_failed(candidate.asset_id, message)
                continue

            self.db.assets.upsert_download(
                content_item_id,
                result.file_name,
                candidate.asset_type or "attachment",
                result.mime_type,
                result.size_bytes,
                relative_archive_path(result.absolute_path, archive_root),
            )
            reserved.add(result.file_name)
            if candidate.asset_id is not None:
                self.db.assets.mark_downloaded(candidate.asset_id)
            downloaded_any = True

        archive_error = " | ".join(errors[:MAX_REPORTED_ERRORS]) if errors else None
        self.db.content.set_archive_result(content_item_id, True, archive_error)
        self.db.content.mark_seen_if_unseen(content_item_id)

        logger.info(
            f"Archived content item {content_item_id}: "
            f"downloaded={downloaded_any}, errors={len(errors)}"
        )
        return ArchiveOutcome(snapshot_local_path, downloaded_any, errors)

    async def _snapshot_body(
        self,
        platform: str,
        description: str | None,
        external_url: str | None,
        adapter: "PlatformAdapter | None",
        errors: list[str],
    ) -> str:
        if description and description.strip():
            return sanitize_post_html(description)

        if platform == "patreon" and external_url and adapter is not None:
            try:
                return capture_body(await adapter.fetch_page(external_url))
            except UpstreamError as e:
                message = f"Snapshot capture failed: {e}"
                errors.append(message)
                logger.warning(message)

        return PLACEHOLDER_BODY

    def _candidates(
        self,
        content_item_id: int,
        download_url: str | None,
        file_name_hint: str | None,
        content_type: str,
    ) -> list[_Candidate]:
        """Known asset rows plus the item's own download_url, unique by URL identity."""
        candidates = [
            _Candidate(a.id, a.url, a.file_name_hint, a.asset_type or "attachment", a.status)
            for a in self.db.get_assets(content_item_id)
        ]
        if download_url and all(asset_url_key(c.url) != asset_url_key(download_url) for c in candidates):
            candidates.append(_Candidate(None, download_url, file_name_hint, content_type or "attachment", "discovered"))
        return candidates
