"""
Harvest queue processing.

Posts whose listing carried no downloadable URL get a ``download_url_resolve``
job. After each sync the backlog pass claims due jobs, asks the platform
adapter to resolve media for them, and archives what it finds. Posts that
still yield nothing are handed to the external headless worker through a
``headless_asset_discover`` job.
"""

import logging
from dataclasses import dataclass

from .adapters.base import PlatformAdapter
from .archive import ArchiveWriter
from .config import Config, config as default_config
from .database import Database, retry_delay_minutes
from .exceptions import PatronHubError
from .services.settings_service import SettingsService

logger = logging.getLogger(__name__)

DOWNLOAD_URL_RESOLVE = "download_url_resolve"
HEADLESS_ASSET_DISCOVER = "headless_asset_discover"
JOB_KINDS = (DOWNLOAD_URL_RESOLVE, HEADLESS_ASSET_DISCOVER)

NO_MEDIA_ERROR = "No downloadable media URL found"

__all__ = [
    "DOWNLOAD_URL_RESOLVE",
    "HEADLESS_ASSET_DISCOVER",
    "JOB_KINDS",
    "BacklogReport",
    "HarvestProcessor",
    "retry_delay_minutes",
]


@dataclass
class BacklogReport:
    claimed: int = 0
    resolved: int = 0
    archived: int = 0
    failed: int = 0
    escalated: int = 0


class HarvestProcessor:
    """Runs due ``download_url_resolve`` jobs in-process."""

    def __init__(
        self,
        db: Database,
        adapter: PlatformAdapter,
        writer: ArchiveWriter,
        settings: SettingsService | None = None,
        cfg: Config | None = None,
    ):
        self.db = db
        self.adapter = adapter
        self.writer = writer
        self.settings = settings or SettingsService(db)
        self.config = cfg or default_config

    async def process_backlog(self, limit: int | None = None) -> BacklogReport:
        """
        Claim and process up to ``limit`` due jobs.

        Each job is completed exactly once: success when a URL was found,
        failure (with backoff) otherwise. Archive failures after a successful
        resolution are recorded on the content item, not on the job.
        """
        limit = limit or self.config.HARVEST_BATCH_SIZE
        report = BacklogReport()
        auto_download = self.settings.auto_download()

        while report.claimed < limit:
            job = self.db.harvest.claim(
                DOWNLOAD_URL_RESOLVE,
                self.config.HARVEST_MAX_ATTEMPTS,
                self.config.HARVEST_LEASE_MINUTES,
            )
            if job is None:
                break
            report.claimed += 1

            item = self.db.get_content_item(job.content_item_id)
            if item is None:
                self.db.harvest.fail(job.id, "Content item no longer exists")
                report.failed += 1
                continue

            try:
                media = await self.adapter.resolve_media(post_id=item.external_id, post_url=item.external_url)
            except PatronHubError as e:
                logger.warning(f"Media resolution failed for item {item.id}: {e}")
                self.db.harvest.complete(job.id, False, str(e), self.config.HARVEST_MAX_ATTEMPTS)
                report.failed += 1
                continue

            if not media.found:
                self.db.harvest.complete(job.id, False, NO_MEDIA_ERROR, self.config.HARVEST_MAX_ATTEMPTS)
                report.failed += 1
                if self.settings.internal_api_enabled():
                    _, created = self.db.harvest.ensure(item.id, HEADLESS_ASSET_DISCOVER)
                    if created:
                        report.escalated += 1
                continue

            self.db.content.set_resolved_media(item.id, media.download_url, media.file_name_hint)
            self.db.assets.add(item.id, media.download_url, media.file_name_hint, item.content_type)
            self.db.harvest.complete(job.id, True)
            report.resolved += 1
            logger.info(f"Resolved media for item {item.id} via {media.source}")

            subscription = self.db.get_subscription(item.subscription_id)
            if not (auto_download and subscription and subscription.auto_download_enabled):
                continue

            try:
                outcome = await self.writer.archive_content_item(item.id)
            except (PatronHubError, OSError) as e:
                logger.warning(f"Archive failed for item {item.id}: {e}")
                self.db.content.set_archive_error(item.id, str(e))
                continue
            if outcome.downloaded:
                report.archived += 1

        logger.info(
            f"Harvest backlog: claimed={report.claimed}, resolved={report.resolved}, "
            f"archived={report.archived}, failed={report.failed}, escalated={report.escalated}"
        )
        return report
