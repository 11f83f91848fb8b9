"""
Auto-sync Scheduler.

Background task that periodically runs a full sync when auto-sync is enabled.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from .config import config
from .services.settings_service import SettingsService
from .sync import run_sync_job

if TYPE_CHECKING:
    from .database import Database
    from .sync import SyncSupervisor


logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Background scheduler for periodic syncs.

    Shares the supervisor with the HTTP API, so a scheduled tick that lands
    while a manual sync is running is skipped.
    """

    def __init__(
        self,
        db: "Database",
        supervisor: "SyncSupervisor",
        interval_minutes: int | None = None,
        initial_delay_seconds: float = 10,
    ):
        self.db = db
        self.supervisor = supervisor
        self.settings = SettingsService(db)
        self._task: asyncio.Task | None = None
        self._running = False
        self._interval_minutes = interval_minutes or config.SYNC_INTERVAL_MINUTES
        self._initial_delay = initial_delay_seconds

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Start the scheduler if auto-sync is on and a cookie is configured."""
        if not self.settings.auto_sync():
            logger.info("Auto-sync disabled, scheduler not started")
            return

        if not self.settings.patreon_cookie():
            logger.info("Patreon cookie not configured, scheduler not started")
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Sync scheduler started (interval: {self._interval_minutes} minutes)")

    async def stop(self):
        """Stop the scheduler."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Sync scheduler stopped")

    async def restart(self):
        """Restart the scheduler with updated settings."""
        await self.stop()
        await self.start()

    async def _poll_loop(self):
        """Main scheduling loop."""
        # Initial delay to let the server fully start
        await asyncio.sleep(self._initial_delay)

        while self._running:
            try:
                if not self.settings.auto_sync():
                    logger.info("Auto-sync disabled, stopping scheduler")
                    self._running = False
                    break

                await self.run_once()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in sync scheduler loop: {e}")

            await asyncio.sleep(self._interval_minutes * 60)

    async def run_once(self) -> bool:
        """Run one scheduled sync. Returns False if skipped."""
        if not self.settings.patreon_cookie():
            logger.warning("Scheduled sync skipped: Patreon cookie not configured")
            return False

        if not self.supervisor.try_start():
            logger.info("Scheduled sync skipped: a sync is already running")
            return False

        logger.info("Starting scheduled sync")
        await run_sync_job(self.db, self.supervisor, self.settings)
        return True


# Global scheduler instance (initialized by server.py)
sync_scheduler: SyncScheduler | None = None


async def start_sync_scheduler(db: "Database", supervisor: "SyncSupervisor") -> SyncScheduler:
    """Start the global sync scheduler."""
    global sync_scheduler
    sync_scheduler = SyncScheduler(db, supervisor)
    await sync_scheduler.start()
    return sync_scheduler


async def stop_sync_scheduler():
    """Stop the global sync scheduler."""
    global sync_scheduler
    if sync_scheduler:
        await sync_scheduler.stop()
        sync_scheduler = None
