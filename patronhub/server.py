"""
PatronHub API Server

FastAPI application providing endpoints for:
- Sync runs (start, progress)
- Creators, subscriptions and content browsing
- Archiving content items to disk
- Settings, status and JSON import
- The internal API used by the headless worker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .config import config, state
from .database import Database
from .rate_limit import setup_rate_limiting
from .routes import (
    content_router,
    creators_router,
    internal_router,
    misc_router,
    subscriptions_router,
    sync_router,
)
from .scheduler import start_sync_scheduler, stop_sync_scheduler
from .sync import SyncSupervisor

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup application resources."""
    # Startup - skip if already initialized (e.g., by tests)
    if state.db is None:
        state.db = Database(config.DB_PATH)
        logger.info(f"Database ready at {config.DB_PATH}")

    if state.supervisor is None:
        state.supervisor = SyncSupervisor()

    started_scheduler = False
    if state.scheduler is None:
        state.scheduler = await start_sync_scheduler(state.db, state.supervisor)
        started_scheduler = True

    if not config.INTERNAL_TOKEN:
        logger.info("PATRON_HUB_INTERNAL_TOKEN not set; internal API disabled")

    yield

    # Shutdown
    if started_scheduler:
        await stop_sync_scheduler()
        state.scheduler = None


app = FastAPI(
    title="PatronHub API",
    version=__version__,
    lifespan=lifespan
)

setup_rate_limiting(app)

# Include routers
app.include_router(misc_router)
app.include_router(sync_router)
app.include_router(creators_router)
app.include_router(subscriptions_router)
app.include_router(content_router)
app.include_router(internal_router)
