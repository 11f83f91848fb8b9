"""
Pytest fixtures for PatronHub tests.
"""

import os
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from patronhub.config import Config, config, state
from patronhub.database import Database
from patronhub.rate_limit import limiter
from patronhub.server import app
from patronhub.sync import SyncSupervisor


@pytest.fixture
def temp_db_path():
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        yield Path(f.name)
    # Cleanup
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(f.name + suffix):
            os.unlink(f.name + suffix)


@pytest.fixture
def temp_archive_dir():
    """Create a temporary archive root."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def test_db(temp_db_path):
    """Create a test database instance."""
    db = Database(temp_db_path)
    yield db


@pytest.fixture
def test_config(temp_archive_dir):
    """A Config pinned to the temporary archive with env overrides cleared."""
    cfg = Config()
    cfg.ARCHIVE_DIR = str(temp_archive_dir)
    cfg.PATREON_COOKIE = ""
    cfg.AUTO_DOWNLOAD = None
    cfg.AUTO_SYNC = None
    cfg.INTERNAL_TOKEN = ""
    cfg.HARVEST_MAX_ATTEMPTS = 6
    cfg.HARVEST_LEASE_MINUTES = 30
    cfg.HARVEST_BATCH_SIZE = 25
    return cfg


@pytest.fixture
def subscription(test_db):
    """A creator with one sync-enabled Patreon subscription. Returns the subscription id."""
    creator_id, _ = test_db.creators.upsert(name="Test Creator", slug="test-creator-100")
    subscription_id, _ = test_db.subscriptions.upsert_external(
        creator_id=creator_id,
        platform="patreon",
        external_id="100",
        profile_url="https://www.patreon.com/testcreator",
        tier_name="Supporter",
        cost_cents=500,
        currency="USD",
        status="active",
        member_since=None,
    )
    return subscription_id


@pytest.fixture
def client(temp_db_path, temp_archive_dir, monkeypatch):
    """Create a test client with an isolated database and archive root."""
    # Store original state
    original_db = state.db
    original_supervisor = state.supervisor
    original_scheduler = state.scheduler
    original_adapter = state.adapter
    original_downloader = state.downloader
    original_limiter_enabled = limiter.enabled

    monkeypatch.setattr(config, "ARCHIVE_DIR", str(temp_archive_dir))
    monkeypatch.setattr(config, "PATREON_COOKIE", "")
    monkeypatch.setattr(config, "AUTO_DOWNLOAD", None)
    monkeypatch.setattr(config, "AUTO_SYNC", None)
    monkeypatch.setattr(config, "INTERNAL_TOKEN", "")

    # Set up test state with fresh instances
    state.db = Database(temp_db_path)
    state.supervisor = SyncSupervisor()
    state.adapter = None
    state.downloader = None
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    # Restore original state
    state.db = original_db
    state.supervisor = original_supervisor
    state.scheduler = original_scheduler
    state.adapter = original_adapter
    state.downloader = original_downloader
    limiter.enabled = original_limiter_enabled
