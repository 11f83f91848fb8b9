"""
Database connection management and schema initialization.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class DatabaseConnection:
    """Manages database connection and schema."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def conn(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory."""
        connection = sqlite3.connect(self.db_path, timeout=30)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    @contextmanager
    def immediate(self) -> Iterator[sqlite3.Connection]:
        """
        Get a connection holding the database write lock.

        The transaction starts with BEGIN IMMEDIATE so concurrent writers
        queue behind it instead of interleaving a read-then-write sequence.
        """
        connection = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        try:
            connection.execute("BEGIN IMMEDIATE")
            try:
                yield connection
            except BaseException:
                connection.execute("ROLLBACK")
                raise
            connection.execute("COMMIT")
        finally:
            connection.close()

    def _init_schema(self):
        """Initialize database schema."""
        with self.conn() as connection:
            connection.execute("PRAGMA journal_mode = WAL")
            connection.executescript("""
                CREATE TABLE IF NOT EXISTS creators (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    slug TEXT UNIQUE NOT NULL,
                    avatar_url TEXT,
                    bio TEXT,
                    website_url TEXT,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                );

                CREATE TABLE IF NOT EXISTS subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    creator_id INTEGER NOT NULL REFERENCES creators(id) ON DELETE CASCADE,
                    platform TEXT NOT NULL
                        CHECK(platform IN ('patreon', 'substack', 'gumroad', 'discord')),
                    external_id TEXT,
                    profile_url TEXT,
                    tier_name TEXT,
                    cost_cents INTEGER NOT NULL DEFAULT 0,
                    currency TEXT NOT NULL DEFAULT 'USD',
                    billing_cycle TEXT NOT NULL DEFAULT 'monthly'
                        CHECK(billing_cycle IN ('monthly', 'yearly', 'one-time')),
                    status TEXT NOT NULL DEFAULT 'active'
                        CHECK(status IN ('active', 'paused', 'cancelled')),
                    member_since TIMESTAMP,
                    last_synced_at TIMESTAMP,
                    sync_enabled BOOLEAN NOT NULL DEFAULT TRUE,
                    auto_download_enabled BOOLEAN NOT NULL DEFAULT TRUE,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    UNIQUE(platform, external_id)
                );

                CREATE TABLE IF NOT EXISTS content_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    subscription_id INTEGER NOT NULL REFERENCES subscriptions(id) ON DELETE CASCADE,
                    external_id TEXT,
                    external_url TEXT,
                    download_url TEXT,
                    file_name_hint TEXT,
                    title TEXT NOT NULL,
                    description TEXT,
                    content_type TEXT NOT NULL DEFAULT 'article'
                        CHECK(content_type IN ('video', 'image', 'pdf', 'audio', 'article', 'attachment')),
                    published_at TIMESTAMP,
                    tags TEXT NOT NULL DEFAULT '[]',
                    is_seen BOOLEAN NOT NULL DEFAULT FALSE,
                    seen_at TIMESTAMP,
                    is_archived BOOLEAN NOT NULL DEFAULT FALSE,
                    archive_error TEXT,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    UNIQUE(subscription_id, external_id)
                );

                CREATE TABLE IF NOT EXISTS content_assets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content_item_id INTEGER NOT NULL REFERENCES content_items(id) ON DELETE CASCADE,
                    url TEXT NOT NULL,
                    file_name_hint TEXT,
                    asset_type TEXT NOT NULL DEFAULT 'attachment',
                    mime_type_hint TEXT,
                    status TEXT NOT NULL DEFAULT 'discovered'
                        CHECK(status IN ('discovered', 'downloaded', 'failed')),
                    last_error TEXT,
                    downloaded_at TIMESTAMP,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    UNIQUE(content_item_id, url)
                );

                CREATE TABLE IF NOT EXISTS downloads (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content_item_id INTEGER NOT NULL REFERENCES content_items(id) ON DELETE CASCADE,
                    file_name TEXT NOT NULL,
                    file_type TEXT NOT NULL,
                    mime_type TEXT,
                    size_bytes INTEGER NOT NULL DEFAULT 0,
                    local_path TEXT NOT NULL,
                    downloaded_at TIMESTAMP NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    UNIQUE(content_item_id, local_path)
                );

                CREATE TABLE IF NOT EXISTS harvest_jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content_item_id INTEGER NOT NULL REFERENCES content_items(id) ON DELETE CASCADE,
                    kind TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK(status IN ('pending', 'running', 'done', 'failed')),
                    attempt_count INTEGER NOT NULL DEFAULT 0,
                    last_attempt_at TIMESTAMP,
                    next_attempt_at TIMESTAMP,
                    last_error TEXT,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    UNIQUE(content_item_id, kind)
                );

                CREATE TABLE IF NOT EXISTS sync_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    subscription_id INTEGER NOT NULL REFERENCES subscriptions(id) ON DELETE CASCADE,
                    started_at TIMESTAMP NOT NULL,
                    completed_at TIMESTAMP,
                    status TEXT NOT NULL DEFAULT 'running'
                        CHECK(status IN ('running', 'success', 'failed')),
                    items_found INTEGER NOT NULL DEFAULT 0,
                    items_downloaded INTEGER NOT NULL DEFAULT 0,
                    errors TEXT NOT NULL DEFAULT '[]'
                );

                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_subscriptions_creator ON subscriptions(creator_id);
                CREATE INDEX IF NOT EXISTS idx_content_subscription ON content_items(subscription_id, published_at DESC);
                CREATE INDEX IF NOT EXISTS idx_content_unseen ON content_items(is_seen, published_at DESC);
                CREATE INDEX IF NOT EXISTS idx_assets_item ON content_assets(content_item_id);
                CREATE INDEX IF NOT EXISTS idx_downloads_item ON downloads(content_item_id);
                CREATE INDEX IF NOT EXISTS idx_harvest_due ON harvest_jobs(status, next_attempt_at);
                CREATE INDEX IF NOT EXISTS idx_sync_logs_started ON sync_logs(started_at DESC);
            """)

            # Migrations
            self._migrate_add_column(connection, "content_assets", "mime_type_hint", "TEXT")

    def _migrate_add_column(
        self,
        conn: sqlite3.Connection,
        table: str,
        column: str,
        column_type: str
    ):
        """Add a column to a table if it doesn't exist."""
        cursor = conn.execute(f"PRAGMA table_info({table})")
        columns = [row[1] for row in cursor.fetchall()]
        if column not in columns:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
