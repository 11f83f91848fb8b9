"""
Sync log repository - per-subscription audit trail of sync runs.
"""

import json
from datetime import datetime

from .connection import DatabaseConnection
from .converters import now_db, row_to_sync_log, to_db_time
from .models import DBSyncLog


class SyncLogRepository:
    """Repository for sync log records."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def start(self, subscription_id: int) -> int:
        """Open a running log entry for one subscription. Returns log ID."""
        with self._db.conn() as conn:
            cursor = conn.execute(
                "INSERT INTO sync_logs (subscription_id, started_at, status) VALUES (?, ?, 'running')",
                (subscription_id, now_db())
            )
            return cursor.lastrowid

    def finish(
        self,
        log_id: int,
        status: str,
        items_found: int,
        items_downloaded: int,
        errors: list[str],
    ):
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE sync_logs SET completed_at = ?, status = ?, items_found = ?,
                   items_downloaded = ?, errors = ? WHERE id = ?""",
                (now_db(), status, items_found, items_downloaded, json.dumps(errors), log_id)
            )

    def get_since(self, started_at: datetime) -> list[DBSyncLog]:
        with self._db.conn() as conn:
            rows = conn.execute(
                "SELECT * FROM sync_logs WHERE started_at >= ? ORDER BY id",
                (to_db_time(started_at),)
            ).fetchall()
            return [row_to_sync_log(row) for row in rows]

    def get_for_subscription(self, subscription_id: int, limit: int = 20) -> list[DBSyncLog]:
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT * FROM sync_logs WHERE subscription_id = ?
                   ORDER BY started_at DESC, id DESC LIMIT ?""",
                (subscription_id, limit)
            ).fetchall()
            return [row_to_sync_log(row) for row in rows]
