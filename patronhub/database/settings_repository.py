"""
Settings repository - stored values for settings the environment leaves unset.

Values are strings. Booleans are stored as "true"/"false". A missing row
means the built-in default applies, so clearing a setting deletes its row.
"""

from .connection import DatabaseConnection
from .converters import now_db

_TRUE_VALUES = ("1", "true", "yes", "on")


class SettingsRepository:
    """Repository for stored settings."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def get(self, key: str, default: str | None = None) -> str | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT value FROM settings WHERE key = ?", (key,)
            ).fetchone()
            return row["value"] if row else default

    def get_bool(self, key: str, default: bool) -> bool:
        value = self.get(key)
        if value is None or not value.strip():
            return default
        return value.strip().lower() in _TRUE_VALUES

    def get_all(self) -> dict[str, str]:
        with self._db.conn() as conn:
            rows = conn.execute("SELECT key, value FROM settings ORDER BY key").fetchall()
            return {row["key"]: row["value"] for row in rows}

    def apply(self, changes: dict[str, str | bool | None]):
        """
        Write several settings in one transaction.

        True/False are stored as "true"/"false". None or an empty string
        deletes the row so the default applies again.
        """
        now = now_db()
        with self._db.conn() as conn:
            for key, value in changes.items():
                if isinstance(value, bool):
                    value = "true" if value else "false"
                if not value:
                    conn.execute("DELETE FROM settings WHERE key = ?", (key,))
                    continue
                conn.execute(
                    """INSERT INTO settings (key, value, updated_at)
                       VALUES (?, ?, ?)
                       ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value, updated_at = excluded.updated_at""",
                    (key, value, now)
                )

    def set(self, key: str, value: str | bool):
        self.apply({key: value})

    def delete(self, key: str):
        self.apply({key: None})
