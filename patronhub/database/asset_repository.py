"""
Asset repository - discovered download candidates and completed downloads.
"""

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .connection import DatabaseConnection
from .converters import now_db, row_to_content_asset, row_to_download
from .models import DBContentAsset, DBDownload

# Signing parameters that rotate between listings of the same file
VOLATILE_QUERY_PARAMS = frozenset({
    "token-time", "token-hash", "token", "expires", "signature", "key-pair-id",
})


def asset_url_key(url: str) -> str:
    """URL identity for dedupe: lowercased host, signing parameters and fragment dropped."""
    parts = urlsplit(url)
    query = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k.lower() not in VOLATILE_QUERY_PARAMS and not k.lower().startswith("x-amz-")
    ]
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, urlencode(sorted(query)), ""))


class AssetRepository:
    """Repository for content assets and download records."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    # ─────────────────────────────────────────────────────────────
    # Content assets
    # ─────────────────────────────────────────────────────────────

    def add(
        self,
        content_item_id: int,
        url: str,
        file_name_hint: str | None = None,
        asset_type: str = "attachment",
        mime_type_hint: str | None = None,
    ) -> bool:
        """
        Record a discovered asset. Returns False if the file was already known.

        A known file seen under a freshly signed URL keeps its row and status;
        only the stored URL is refreshed.
        """
        now = now_db()
        key = asset_url_key(url)
        with self._db.immediate() as conn:
            rows = conn.execute(
                "SELECT id, url FROM content_assets WHERE content_item_id = ?",
                (content_item_id,)
            ).fetchall()
            for row in rows:
                if asset_url_key(row["url"]) != key:
                    continue
                if row["url"] != url:
                    conn.execute(
                        "UPDATE content_assets SET url = ?, updated_at = ? WHERE id = ?",
                        (url, now, row["id"])
                    )
                return False

            cursor = conn.execute(
                """INSERT INTO content_assets (
                       content_item_id, url, file_name_hint, asset_type, mime_type_hint,
                       status, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, 'discovered', ?, ?)
                   ON CONFLICT(content_item_id, url) DO NOTHING""",
                (content_item_id, url, file_name_hint, asset_type, mime_type_hint, now, now)
            )
            return cursor.rowcount > 0

    def get_for_item(self, content_item_id: int) -> list[DBContentAsset]:
        with self._db.conn() as conn:
            rows = conn.execute(
                "SELECT * FROM content_assets WHERE content_item_id = ? ORDER BY id",
                (content_item_id,)
            ).fetchall()
            return [row_to_content_asset(row) for row in rows]

    def mark_downloaded(self, asset_id: int):
        now = now_db()
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE content_assets SET status = 'downloaded', last_error = NULL,
                   downloaded_at = ?, updated_at = ? WHERE id = ?""",
                (now, now, asset_id)
            )

    def mark_failed(self, asset_id: int, error: str):
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE content_assets SET status = 'failed', last_error = ?, updated_at = ?
                   WHERE id = ?""",
                (error, now_db(), asset_id)
            )

    # ─────────────────────────────────────────────────────────────
    # Downloads
    # ─────────────────────────────────────────────────────────────

    def upsert_download(
        self,
        content_item_id: int,
        file_name: str,
        file_type: str,
        mime_type: str | None,
        size_bytes: int,
        local_path: str,
    ) -> int:
        """Record a file on disk, keyed on (content_item_id, local_path)."""
        now = now_db()
        with self._db.conn() as conn:
            conn.execute(
                """INSERT INTO downloads (
                       content_item_id, file_name, file_type, mime_type, size_bytes,
                       local_path, downloaded_at, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(content_item_id, local_path) DO UPDATE SET
                   file_name = excluded.file_name, file_type = excluded.file_type,
                   mime_type = excluded.mime_type, size_bytes = excluded.size_bytes,
                   downloaded_at = excluded.downloaded_at""",
                (content_item_id, file_name, file_type, mime_type, size_bytes, local_path, now, now)
            )
            row = conn.execute(
                "SELECT id FROM downloads WHERE content_item_id = ? AND local_path = ?",
                (content_item_id, local_path)
            ).fetchone()
            return row["id"]

    def get_downloads(self, content_item_id: int) -> list[DBDownload]:
        with self._db.conn() as conn:
            rows = conn.execute(
                "SELECT * FROM downloads WHERE content_item_id = ? ORDER BY id",
                (content_item_id,)
            ).fetchall()
            return [row_to_download(row) for row in rows]
