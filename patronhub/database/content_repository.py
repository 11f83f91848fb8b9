"""
Content repository - scraped posts and their archive state.
"""

import json

from .connection import DatabaseConnection
from .converters import now_db, row_to_content_item
from .models import ArchiveTarget, DBContentItem


class ContentRepository:
    """Repository for content item operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def upsert_post(
        self,
        subscription_id: int,
        external_id: str,
        title: str,
        description: str | None,
        content_type: str,
        external_url: str | None = None,
        download_url: str | None = None,
        file_name_hint: str | None = None,
        published_at: str | None = None,
        tags: list[str] | None = None,
    ) -> tuple[int, bool]:
        """
        Insert or refresh a post keyed on (subscription_id, external_id).

        A download URL resolved earlier is kept when the fresh listing has none.
        Returns (content_item_id, inserted).
        """
        now = now_db()
        tags_json = json.dumps(tags or [])
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT id FROM content_items WHERE subscription_id = ? AND external_id = ?",
                (subscription_id, external_id)
            ).fetchone()
            if row:
                conn.execute(
                    """UPDATE content_items SET
                       external_url = ?, download_url = COALESCE(?, download_url),
                       file_name_hint = COALESCE(?, file_name_hint), title = ?, description = ?,
                       content_type = ?, published_at = ?, tags = ?, updated_at = ?
                       WHERE id = ?""",
                    (external_url, download_url, file_name_hint, title, description,
                     content_type, published_at, tags_json, now, row["id"])
                )
                return row["id"], False

            cursor = conn.execute(
                """INSERT INTO content_items (
                       subscription_id, external_id, external_url, download_url, file_name_hint,
                       title, description, content_type, published_at, tags,
                       created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (subscription_id, external_id, external_url, download_url, file_name_hint,
                 title, description, content_type, published_at, tags_json, now, now)
            )
            return cursor.lastrowid, True

    def add_imported(
        self,
        subscription_id: int,
        title: str,
        content_type: str,
        description: str | None = None,
        external_url: str | None = None,
        published_at: str | None = None,
        tags: list[str] | None = None,
        is_seen: bool = False,
        is_archived: bool = False,
    ) -> int:
        """Add a content item that has no upstream external id."""
        now = now_db()
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO content_items (
                       subscription_id, external_url, title, description, content_type,
                       published_at, tags, is_seen, seen_at, is_archived, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (subscription_id, external_url, title, description, content_type, published_at,
                 json.dumps(tags or []), is_seen, now if is_seen else None, is_archived, now, now)
            )
            return cursor.lastrowid

    def exists_with_title(self, subscription_id: int, title: str, published_at: str | None) -> bool:
        with self._db.conn() as conn:
            row = conn.execute(
                """SELECT 1 FROM content_items
                   WHERE subscription_id = ? AND title = ? AND published_at IS ?
                   LIMIT 1""",
                (subscription_id, title, published_at)
            ).fetchone()
            return row is not None

    def get(self, content_item_id: int) -> DBContentItem | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM content_items WHERE id = ?", (content_item_id,)
            ).fetchone()
            return row_to_content_item(row) if row else None

    def get_by_external_id(self, subscription_id: int, external_id: str) -> DBContentItem | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM content_items WHERE subscription_id = ? AND external_id = ?",
                (subscription_id, external_id)
            ).fetchone()
            return row_to_content_item(row) if row else None

    def get_archive_target(self, content_item_id: int) -> ArchiveTarget | None:
        """Get an item with the platform and creator slug its archive path needs."""
        with self._db.conn() as conn:
            row = conn.execute(
                """SELECT ci.*, s.platform AS platform, c.slug AS creator_slug
                   FROM content_items ci
                   JOIN subscriptions s ON ci.subscription_id = s.id
                   JOIN creators c ON s.creator_id = c.id
                   WHERE ci.id = ?""",
                (content_item_id,)
            ).fetchone()
            if not row:
                return None
            return ArchiveTarget(
                item=row_to_content_item(row),
                platform=row["platform"],
                creator_slug=row["creator_slug"],
            )

    def get_for_subscription(self, subscription_id: int) -> list[DBContentItem]:
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT * FROM content_items WHERE subscription_id = ?
                   ORDER BY published_at DESC, id DESC""",
                (subscription_id,)
            ).fetchall()
            return [row_to_content_item(row) for row in rows]

    def get_for_creator(
        self,
        creator_id: int,
        unseen_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DBContentItem]:
        """Get a creator's content across all their subscriptions, newest first."""
        query = """
            SELECT ci.* FROM content_items ci
            JOIN subscriptions s ON ci.subscription_id = s.id
            WHERE s.creator_id = ?
        """
        params: list = [creator_id]
        if unseen_only:
            query += " AND ci.is_seen = 0"
        query += " ORDER BY ci.published_at DESC, ci.id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._db.conn() as conn:
            rows = conn.execute(query, params).fetchall()
            return [row_to_content_item(row) for row in rows]

    def set_resolved_media(self, content_item_id: int, download_url: str, file_name_hint: str | None):
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE content_items SET download_url = ?,
                   file_name_hint = COALESCE(?, file_name_hint), updated_at = ?
                   WHERE id = ?""",
                (download_url, file_name_hint, now_db(), content_item_id)
            )

    def mark_seen(self, content_item_id: int, is_seen: bool = True) -> bool:
        now = now_db()
        with self._db.conn() as conn:
            cursor = conn.execute(
                "UPDATE content_items SET is_seen = ?, seen_at = ?, updated_at = ? WHERE id = ?",
                (is_seen, now if is_seen else None, now, content_item_id)
            )
            return cursor.rowcount > 0

    def mark_seen_if_unseen(self, content_item_id: int):
        now = now_db()
        with self._db.conn() as conn:
            conn.execute(
                "UPDATE content_items SET is_seen = 1, seen_at = ? WHERE id = ? AND is_seen = 0",
                (now, content_item_id)
            )

    def set_archive_result(self, content_item_id: int, is_archived: bool, archive_error: str | None):
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE content_items SET is_archived = ?, archive_error = ?, updated_at = ?
                   WHERE id = ?""",
                (is_archived, archive_error, now_db(), content_item_id)
            )

    def set_archive_error(self, content_item_id: int, archive_error: str):
        """Record a failed archive attempt without touching other fields."""
        self.set_archive_result(content_item_id, False, archive_error)

    def get_counts(self) -> dict[str, int]:
        with self._db.conn() as conn:
            row = conn.execute("""
                SELECT COUNT(*) AS total,
                       COUNT(CASE WHEN is_seen = 0 THEN 1 END) AS unseen,
                       COUNT(CASE WHEN is_archived = 1 THEN 1 END) AS archived,
                       COUNT(CASE WHEN archive_error IS NOT NULL THEN 1 END) AS with_errors
                FROM content_items
            """).fetchone()
            return {
                "total": row["total"],
                "unseen": row["unseen"],
                "archived": row["archived"],
                "with_errors": row["with_errors"],
            }
