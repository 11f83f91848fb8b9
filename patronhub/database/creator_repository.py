"""
Creator repository - creators and dashboard aggregates.
"""

from .connection import DatabaseConnection
from .converters import now_db, parse_timestamp, row_to_creator
from .models import CreatorOverview, DBCreator


class CreatorRepository:
    """Repository for creator operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def upsert(
        self,
        name: str,
        slug: str,
        avatar_url: str | None = None,
        website_url: str | None = None,
        bio: str | None = None,
    ) -> tuple[int, bool]:
        """
        Insert or refresh a creator keyed on slug.

        Returns (creator_id, created).
        """
        now = now_db()
        with self._db.conn() as conn:
            row = conn.execute("SELECT id FROM creators WHERE slug = ?", (slug,)).fetchone()
            if row:
                conn.execute(
                    """UPDATE creators SET name = ?, avatar_url = ?, website_url = ?, updated_at = ?
                       WHERE id = ?""",
                    (name, avatar_url, website_url, now, row["id"])
                )
                return row["id"], False

            cursor = conn.execute(
                """INSERT INTO creators (name, slug, avatar_url, bio, website_url, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (name, slug, avatar_url, bio, website_url, now, now)
            )
            return cursor.lastrowid, True

    def get(self, creator_id: int) -> DBCreator | None:
        with self._db.conn() as conn:
            row = conn.execute("SELECT * FROM creators WHERE id = ?", (creator_id,)).fetchone()
            return row_to_creator(row) if row else None

    def get_by_slug(self, slug: str) -> DBCreator | None:
        with self._db.conn() as conn:
            row = conn.execute("SELECT * FROM creators WHERE slug = ?", (slug,)).fetchone()
            return row_to_creator(row) if row else None

    def rename(self, creator_id: int, name: str):
        with self._db.conn() as conn:
            conn.execute(
                "UPDATE creators SET name = ?, updated_at = ? WHERE id = ?",
                (name, now_db(), creator_id)
            )

    def count(self) -> int:
        with self._db.conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM creators").fetchone()[0]

    def get_overview(self) -> list[CreatorOverview]:
        """Get every creator with content totals, newest activity first."""
        with self._db.conn() as conn:
            rows = conn.execute("""
                SELECT c.id, c.name, c.slug, c.avatar_url,
                       GROUP_CONCAT(DISTINCT s.platform) AS platforms,
                       COUNT(ci.id) AS total_items,
                       COUNT(CASE WHEN ci.is_seen = 0 THEN 1 END) AS unseen_items,
                       COUNT(CASE WHEN ci.is_archived = 1 THEN 1 END) AS archived_items,
                       MAX(ci.published_at) AS last_published_at
                FROM creators c
                LEFT JOIN subscriptions s ON s.creator_id = c.id
                LEFT JOIN content_items ci ON ci.subscription_id = s.id
                GROUP BY c.id
                ORDER BY last_published_at IS NULL, last_published_at DESC, c.name
            """).fetchall()

            type_rows = conn.execute("""
                SELECT s.creator_id, ci.content_type, COUNT(*) AS n
                FROM content_items ci
                JOIN subscriptions s ON ci.subscription_id = s.id
                GROUP BY s.creator_id, ci.content_type
            """).fetchall()

        breakdown: dict[int, dict[str, int]] = {}
        for row in type_rows:
            breakdown.setdefault(row["creator_id"], {})[row["content_type"]] = row["n"]

        return [
            CreatorOverview(
                id=row["id"],
                name=row["name"],
                slug=row["slug"],
                avatar_url=row["avatar_url"],
                platforms=sorted(row["platforms"].split(",")) if row["platforms"] else [],
                total_items=row["total_items"],
                unseen_items=row["unseen_items"],
                archived_items=row["archived_items"],
                last_published_at=parse_timestamp(row["last_published_at"]),
                content_types=breakdown.get(row["id"], {}),
            )
            for row in rows
        ]
