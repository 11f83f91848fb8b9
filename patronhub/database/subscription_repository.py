"""
Subscription repository - platform memberships and their sync flags.
"""

from .connection import DatabaseConnection
from .converters import now_db, row_to_subscription
from .models import DBSubscription

_SELECT_WITH_CREATOR = """
    SELECT s.*, c.name AS creator_name, c.slug AS creator_slug
    FROM subscriptions s
    JOIN creators c ON s.creator_id = c.id
"""


class SubscriptionRepository:
    """Repository for subscription operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def upsert_external(
        self,
        creator_id: int,
        platform: str,
        external_id: str,
        profile_url: str | None,
        tier_name: str | None,
        cost_cents: int,
        currency: str,
        status: str,
        member_since: str | None,
        billing_cycle: str = "monthly",
    ) -> tuple[int, bool]:
        """
        Insert or refresh a subscription keyed on (platform, external_id).

        The user-controlled sync/auto-download flags are left untouched on update.
        Returns (subscription_id, created).
        """
        now = now_db()
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT id FROM subscriptions WHERE platform = ? AND external_id = ?",
                (platform, external_id)
            ).fetchone()
            if row:
                conn.execute(
                    """UPDATE subscriptions SET
                       creator_id = ?, profile_url = ?, tier_name = ?, cost_cents = ?,
                       currency = ?, billing_cycle = ?, status = ?, member_since = ?, updated_at = ?
                       WHERE id = ?""",
                    (creator_id, profile_url, tier_name, cost_cents, currency,
                     billing_cycle, status, member_since, now, row["id"])
                )
                return row["id"], False

            cursor = conn.execute(
                """INSERT INTO subscriptions (
                       creator_id, platform, external_id, profile_url, tier_name, cost_cents,
                       currency, billing_cycle, status, member_since, sync_enabled,
                       auto_download_enabled, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, 1, ?, ?)""",
                (creator_id, platform, external_id, profile_url, tier_name, cost_cents,
                 currency, billing_cycle, status, member_since, now, now)
            )
            return cursor.lastrowid, True

    def create(
        self,
        creator_id: int,
        platform: str,
        tier_name: str | None = None,
        cost_cents: int = 0,
        currency: str = "USD",
        billing_cycle: str = "monthly",
        status: str = "active",
        member_since: str | None = None,
        sync_enabled: bool = True,
        auto_download_enabled: bool = True,
    ) -> int:
        """Add a manually tracked subscription (no upstream external id)."""
        now = now_db()
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO subscriptions (
                       creator_id, platform, tier_name, cost_cents, currency, billing_cycle,
                       status, member_since, sync_enabled, auto_download_enabled,
                       created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (creator_id, platform, tier_name, cost_cents, currency, billing_cycle,
                 status, member_since, sync_enabled, auto_download_enabled, now, now)
            )
            return cursor.lastrowid

    def get(self, subscription_id: int) -> DBSubscription | None:
        with self._db.conn() as conn:
            row = conn.execute(
                _SELECT_WITH_CREATOR + " WHERE s.id = ?", (subscription_id,)
            ).fetchone()
            return row_to_subscription(row) if row else None

    def get_all(self) -> list[DBSubscription]:
        with self._db.conn() as conn:
            rows = conn.execute(_SELECT_WITH_CREATOR + " ORDER BY c.name, s.id").fetchall()
            return [row_to_subscription(row) for row in rows]

    def get_for_creator(self, creator_id: int) -> list[DBSubscription]:
        with self._db.conn() as conn:
            rows = conn.execute(
                _SELECT_WITH_CREATOR + " WHERE s.creator_id = ? ORDER BY s.id",
                (creator_id,)
            ).fetchall()
            return [row_to_subscription(row) for row in rows]

    def find_latest(self, creator_id: int, platform: str) -> DBSubscription | None:
        """Get the most recent subscription a creator has on a platform."""
        with self._db.conn() as conn:
            row = conn.execute(
                _SELECT_WITH_CREATOR
                + " WHERE s.creator_id = ? AND s.platform = ? ORDER BY s.id DESC LIMIT 1",
                (creator_id, platform)
            ).fetchone()
            return row_to_subscription(row) if row else None

    def get_syncable(self, platform: str, external_ids: list[str]) -> list[DBSubscription]:
        """Get active, sync-enabled subscriptions whose external ids were just discovered."""
        if not external_ids:
            return []
        placeholders = ",".join("?" * len(external_ids))
        with self._db.conn() as conn:
            rows = conn.execute(
                _SELECT_WITH_CREATOR
                + f""" WHERE s.platform = ? AND s.status = 'active' AND s.sync_enabled = 1
                       AND s.external_id IN ({placeholders})
                       ORDER BY s.id""",
                (platform, *external_ids)
            ).fetchall()
            return [row_to_subscription(row) for row in rows]

    def count_sync_enabled(self) -> int:
        """Count active subscriptions with sync turned on."""
        with self._db.conn() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM subscriptions WHERE status = 'active' AND sync_enabled = 1"
            ).fetchone()[0]

    def mark_synced(self, subscription_id: int):
        now = now_db()
        with self._db.conn() as conn:
            conn.execute(
                "UPDATE subscriptions SET last_synced_at = ?, updated_at = ? WHERE id = ?",
                (now, now, subscription_id)
            )

    def update(self, subscription_id: int, **fields) -> bool:
        """
        Update the given columns on a subscription.

        Only known settings columns are accepted. Returns False if no row matched.
        """
        allowed = {
            "sync_enabled", "auto_download_enabled", "tier_name", "cost_cents", "currency",
            "billing_cycle", "status", "member_since",
        }
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update subscription columns: {sorted(unknown)}")
        if not fields:
            return self.get(subscription_id) is not None

        assignments = ", ".join(f"{column} = ?" for column in fields)
        with self._db.conn() as conn:
            cursor = conn.execute(
                f"UPDATE subscriptions SET {assignments}, updated_at = ? WHERE id = ?",
                (*fields.values(), now_db(), subscription_id)
            )
            return cursor.rowcount > 0
