"""
Harvest job repository - durable retry queue for deferred media resolution.

Jobs move pending -> running -> done | failed | pending (retry). A job is
unique per (content_item_id, kind).
"""

from .connection import DatabaseConnection
from .converters import minutes_from_now_db, now_db, row_to_harvest_job
from .models import DBHarvestJob

MAX_BACKOFF_MINUTES = 720
MAX_ERROR_LENGTH = 500


def retry_delay_minutes(attempt_count: int) -> int:
    """Backoff before the next attempt: 5, 10, 20, ... minutes, capped at 12 hours."""
    return min(MAX_BACKOFF_MINUTES, 5 * 2 ** max(0, attempt_count - 1))


class HarvestRepository:
    """Repository for harvest job operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def enqueue(self, content_item_id: int, kind: str) -> int:
        """
        Schedule a job to run now.

        Re-enqueueing an existing (item, kind) resets it to pending with a fresh
        attempt budget instead of creating a second row.
        """
        now = now_db()
        with self._db.conn() as conn:
            conn.execute(
                """INSERT INTO harvest_jobs (
                       content_item_id, kind, status, attempt_count, next_attempt_at,
                       created_at, updated_at)
                   VALUES (?, ?, 'pending', 0, ?, ?, ?)
                   ON CONFLICT(content_item_id, kind) DO UPDATE SET
                   status = 'pending', attempt_count = 0, next_attempt_at = excluded.next_attempt_at,
                   last_error = NULL, updated_at = excluded.updated_at""",
                (content_item_id, kind, now, now, now)
            )
            return self._job_id(conn, content_item_id, kind)

    def ensure(self, content_item_id: int, kind: str) -> tuple[int, bool]:
        """
        Create a job only if none exists for (item, kind).

        Existing jobs keep their backoff schedule. Returns (job_id, created).
        """
        now = now_db()
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO harvest_jobs (
                       content_item_id, kind, status, attempt_count, next_attempt_at,
                       created_at, updated_at)
                   VALUES (?, ?, 'pending', 0, ?, ?, ?)
                   ON CONFLICT(content_item_id, kind) DO NOTHING""",
                (content_item_id, kind, now, now, now)
            )
            return self._job_id(conn, content_item_id, kind), cursor.rowcount > 0

    def _job_id(self, conn, content_item_id: int, kind: str) -> int:
        row = conn.execute(
            "SELECT id FROM harvest_jobs WHERE content_item_id = ? AND kind = ?",
            (content_item_id, kind)
        ).fetchone()
        return row["id"]

    def get(self, job_id: int) -> DBHarvestJob | None:
        with self._db.conn() as conn:
            row = conn.execute("SELECT * FROM harvest_jobs WHERE id = ?", (job_id,)).fetchone()
            return row_to_harvest_job(row) if row else None

    def get_for_item(self, content_item_id: int, kind: str) -> DBHarvestJob | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM harvest_jobs WHERE content_item_id = ? AND kind = ?",
                (content_item_id, kind)
            ).fetchone()
            return row_to_harvest_job(row) if row else None

    def claim(self, kind: str, max_attempts: int, lease_minutes: int) -> DBHarvestJob | None:
        """
        Atomically claim the oldest due job of a kind.

        The winning worker's job is pushed out by the lease, so a running job
        only becomes claimable again if its worker never completes it.
        """
        now = now_db()
        with self._db.immediate() as conn:
            row = conn.execute(
                """SELECT hj.*, ci.external_url AS external_url, ci.external_id AS external_id,
                          ci.title AS title
                   FROM harvest_jobs hj
                   JOIN content_items ci ON hj.content_item_id = ci.id
                   WHERE hj.kind = ?
                     AND hj.status IN ('pending', 'running')
                     AND hj.attempt_count < ?
                     AND (hj.next_attempt_at IS NULL OR hj.next_attempt_at <= ?)
                   ORDER BY hj.next_attempt_at IS NOT NULL, hj.next_attempt_at, hj.id
                   LIMIT 1""",
                (kind, max_attempts, now)
            ).fetchone()
            if not row:
                return None

            cursor = conn.execute(
                """UPDATE harvest_jobs SET
                   status = 'running', attempt_count = attempt_count + 1,
                   last_attempt_at = ?, next_attempt_at = ?, updated_at = ?
                   WHERE id = ? AND attempt_count = ? AND status IN ('pending', 'running')""",
                (now, minutes_from_now_db(lease_minutes), now, row["id"], row["attempt_count"])
            )
            if cursor.rowcount != 1:
                return None

            claimed = conn.execute(
                """SELECT hj.*, ci.external_url AS external_url, ci.external_id AS external_id,
                          ci.title AS title
                   FROM harvest_jobs hj
                   JOIN content_items ci ON hj.content_item_id = ci.id
                   WHERE hj.id = ?""",
                (row["id"],)
            ).fetchone()
            return row_to_harvest_job(claimed)

    def complete(
        self,
        job_id: int,
        ok: bool,
        error: str | None = None,
        max_attempts: int = 6,
    ) -> DBHarvestJob | None:
        """
        Record the outcome of a claimed job.

        Failures are rescheduled with exponential backoff until the attempt
        budget is spent, then the job is marked failed for good.
        Returns the updated job, or None if it does not exist.
        """
        now = now_db()
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT attempt_count FROM harvest_jobs WHERE id = ?", (job_id,)
            ).fetchone()
            if not row:
                return None

            if ok:
                conn.execute(
                    """UPDATE harvest_jobs SET status = 'done', next_attempt_at = NULL,
                       last_error = NULL, updated_at = ? WHERE id = ?""",
                    (now, job_id)
                )
            else:
                attempt_count = row["attempt_count"] or 0
                message = (error or "harvest job failed")[:MAX_ERROR_LENGTH]
                if attempt_count >= max_attempts:
                    status, next_attempt_at = "failed", None
                else:
                    status = "pending"
                    next_attempt_at = minutes_from_now_db(retry_delay_minutes(attempt_count))
                conn.execute(
                    """UPDATE harvest_jobs SET status = ?, next_attempt_at = ?, last_error = ?,
                       updated_at = ? WHERE id = ?""",
                    (status, next_attempt_at, message, now, job_id)
                )

            updated = conn.execute("SELECT * FROM harvest_jobs WHERE id = ?", (job_id,)).fetchone()
            return row_to_harvest_job(updated)

    def fail(self, job_id: int, error: str):
        """Mark a job terminally failed without consuming a retry."""
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE harvest_jobs SET status = 'failed', next_attempt_at = NULL,
                   last_error = ?, updated_at = ? WHERE id = ?""",
                (error[:MAX_ERROR_LENGTH], now_db(), job_id)
            )

    def get_status_counts(self) -> dict[str, int]:
        with self._db.conn() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM harvest_jobs GROUP BY status"
            ).fetchall()
        counts = {"pending": 0, "running": 0, "done": 0, "failed": 0}
        for row in rows:
            counts[row["status"]] = row["n"]
        return counts
