"""
Listener feedback: skips and likes.

Likes on the track currently on air cannot go to the history ledger yet
(the track is archived only when it leaves the air), so they are kept
here as feedback rows scoped to the airing (created_at >= started_at)
and copied into the history row's liked_by when the track is archived.
"""

from datetime import datetime

from airwave.core.clock import Clock, to_iso
from airwave.core.database import Database
from airwave.core.logger import get_logger


logger = get_logger(__name__)


SKIP = "skip"
LIKE = "like"


class FeedbackLog:
    """Feedback rows persisted in the `feedback` table."""

    def __init__(self, database: Database, clock: Clock) -> None:
        self._database = database
        self._clock = clock

    def record(self, user_id: str, catalog_id: str, kind: str, reason: str | None = None) -> int:
        with self._database.transaction() as conn:
            cursor = conn.execute("""
                INSERT INTO feedback (user_id, catalog_id, kind, reason, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (user_id, catalog_id, kind, reason, to_iso(self._clock.now())))
        return cursor.lastrowid

    def toggle_like(self, user_id: str, catalog_id: str, since: datetime) -> bool:
        """
        Flip a user's like on the airing of `catalog_id` that began at `since`.

        Returns:
            True if now liked, False if the like was removed.
        """
        with self._database.transaction() as conn:
            cursor = conn.execute("""
                DELETE FROM feedback
                WHERE user_id = ? AND catalog_id = ? AND kind = ? AND created_at >= ?
            """, (user_id, catalog_id, LIKE, to_iso(since)))
            if cursor.rowcount:
                return False
            self.record(user_id, catalog_id, LIKE)
        return True

    def likes(self, catalog_id: str, since: datetime) -> list[str]:
        """User ids who liked the airing that began at `since`, oldest first."""
        with self._database.read() as conn:
            rows = conn.execute("""
                SELECT user_id, MIN(id) AS first_id FROM feedback
                WHERE catalog_id = ? AND kind = ? AND created_at >= ?
                GROUP BY user_id
                ORDER BY first_id
            """, (catalog_id, LIKE, to_iso(since))).fetchall()
        return [row[0] for row in rows]

    def counts(self) -> dict[str, int]:
        """Feedback totals per kind."""
        with self._database.read() as conn:
            rows = conn.execute("SELECT kind, COUNT(*) FROM feedback GROUP BY kind").fetchall()
        return {row[0]: row[1] for row in rows}
