"""
Queue store: the FIFO lookahead of upcoming tracks.

Ordering is by created_at (enqueue time), ties broken by row id. A
catalog id appears at most once: the UNIQUE constraint guards the table,
and enqueue() checks membership, the dedup window and the capacity
inside one transaction so bursty concurrent inserts cannot slip a
duplicate past the check.

Usage:
    store = QueueStore(database, clock, dedup, max_size=20)
    result = store.enqueue(track)
    if not result.accepted:
        logger.info(f"Rejected: {result.reason.value}")

    entry = store.pop_oldest()  # inside the advancement transaction
"""

import sqlite3
from datetime import datetime, timedelta

from airwave.core.clock import Clock, from_iso, to_iso
from airwave.core.database import Database
from airwave.core.logger import get_logger
from airwave.engine.dedup import DedupWindow
from airwave.engine.models import TRACK_COLUMNS, EnqueueResult, QueueEntry, RejectReason, Track


logger = get_logger(__name__)


class QueueStore:
    """
    FIFO queue persisted in the `queue` table.

    Attributes:
        max_size: Enqueue refuses new entries at this depth (None = unbounded).
    """

    def __init__(
        self,
        database: Database,
        clock: Clock,
        dedup: DedupWindow,
        max_size: int | None = None
    ) -> None:
        self._database = database
        self._clock = clock
        self._dedup = dedup
        self.max_size = max_size

    # =========================================================================
    # Reads
    # =========================================================================

    def length(self) -> int:
        with self._database.read() as conn:
            return conn.execute("SELECT COUNT(*) FROM queue").fetchone()[0]

    def entries(self, limit: int | None = 10) -> list[QueueEntry]:
        """Upcoming entries in play order."""
        with self._database.read() as conn:
            if limit is None:
                rows = conn.execute("SELECT * FROM queue ORDER BY created_at, id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM queue ORDER BY created_at, id LIMIT ?", (limit,)
                ).fetchall()
        return [QueueEntry.from_row(row) for row in rows]

    def contains(self, catalog_id: str) -> bool:
        with self._database.read() as conn:
            return conn.execute(
                "SELECT 1 FROM queue WHERE catalog_id = ?", (catalog_id,)
            ).fetchone() is not None

    def entries_without_intro(self, limit: int) -> list[QueueEntry]:
        """The next `limit` entries that still need a spoken intro."""
        with self._database.read() as conn:
            rows = conn.execute(
                "SELECT * FROM queue WHERE intro_ref IS NULL ORDER BY created_at, id LIMIT ?",
                (limit,)
            ).fetchall()
        return [QueueEntry.from_row(row) for row in rows]

    def metrics(self) -> dict:
        """
        Depth, playtime and age figures for health reporting.

        Returns:
            Dictionary with keys: length, total_duration_seconds,
            oldest_created_at, newest_created_at.
        """
        with self._database.read() as conn:
            row = conn.execute("""
                SELECT COUNT(*), COALESCE(SUM(duration_seconds), 0),
                       MIN(created_at), MAX(created_at)
                FROM queue
            """).fetchone()
        return {
            "length": row[0],
            "total_duration_seconds": row[1],
            "oldest_created_at": from_iso(row[2]),
            "newest_created_at": from_iso(row[3]),
        }

    # =========================================================================
    # Writes
    # =========================================================================

    def enqueue(self, track: Track, force: bool = False) -> EnqueueResult:
        """
        Append a track after dedup and capacity checks.

        Args:
            track: Track to append (video already resolved).
            force: Skip the capacity check (emergency replenishment).
                   Dedup checks always apply.

        Returns:
            EnqueueResult with the new QueueId, or the RejectReason.
        """
        with self._database.transaction() as conn:
            reason = self._dedup.check_candidate(track.catalog_id)
            if reason is not None:
                logger.debug(f"Enqueue rejected ({reason.value}): {track.display_name}")
                return EnqueueResult.rejected(reason)

            if not force and self.max_size is not None:
                length = conn.execute("SELECT COUNT(*) FROM queue").fetchone()[0]
                if length >= self.max_size:
                    logger.debug(f"Enqueue rejected (queue full at {length}): {track.display_name}")
                    return EnqueueResult.rejected(RejectReason.QUEUE_FULL)

            created_at = self._next_created_at(conn)
            try:
                cursor = conn.execute(f"""
                    INSERT INTO queue ({TRACK_COLUMNS}, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (*track.as_params(), to_iso(created_at)))
            except sqlite3.IntegrityError:
                return EnqueueResult.rejected(RejectReason.DUPLICATE_IN_QUEUE)

        logger.info(f"Queued: {track.display_name}")
        return EnqueueResult.success(cursor.lastrowid)

    def _next_created_at(self, conn: sqlite3.Connection) -> datetime:
        """
        Enqueue timestamp that keeps FIFO order strict.

        A manual clock (or a coarse system clock) can hand out the same
        instant twice; bump by a microsecond past the newest entry instead.
        """
        now = self._clock.now()
        newest = from_iso(conn.execute("SELECT MAX(created_at) FROM queue").fetchone()[0])
        if newest is not None and newest >= now:
            return newest + timedelta(microseconds=1)
        return now

    def pop_oldest(self) -> QueueEntry | None:
        """Remove and return the head of the queue, or None if empty."""
        with self._database.transaction() as conn:
            row = conn.execute("SELECT * FROM queue ORDER BY created_at, id LIMIT 1").fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM queue WHERE id = ?", (row["id"],))
        return QueueEntry.from_row(row)

    def attach_intro(self, queue_id: int, intro_ref: str) -> bool:
        """
        Record a pre-generated intro on a queued entry.

        Returns:
            False if the entry already left the queue.
        """
        with self._database.transaction() as conn:
            cursor = conn.execute(
                "UPDATE queue SET intro_ref = ? WHERE id = ?", (intro_ref, queue_id)
            )
        return cursor.rowcount > 0

    def remove(self, queue_id: int) -> bool:
        with self._database.transaction() as conn:
            cursor = conn.execute("DELETE FROM queue WHERE id = ?", (queue_id,))
        return cursor.rowcount > 0

    def clear(self, keep_count: int = 0) -> int:
        """
        Drop every entry except the first `keep_count` in play order.

        Returns:
            Number of entries removed.
        """
        with self._database.transaction() as conn:
            cursor = conn.execute("""
                DELETE FROM queue WHERE id NOT IN (
                    SELECT id FROM queue ORDER BY created_at, id LIMIT ?
                )
            """, (max(keep_count, 0),))
        removed = cursor.rowcount
        logger.info(f"Cleared {removed} queue entries (kept {keep_count})")
        return removed
