"""
Deduplication window.

Answers "has this catalog id been played recently?" in two flavors:
    - time-based:  played within the last T hours
    - count-based: among the last N plays

Enqueue validation uses the count-based window (default 100 plays) plus
a queue membership check; discovery additionally pre-filters candidates
with the time-based window (default 24 hours) before spending any lookup
quota on them.

The on-air track counts as a play for both windows even though it only
reaches the history table when it is archived.
"""

from datetime import datetime, timedelta

from airwave.core.clock import Clock, from_iso, to_iso
from airwave.core.database import Database
from airwave.engine.models import RejectReason


class DedupWindow:
    """
    Recency checks over the history ledger, the queue and the on-air record.

    Attributes:
        window: Default N for count-based checks.
        hours: Default T for time-based checks.
    """

    def __init__(self, database: Database, clock: Clock, window: int = 100, hours: int = 24) -> None:
        self._database = database
        self._clock = clock
        self.window = window
        self.hours = hours

    def is_recently_played(
        self,
        catalog_id: str,
        hours: int | None = None,
        last_n: int | None = None
    ) -> bool:
        """
        Check a catalog id against the recency windows.

        Args:
            catalog_id: Track to check.
            hours: Time window; when given (alone) only the time window is checked.
            last_n: Count window; when given (alone) only the count window is checked.
                    With neither argument, the count window of size self.window is used.

        Returns:
            True if the track falls in any requested window, or is on air.
        """
        if hours is None and last_n is None:
            last_n = self.window

        with self._database.read() as conn:
            current = conn.execute(
                "SELECT 1 FROM current_track WHERE catalog_id = ?", (catalog_id,)
            ).fetchone()
            if current is not None:
                return True

            if hours is not None:
                cutoff = to_iso(self._clock.now() - timedelta(hours=hours))
                row = conn.execute(
                    "SELECT 1 FROM history WHERE catalog_id = ? AND played_at >= ? LIMIT 1",
                    (catalog_id, cutoff)
                ).fetchone()
                if row is not None:
                    return True

            if last_n is not None and last_n > 0:
                row = conn.execute("""
                    SELECT 1 FROM (
                        SELECT catalog_id FROM history
                        ORDER BY played_at DESC, id DESC
                        LIMIT ?
                    ) WHERE catalog_id = ? LIMIT 1
                """, (last_n, catalog_id)).fetchone()
                if row is not None:
                    return True

        return False

    def last_played_at(self, catalog_id: str) -> datetime | None:
        """Most recent play of a catalog id, or None if never archived."""
        with self._database.read() as conn:
            row = conn.execute(
                "SELECT MAX(played_at) FROM history WHERE catalog_id = ?", (catalog_id,)
            ).fetchone()
        return from_iso(row[0]) if row else None

    def check_candidate(self, catalog_id: str) -> RejectReason | None:
        """
        Enqueue-time validation.

        Returns:
            DUPLICATE_IN_QUEUE if the id is already queued, RECENTLY_PLAYED if
            it is on air or among the last `window` plays, otherwise None.
        """
        with self._database.read() as conn:
            queued = conn.execute(
                "SELECT 1 FROM queue WHERE catalog_id = ?", (catalog_id,)
            ).fetchone()
        if queued is not None:
            return RejectReason.DUPLICATE_IN_QUEUE

        if self.is_recently_played(catalog_id, last_n=self.window):
            return RejectReason.RECENTLY_PLAYED

        return None
