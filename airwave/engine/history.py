"""
History ledger and history fallback selector.

The ledger is the append-only log of every track that has been on air.
Rows are only mutated for replay bookkeeping (replay_count,
last_replayed_at) and likes; maintenance prunes rows older than the
retention horizon but never the rows the dedup window still needs.

The fallback selector picks a replay when the queue is empty:

    Tier 1: a track whose latest play is older than `freshness_hours`
    Tier 2: a track among the most recent `fallback_pool_size` plays,
            skipping the very last `exclude_recent` plays
    Tier 3: any track ever played
    Tier 4: the outgoing track itself (only when it is the whole catalog)

Every tier chooses uniformly at random among distinct catalog ids, and
tiers 1-3 exclude the outgoing track so the stream never repeats
back-to-back while any alternative exists.
"""

import logging
import random
from datetime import datetime, timedelta

from airwave.core.clock import Clock, to_iso
from airwave.core.database import Database
from airwave.core.logger import get_logger
from airwave.engine.models import TRACK_COLUMNS, HistoryEntry, HistoryStats, Track


logger = get_logger(__name__)


# Latest row per catalog id, with the catalog's most recent play time
_LATEST_PER_CATALOG_SQL = """
    SELECT h.*, g.last_played FROM history h
    JOIN (
        SELECT catalog_id, MAX(id) AS latest_id, MAX(played_at) AS last_played
        FROM history GROUP BY catalog_id
    ) g ON h.id = g.latest_id
"""


class HistoryLedger:
    """Append-only play log persisted in the `history` table."""

    def __init__(self, database: Database, clock: Clock) -> None:
        self._database = database
        self._clock = clock

    def append(self, track: Track, played_at: datetime, liked_by: list[str] | None = None) -> int:
        """Archive one play. Returns the new row id."""
        with self._database.transaction() as conn:
            cursor = conn.execute(f"""
                INSERT INTO history ({TRACK_COLUMNS}, played_at, liked_by)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (*track.as_params(), to_iso(played_at), Database.encode_list(liked_by or [])))
        return cursor.lastrowid

    def count(self) -> int:
        with self._database.read() as conn:
            return conn.execute("SELECT COUNT(*) FROM history").fetchone()[0]

    def recent(self, limit: int = 20) -> list[HistoryEntry]:
        """Most recent plays first."""
        with self._database.read() as conn:
            rows = conn.execute(
                "SELECT * FROM history ORDER BY played_at DESC, id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [HistoryEntry.from_row(row, Database.decode_list(row["liked_by"])) for row in rows]

    def get(self, entry_id: int) -> HistoryEntry | None:
        with self._database.read() as conn:
            row = conn.execute("SELECT * FROM history WHERE id = ?", (entry_id,)).fetchone()
        return HistoryEntry.from_row(row, Database.decode_list(row["liked_by"])) if row else None

    def mark_replayed(self, entry_id: int, replayed_at: datetime) -> None:
        with self._database.transaction() as conn:
            conn.execute("""
                UPDATE history
                SET replay_count = replay_count + 1, last_replayed_at = ?
                WHERE id = ?
            """, (to_iso(replayed_at), entry_id))

    def toggle_like(self, catalog_id: str, user_id: str) -> bool | None:
        """
        Flip a user's like on the latest play of a catalog id.

        Returns:
            True if now liked, False if the like was removed, None if the
            track has never been archived.
        """
        with self._database.transaction() as conn:
            row = conn.execute(
                "SELECT id, liked_by FROM history WHERE catalog_id = ? ORDER BY played_at DESC, id DESC LIMIT 1",
                (catalog_id,)
            ).fetchone()
            if row is None:
                return None

            liked_by = Database.decode_list(row["liked_by"])
            if user_id in liked_by:
                liked_by.remove(user_id)
                liked = False
            else:
                liked_by.append(user_id)
                liked = True

            conn.execute(
                "UPDATE history SET liked_by = ? WHERE id = ?",
                (Database.encode_list(liked_by), row["id"])
            )
        return liked

    def likes(self, catalog_id: str) -> list[str] | None:
        """User ids on the latest play of a catalog id, None if never archived."""
        with self._database.read() as conn:
            row = conn.execute(
                "SELECT liked_by FROM history WHERE catalog_id = ? ORDER BY played_at DESC, id DESC LIMIT 1",
                (catalog_id,)
            ).fetchone()
        return Database.decode_list(row["liked_by"]) if row else None

    def liked_by_user(self, user_id: str, limit: int = 50) -> list[HistoryEntry]:
        """
        Plays a user liked, newest first, one entry per catalog id.

        A like on any play counts, not only on the latest one.
        """
        with self._database.read() as conn:
            rows = conn.execute("""
                SELECT * FROM history
                WHERE liked_by IS NOT NULL AND liked_by != '[]'
                ORDER BY played_at DESC, id DESC
            """).fetchall()

        entries: list[HistoryEntry] = []
        seen: set[str] = set()
        for row in rows:
            liked_by = Database.decode_list(row["liked_by"])
            if user_id not in liked_by or row["catalog_id"] in seen:
                continue
            seen.add(row["catalog_id"])
            entries.append(HistoryEntry.from_row(row, liked_by))
            if len(entries) >= limit:
                break
        return entries

    def stats(self) -> HistoryStats:
        now = self._clock.now()
        with self._database.read() as conn:
            totals = conn.execute("""
                SELECT COUNT(*), COUNT(DISTINCT catalog_id), COUNT(DISTINCT lower(artist)),
                       COALESCE(SUM(replay_count), 0)
                FROM history
            """).fetchone()
            last_day = conn.execute(
                "SELECT COUNT(*) FROM history WHERE played_at >= ?",
                (to_iso(now - timedelta(hours=24)),)
            ).fetchone()[0]
            last_week = conn.execute(
                "SELECT COUNT(*) FROM history WHERE played_at >= ?",
                (to_iso(now - timedelta(days=7)),)
            ).fetchone()[0]
            replayed = conn.execute("""
                SELECT artist || ' - ' || title, SUM(replay_count) AS replays
                FROM history GROUP BY catalog_id
                HAVING replays > 0
                ORDER BY replays DESC LIMIT 10
            """).fetchall()

        return HistoryStats(
            total_plays=totals[0],
            plays_last_24h=last_day,
            plays_last_7d=last_week,
            unique_tracks=totals[1],
            unique_artists=totals[2],
            total_replays=totals[3],
            most_replayed=[(row[0], row[1]) for row in replayed],
        )

    def cleanup(self, days_to_keep: int, keep_last: int = 0) -> int:
        """
        Delete plays older than the retention horizon.

        Args:
            days_to_keep: Retention horizon in days.
            keep_last: The most recent N plays are kept regardless of age,
                       so the count-based dedup window stays intact.

        Returns:
            Number of rows deleted.
        """
        cutoff = to_iso(self._clock.now() - timedelta(days=days_to_keep))
        with self._database.transaction() as conn:
            cursor = conn.execute("""
                DELETE FROM history
                WHERE played_at < ?
                AND id NOT IN (
                    SELECT id FROM history ORDER BY played_at DESC, id DESC LIMIT ?
                )
            """, (cutoff, keep_last))
        deleted = cursor.rowcount
        if deleted:
            logger.info(f"Pruned {deleted} history entries older than {days_to_keep} days")
        return deleted


class FallbackSelector:
    """
    Chooses a history entry to replay when the queue is empty.

    Attributes:
        freshness_hours: Tier 1 horizon.
        exclude_recent: Plays skipped at the top of the tier 2 pool.
        pool_size: Depth of the tier 2 pool.
    """

    def __init__(
        self,
        database: Database,
        clock: Clock,
        freshness_hours: int = 24,
        exclude_recent: int = 50,
        pool_size: int = 500,
        rng: random.Random | None = None
    ) -> None:
        self._database = database
        self._clock = clock
        self.freshness_hours = freshness_hours
        self.exclude_recent = exclude_recent
        self.pool_size = pool_size
        self._rng = rng or random.Random()

    def select(self, exclude_catalog_id: str | None = None) -> HistoryEntry | None:
        """
        Pick a replay candidate.

        Args:
            exclude_catalog_id: The outgoing track; avoided unless it is the
                                only track the history knows.

        Returns:
            The chosen entry (latest row of its catalog id), or None if the
            history is empty.
        """
        cutoff = to_iso(self._clock.now() - timedelta(hours=self.freshness_hours))
        exclude = exclude_catalog_id or ""

        with self._database.read() as conn:
            # Tier 1: not played within the freshness horizon
            rows = conn.execute(
                _LATEST_PER_CATALOG_SQL + " WHERE g.last_played < ? AND h.catalog_id != ? ORDER BY h.id",
                (cutoff, exclude)
            ).fetchall()
            if rows:
                return self._choose(rows, tier=1)

            # Tier 2: recent pool minus the very last plays
            pool = conn.execute(
                "SELECT * FROM history ORDER BY played_at DESC, id DESC LIMIT ?",
                (self.pool_size,)
            ).fetchall()
            too_recent = {row["catalog_id"] for row in pool[:self.exclude_recent]}
            seen = set()
            rows = []
            for row in pool[self.exclude_recent:]:
                catalog_id = row["catalog_id"]
                if catalog_id in too_recent or catalog_id in seen or catalog_id == exclude:
                    continue
                seen.add(catalog_id)
                rows.append(row)
            if rows:
                return self._choose(sorted(rows, key=lambda row: row["id"]), tier=2)

            # Tier 3: anything but the outgoing track
            rows = conn.execute(
                _LATEST_PER_CATALOG_SQL + " WHERE h.catalog_id != ? ORDER BY h.id",
                (exclude,)
            ).fetchall()
            if rows:
                return self._choose(rows, tier=3)

            # Tier 4: the history holds nothing but the outgoing track
            rows = conn.execute(_LATEST_PER_CATALOG_SQL + " ORDER BY h.id").fetchall()
            if rows:
                return self._choose(rows, tier=4)

        return None

    def _choose(self, rows: list, tier: int) -> HistoryEntry:
        row = self._rng.choice(rows)
        level = logging.DEBUG if tier <= 2 else logging.WARNING
        logger.log(
            level,
            f"History fallback tier {tier} picked {row['artist']} - {row['title']} "
            f"out of {len(rows)} candidates"
        )
        return HistoryEntry.from_row(row, Database.decode_list(row["liked_by"]))
