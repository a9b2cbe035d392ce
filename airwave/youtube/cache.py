"""
Match cache: (artist, title) -> video id.

A search costs 100 quota units; a cache hit costs nothing. Every
successful match is upserted here (last write wins) and looked up before
any search is made.

Keys are normalized (case-folded, trimmed, inner whitespace collapsed),
so "  Daft Punk" and "daft punk" share an entry. A hit bumps the entry's
use_count and last_used_at; if that bookkeeping fails the hit is still
returned.

Retention: cleanup() deletes entries that were neither stored nor used
within the retention horizon.
"""

import sqlite3
from datetime import timedelta

from airwave.core.clock import Clock, to_iso
from airwave.core.database import Database
from airwave.core.exceptions import DatabaseError
from airwave.core.logger import get_logger
from airwave.youtube.models import CachedMatch, VideoMatch


logger = get_logger(__name__)


def normalize_key(text: str) -> str:
    """
    Normalize one half of a cache key.

    Examples:
        "  Daft Punk " -> "daft punk"
        "STRASSE" -> "strasse"
    """
    return " ".join(text.casefold().split())


class MatchCache:
    """Persistent match cache in the `match_cache` table."""

    def __init__(self, database: Database, clock: Clock) -> None:
        self._database = database
        self._clock = clock

    def lookup(self, artist: str, title: str) -> CachedMatch | None:
        """
        Find a cached match and record the hit.

        Returns:
            The cached entry (as it was before this hit), or None.
        """
        key = (normalize_key(artist), normalize_key(title))
        with self._database.read() as conn:
            row = conn.execute(
                "SELECT * FROM match_cache WHERE artist = ? AND title = ?", key
            ).fetchone()
        if row is None:
            return None

        try:
            with self._database.transaction() as conn:
                conn.execute("""
                    UPDATE match_cache
                    SET use_count = use_count + 1, last_used_at = ?
                    WHERE artist = ? AND title = ?
                """, (to_iso(self._clock.now()), *key))
        except (sqlite3.Error, DatabaseError) as e:
            logger.debug(f"Could not record cache hit for {key}: {e}")

        return CachedMatch.from_row(row)

    def upsert(self, artist: str, title: str, match: VideoMatch) -> str:
        """
        Store a match, overwriting any previous entry for the same key.

        Returns:
            "created" or "updated".
        """
        key = (normalize_key(artist), normalize_key(title))
        now = to_iso(self._clock.now())
        with self._database.transaction() as conn:
            existing = conn.execute(
                "SELECT id FROM match_cache WHERE artist = ? AND title = ?", key
            ).fetchone()
            conn.execute("""
                INSERT INTO match_cache (
                    artist, title, video_id, video_title, channel_title, thumbnail_url,
                    duration_seconds, view_count, published_at, cached_at, last_used_at, use_count
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
                ON CONFLICT(artist, title) DO UPDATE SET
                    video_id = excluded.video_id,
                    video_title = excluded.video_title,
                    channel_title = excluded.channel_title,
                    thumbnail_url = excluded.thumbnail_url,
                    duration_seconds = excluded.duration_seconds,
                    view_count = excluded.view_count,
                    published_at = excluded.published_at,
                    cached_at = excluded.cached_at,
                    last_used_at = excluded.last_used_at
            """, (
                *key,
                match.video_id,
                match.title,
                match.channel_title,
                match.thumbnail_url,
                match.duration_seconds,
                match.view_count,
                match.published_at,
                now,
                now,
            ))
        action = "updated" if existing else "created"
        logger.debug(f"Cache {action}: {key[0]} - {key[1]} -> {match.video_id}")
        return action

    def cleanup(self, days_to_keep: int = 90) -> int:
        """
        Delete entries neither stored nor used within `days_to_keep` days.

        Returns:
            Number of entries deleted.
        """
        cutoff = to_iso(self._clock.now() - timedelta(days=days_to_keep))
        with self._database.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM match_cache WHERE cached_at < ? AND last_used_at < ?",
                (cutoff, cutoff)
            )
        if cursor.rowcount:
            logger.info(f"Deleted {cursor.rowcount} match cache entries unused for {days_to_keep} days")
        return cursor.rowcount

    def stats(self) -> dict:
        """
        Cache usage figures.

        Returns:
            Dictionary with total_entries, total_uses, average_uses,
            most_used (top 10 as (artist, title, use_count)) and
            oldest_cached_at.
        """
        with self._database.read() as conn:
            totals = conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(use_count), 0), MIN(cached_at) FROM match_cache"
            ).fetchone()
            top = conn.execute(
                "SELECT artist, title, use_count FROM match_cache ORDER BY use_count DESC, id LIMIT 10"
            ).fetchall()

        total_entries, total_uses = totals[0], totals[1]
        return {
            "total_entries": total_entries,
            "total_uses": total_uses,
            "average_uses": round(total_uses / total_entries, 2) if total_entries else 0.0,
            "most_used": [(row[0], row[1], row[2]) for row in top],
            "oldest_cached_at": totals[2],
        }
