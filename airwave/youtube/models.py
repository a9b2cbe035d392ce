"""
Data models for YouTube lookups, credentials and the match cache.

Design:
    API payloads are turned into frozen dataclasses at the edge
    (from_api_item / from_search_item), so the matcher and the engine
    never touch raw JSON. Stored records come back through from_row().
"""

import re
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from airwave.core.clock import from_iso


# ISO 8601 durations as returned by videos.list, e.g. "PT1H2M15S"
_DURATION_PATTERN = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def parse_iso_duration(duration: str | None) -> int:
    """
    Parse an ISO 8601 video duration to seconds.

    Args:
        duration: Duration like "PT3M33S", or None.

    Returns:
        Duration in seconds, or 0 if parsing fails.

    Examples:
        "PT3M33S" -> 213
        "PT1H2M15S" -> 3735
        "P1D" -> 0 (day components are not used by music videos)
    """
    if not duration:
        return 0

    match = _DURATION_PATTERN.match(duration)
    if match is None:
        return 0

    hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def _best_thumbnail(snippet: dict[str, Any]) -> str | None:
    thumbnails = snippet.get("thumbnails") or {}
    for size in ("high", "medium", "default"):
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return None


@dataclass(frozen=True)
class Credential:
    """
    One API key of the pool.

    The secret is excluded from repr so credentials can be logged safely.
    """

    id: str
    key: str = field(repr=False)


@dataclass(frozen=True)
class KeyUsage:
    """
    Usage of one credential during one quota day.

    Attributes:
        key_id: Credential id.
        quota_day: Calendar date in the provider's quota timezone (YYYY-MM-DD).
        quota_used: Units charged so far.
        success_count: Calls that succeeded.
        failure_count: Calls that failed.
        exhausted: Provider refused the key for quota reasons (403);
                   overrides the numeric budget until the day rolls over.
        last_error_code: HTTP status of the last failure, if any.
    """

    key_id: str
    quota_day: str
    quota_used: int = 0
    success_count: int = 0
    failure_count: int = 0
    exhausted: bool = False
    last_error_code: int | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "KeyUsage":
        return cls(
            key_id=row["key_id"],
            quota_day=row["quota_day"],
            quota_used=row["quota_used"],
            success_count=row["success_count"],
            failure_count=row["failure_count"],
            exhausted=bool(row["exhausted"]),
            last_error_code=row["last_error_code"],
            updated_at=from_iso(row["updated_at"]),
        )

    def can_afford(self, cost: int, daily_quota: int) -> bool:
        return not self.exhausted and self.quota_used + cost <= daily_quota


@dataclass(frozen=True)
class SearchHit:
    """
    One item of a search.list response.

    Search results carry no duration; the matcher fetches VideoDetails
    for every hit it considers.
    """

    video_id: str
    title: str
    channel_title: str
    thumbnail_url: str | None = None
    published_at: str | None = None
    is_live: bool = False

    @classmethod
    def from_search_item(cls, item: dict[str, Any]) -> "SearchHit | None":
        """
        Create a SearchHit from a search.list item.

        Returns:
            None for items that are not videos (channels, playlists).
        """
        video_id = (item.get("id") or {}).get("videoId")
        if not video_id:
            return None
        snippet = item.get("snippet") or {}
        return cls(
            video_id=video_id,
            title=snippet.get("title", ""),
            channel_title=snippet.get("channelTitle", ""),
            thumbnail_url=_best_thumbnail(snippet),
            published_at=snippet.get("publishedAt"),
            is_live=snippet.get("liveBroadcastContent", "none") != "none",
        )


@dataclass(frozen=True)
class VideoDetails:
    """
    One item of a videos.list response (snippet, contentDetails, statistics).
    """

    video_id: str
    title: str
    channel_title: str
    duration_seconds: int
    view_count: int | None = None
    thumbnail_url: str | None = None
    published_at: str | None = None
    is_live: bool = False

    @classmethod
    def from_api_item(cls, item: dict[str, Any]) -> "VideoDetails":
        snippet = item.get("snippet") or {}
        content = item.get("contentDetails") or {}
        statistics = item.get("statistics") or {}

        view_count = None
        raw_views = statistics.get("viewCount")
        if raw_views is not None:
            try:
                view_count = int(raw_views)
            except (TypeError, ValueError):
                view_count = None

        return cls(
            video_id=item.get("id", ""),
            title=snippet.get("title", ""),
            channel_title=snippet.get("channelTitle", ""),
            duration_seconds=parse_iso_duration(content.get("duration")),
            view_count=view_count,
            thumbnail_url=_best_thumbnail(snippet),
            published_at=snippet.get("publishedAt"),
            is_live=snippet.get("liveBroadcastContent", "none") != "none",
        )


@dataclass(frozen=True)
class VideoMatch:
    """
    The video chosen for a (artist, title) pair.

    Attributes:
        video_id: YouTube video id.
        title: Video title.
        channel_title: Uploading channel.
        duration_seconds: Video length.
        score: Match score (see matcher); 0 for cache hits.
        query: Query that found it; None for cache hits.
        from_cache: Whether the match came from the match cache.
    """

    video_id: str
    title: str
    channel_title: str
    duration_seconds: int
    view_count: int | None = None
    thumbnail_url: str | None = None
    published_at: str | None = None
    score: float = 0.0
    query: str | None = None
    from_cache: bool = False

    @classmethod
    def from_details(cls, details: VideoDetails, score: float, query: str) -> "VideoMatch":
        return cls(
            video_id=details.video_id,
            title=details.title,
            channel_title=details.channel_title,
            duration_seconds=details.duration_seconds,
            view_count=details.view_count,
            thumbnail_url=details.thumbnail_url,
            published_at=details.published_at,
            score=score,
            query=query,
        )

    @property
    def url(self) -> str:
        return f"https://www.youtube.com/watch?v={self.video_id}"


@dataclass(frozen=True)
class CachedMatch:
    """
    A match cache entry.

    Attributes:
        artist: Normalized artist key.
        title: Normalized title key.
        match: The cached video.
        cached_at: First stored (or last overwritten).
        last_used_at: Last cache hit.
        use_count: Number of cache hits.
    """

    artist: str
    title: str
    match: VideoMatch
    cached_at: datetime
    last_used_at: datetime
    use_count: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CachedMatch":
        return cls(
            artist=row["artist"],
            title=row["title"],
            match=VideoMatch(
                video_id=row["video_id"],
                title=row["video_title"] or "",
                channel_title=row["channel_title"] or "",
                duration_seconds=row["duration_seconds"] or 0,
                view_count=row["view_count"],
                thumbnail_url=row["thumbnail_url"],
                published_at=row["published_at"],
                from_cache=True,
            ),
            cached_at=from_iso(row["cached_at"]),
            last_used_at=from_iso(row["last_used_at"]),
            use_count=row["use_count"],
        )
