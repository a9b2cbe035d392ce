"""
YouTube module for airwave.

This module resolves catalog tracks to playable YouTube videos while
keeping the daily API quota under control:
    - key_pool: per-key quota accounting and load balancing
    - cache: persistent (artist, title) -> video cache
    - client: YouTube Data API v3 calls with key rotation and retries
    - matcher: progressive search and scoring

Usage:
    from airwave.youtube import KeyPool, MatchCache, YouTubeClient, VideoMatcher

    pool = KeyPool.from_config(database, clock, config.youtube)
    matcher = VideoMatcher(YouTubeClient(pool, config.youtube), MatchCache(database, clock))
    match = matcher.find_best_match("Daft Punk", "Around the World")
"""

from airwave.youtube.cache import MatchCache, normalize_key
from airwave.youtube.client import YouTubeClient
from airwave.youtube.key_pool import DAILY_QUOTA_LIMIT, QUOTA_COSTS, KeyPool
from airwave.youtube.matcher import VideoLookup, VideoMatcher, build_queries, score_video
from airwave.youtube.models import (
    CachedMatch,
    Credential,
    KeyUsage,
    SearchHit,
    VideoDetails,
    VideoMatch,
    parse_iso_duration,
)

__all__ = [
    "MatchCache",
    "normalize_key",
    "YouTubeClient",
    "KeyPool",
    "QUOTA_COSTS",
    "DAILY_QUOTA_LIMIT",
    "VideoLookup",
    "VideoMatcher",
    "build_queries",
    "score_video",
    "CachedMatch",
    "Credential",
    "KeyUsage",
    "SearchHit",
    "VideoDetails",
    "VideoMatch",
    "parse_iso_duration",
]
