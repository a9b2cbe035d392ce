"""
Video matching for catalog tracks.

Given an (artist, title) pair from the catalog, find the YouTube video
the players should load.

Matching Algorithm:
    1. Look the pair up in the match cache (free).
    2. Otherwise run progressively looser searches until one yields a
       usable video:
           "Artist" "Title" official
           "Artist" "Title" topic
           Artist Title
    3. For each search, fetch details of all hits in one videos.list call
       and drop live streams and videos outside the duration bounds.
    4. Score the survivors by title/artist similarity using rapidfuzz,
       plus bonuses for official uploads and penalties for covers,
       karaoke and lyric videos the catalog title does not mention.
    5. Accept the best result above MIN_MATCH_SCORE and store it in the
       match cache.

A failing query (YouTubeError) moves on to the next query. Running out of
quota (AllKeysExhaustedError) propagates so the caller can stop spending
lookups for the rest of its batch.

Dependencies:
    - rapidfuzz: Fuzzy string matching

Usage:
    matcher = VideoMatcher(client, cache, min_duration_seconds=60, max_duration_seconds=1200)
    match = matcher.find_best_match("Daft Punk", "Around the World")
    if match:
        print(match.url)
"""

import re
from typing import Protocol

from rapidfuzz import fuzz

from airwave.core.exceptions import YouTubeError
from airwave.core.logger import get_logger
from airwave.youtube.cache import MatchCache
from airwave.youtube.client import YouTubeClient
from airwave.youtube.models import VideoDetails, VideoMatch


logger = get_logger(__name__)


# Matching weights (title matters more than artist)
TITLE_WEIGHT = 0.65
ARTIST_WEIGHT = 0.35

# Minimum score for a result to be accepted
MIN_MATCH_SCORE = 55.0

# Results requested per search; the price of a search does not depend on it
RESULTS_PER_QUERY = 5

# Bonuses for official sources
OFFICIAL_TITLE_BONUS = 10
TOPIC_CHANNEL_BONUS = 10
ARTIST_CHANNEL_BONUS = 8
OFFICIAL_CHANNEL_BONUS = 5

# Penalties for versions the catalog title does not ask for
UNWANTED_WORD_PENALTIES = {
    "karaoke": 30,
    "cover": 20,
    "instrumental": 15,
    "remix": 10,
    "live": 10,
    "lyrics": 5,
}


class VideoLookup(Protocol):
    """What discovery needs from a video provider."""

    def find_best_match(
        self,
        artist: str,
        title: str,
        duration_bounds: tuple[int, int] | None = None
    ) -> VideoMatch | None:
        ...


def _normalize_text(text: str) -> str:
    """
    Normalize text for comparison by removing special characters and lowercasing.

    Bracketed parts ("(Official Video)", "[HD]") are dropped since they
    rarely carry the song title.
    """
    text = re.sub(r'\s*[\(\[\{].*?[\)\]\}]\s*', ' ', text)
    text = re.sub(r'[^\w\s]', '', text)
    text = ' '.join(text.split())
    return text.lower().strip()


def _clean_channel(channel: str) -> str:
    """Strip the decorations YouTube adds to artist channels."""
    channel = re.sub(r'\s*-\s*topic$', '', channel, flags=re.IGNORECASE)
    channel = re.sub(r'vevo$', '', channel, flags=re.IGNORECASE)
    return _normalize_text(channel)


def build_queries(artist: str, title: str) -> list[str]:
    """The progressive search queries for a track, strictest first."""
    return [
        f'"{artist}" "{title}" official',
        f'"{artist}" "{title}" topic',
        f"{artist} {title}",
    ]


def score_video(video: VideoDetails, artist: str, title: str) -> float:
    """
    Calculate the match score of a video for a catalog track.

    Returns:
        Match score (0-100 before adjustments; bonuses can push it above 100).

    Scoring Components:
        1. Base Score: weighted title and artist similarity
        2. Official bonuses: "official" in title, "- Topic" channel,
           channel named after the artist, "official"/VEVO channel
        3. Unwanted word penalties for karaoke/cover/... versions, unless
           the catalog title contains the same word
    """
    video_title = _normalize_text(video.title)
    channel = _clean_channel(video.channel_title)
    wanted_title = _normalize_text(title)
    wanted_artist = _normalize_text(artist)

    title_score = fuzz.partial_ratio(wanted_title, video_title) if wanted_title else 0.0
    artist_score = max(
        fuzz.partial_ratio(wanted_artist, video_title) if wanted_artist else 0.0,
        fuzz.ratio(wanted_artist, channel),
    )
    score = (title_score * TITLE_WEIGHT) + (artist_score * ARTIST_WEIGHT)

    raw_title = video.title.lower()
    raw_channel = video.channel_title.lower()

    if "official" in raw_title:
        score += OFFICIAL_TITLE_BONUS
    if raw_channel.endswith("- topic"):
        score += TOPIC_CHANNEL_BONUS
    if wanted_artist and wanted_artist in channel:
        score += ARTIST_CHANNEL_BONUS
    if "official" in raw_channel or raw_channel.endswith("vevo"):
        score += OFFICIAL_CHANNEL_BONUS

    # Bracketed parts count here: "(Karaoke Version)" is exactly what to catch
    video_words = set(re.sub(r'[^\w\s]', ' ', raw_title).split())
    title_words = set(wanted_title.split())
    for word, penalty in UNWANTED_WORD_PENALTIES.items():
        if word in video_words and word not in title_words:
            score -= penalty

    return score


class VideoMatcher:
    """
    Finds the video for a catalog track, cache first.

    Attributes:
        min_duration_seconds: Shortest acceptable video.
        max_duration_seconds: Longest acceptable video.
    """

    def __init__(
        self,
        client: YouTubeClient,
        cache: MatchCache,
        min_duration_seconds: int = 60,
        max_duration_seconds: int = 1200
    ) -> None:
        self._client = client
        self._cache = cache
        self.min_duration_seconds = min_duration_seconds
        self.max_duration_seconds = max_duration_seconds

    def find_best_match(
        self,
        artist: str,
        title: str,
        duration_bounds: tuple[int, int] | None = None
    ) -> VideoMatch | None:
        """
        Find the best video for a track.

        Args:
            artist: Catalog artist.
            title: Catalog title.
            duration_bounds: (min, max) seconds overriding the matcher defaults,
                             applied to cached and searched videos alike.

        Returns:
            The match, or None if no query produced an acceptable video.

        Raises:
            AllKeysExhaustedError: If a search was needed and no key can pay for it.
        """
        bounds = duration_bounds or (self.min_duration_seconds, self.max_duration_seconds)

        cached = self._cache.lookup(artist, title)
        if cached is not None and _within(cached.match.duration_seconds, bounds):
            logger.debug(f"Cache hit: {artist} - {title} -> {cached.match.video_id}")
            return cached.match

        for query in build_queries(artist, title):
            try:
                match = self._try_query(query, artist, title, bounds)
            except YouTubeError as e:
                logger.debug(f"Query failed, trying next: {query} ({e})")
                continue

            if match is not None:
                self._cache.upsert(artist, title, match)
                logger.info(f"Matched: {artist} - {title} -> {match.url} (score: {match.score:.1f})")
                return match

        logger.info(f"No match found for: {artist} - {title}")
        return None

    def get_video_details(self, video_id: str) -> VideoDetails | None:
        details = self._client.video_details([video_id])
        return details[0] if details else None

    def _try_query(
        self,
        query: str,
        artist: str,
        title: str,
        bounds: tuple[int, int]
    ) -> VideoMatch | None:
        hits = [hit for hit in self._client.search(query, RESULTS_PER_QUERY) if not hit.is_live]
        if not hits:
            return None

        candidates = [
            details for details in self._client.video_details([hit.video_id for hit in hits])
            if not details.is_live and _within(details.duration_seconds, bounds)
        ]
        if not candidates:
            logger.debug(f"No playable results for query: {query}")
            return None

        scored = sorted(
            ((score_video(details, artist, title), details) for details in candidates),
            key=lambda pair: pair[0],
            reverse=True
        )
        best_score, best = scored[0]
        if best_score < MIN_MATCH_SCORE:
            logger.debug(f"Best result for {query} scored {best_score:.1f}, below threshold")
            return None

        return VideoMatch.from_details(best, best_score, query)


def _within(duration_seconds: int, bounds: tuple[int, int]) -> bool:
    return bounds[0] <= duration_seconds <= bounds[1]
