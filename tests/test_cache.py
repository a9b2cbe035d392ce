"""Test the match cache"""

from datetime import timedelta

import pytest

from airwave.youtube.cache import MatchCache, normalize_key
from airwave.youtube.models import VideoMatch


@pytest.fixture
def cache(database, clock):
    return MatchCache(database, clock)


def _match(video_id="dQw4w9WgXcQ", duration_seconds=213):
    return VideoMatch(
        video_id=video_id,
        title="Artist - Song (Official Video)",
        channel_title="Artist",
        duration_seconds=duration_seconds,
        view_count=1000,
        score=92.5,
        query='"Artist" "Song" official',
    )


class TestNormalizeKey:
    """Test cache key normalization"""

    def test_normalize(self):
        """Test case folding and whitespace collapsing"""
        assert normalize_key("  Daft   Punk ") == "daft punk"
        assert normalize_key("STRASSE") == "strasse"
        assert normalize_key("Straße") == "strasse"


class TestMatchCache:
    """Test lookup, upsert and maintenance"""

    def test_miss(self, cache):
        """Test an unknown pair is a miss"""
        assert cache.lookup("Artist", "Song") is None

    def test_upsert_and_lookup(self, cache):
        """Test a stored match is found under a differently formatted key"""
        assert cache.upsert("Artist", "Song", _match()) == "created"

        cached = cache.lookup("  artist ", "SONG")

        assert cached is not None
        assert cached.match.video_id == "dQw4w9WgXcQ"
        assert cached.match.duration_seconds == 213
        assert cached.match.from_cache
        assert cached.artist == "artist"

    def test_upsert_overwrites(self, cache):
        """Test last write wins"""
        cache.upsert("Artist", "Song", _match("first000000"))
        assert cache.upsert("artist", "song", _match("second00000")) == "updated"

        assert cache.lookup("Artist", "Song").match.video_id == "second00000"
        assert cache.stats()["total_entries"] == 1

    def test_lookup_bumps_usage(self, cache, clock):
        """Test hits increment use_count and last_used_at"""
        cache.upsert("Artist", "Song", _match())
        clock.advance(hours=1)
        cache.lookup("Artist", "Song")
        clock.advance(hours=1)

        cached = cache.lookup("Artist", "Song")

        assert cached.use_count == 1
        assert cached.last_used_at == clock.now() - timedelta(hours=1)
        assert cache.stats()["total_uses"] == 2

    def test_cleanup(self, cache, clock):
        """Test entries unused for the retention period are deleted"""
        cache.upsert("Old", "Song", _match())
        cache.upsert("Used", "Song", _match())
        clock.advance(days=80)
        cache.lookup("Used", "Song")
        clock.advance(days=20)

        assert cache.cleanup(days_to_keep=90) == 1
        assert cache.lookup("Old", "Song") is None
        assert cache.lookup("Used", "Song") is not None

    def test_stats(self, cache):
        """Test usage figures"""
        cache.upsert("A", "One", _match())
        cache.upsert("B", "Two", _match())
        cache.lookup("B", "Two")
        cache.lookup("B", "Two")
        cache.lookup("A", "One")

        stats = cache.stats()

        assert stats["total_entries"] == 2
        assert stats["total_uses"] == 3
        assert stats["average_uses"] == 1.5
        assert stats["most_used"][0] == ("b", "two", 2)

    def test_empty_stats(self, cache):
        """Test stats on an empty cache"""
        stats = cache.stats()
        assert stats["total_entries"] == 0
        assert stats["average_uses"] == 0.0
        assert stats["most_used"] == []
