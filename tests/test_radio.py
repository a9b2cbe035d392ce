"""Test the Radio facade"""

import random
from datetime import timedelta
from unittest.mock import Mock

import pytest

from airwave.core.config import parse_config
from airwave.core.exceptions import AuthorizationError, SpeechError
from airwave.engine import Radio
from airwave.engine.advancement import NO_FALLBACK_REASON
from airwave.engine.radio import NO_CURRENT_TRACK


def _fill(radio, make_track, *catalog_ids):
    for catalog_id in catalog_ids:
        assert radio.enqueue(make_track(catalog_id)).accepted


class TestListenerReads:
    """Test the read operations"""

    def test_nothing_on_air(self, radio):
        """Test reads while the stream is loading"""
        assert radio.get_current_track() is None
        assert radio.get_current_status() is None
        status = radio.get_queue_status()
        assert status.length == 0
        assert not status.has_current
        assert status.last_updated is None

    def test_current_status(self, radio, clock, make_track):
        """Test elapsed and remaining time of the on-air track"""
        radio.enqueue(make_track("1", duration_seconds=200))
        radio.advance()
        clock.advance(seconds=50)

        status = radio.get_current_status()

        assert status.current.catalog_id == "1"
        assert status.position.elapsed == 50
        assert status.position.remaining == 150
        assert status.position.progress == 0.25
        assert not status.position.has_expired

    def test_queue_status_last_updated(self, radio, clock, make_track):
        """Test last_updated follows the latest advance or enqueue"""
        _fill(radio, make_track, "1", "2")
        clock.advance(seconds=1)
        radio.advance()
        advanced_at = clock.now()
        assert radio.get_queue_status().last_updated == advanced_at

        clock.advance(seconds=30)
        radio.enqueue(make_track("3"))

        status = radio.get_queue_status()
        assert status.length == 2
        assert status.current_catalog_id == "1"
        assert status.last_updated == clock.now()

    def test_queue_and_history(self, radio, clock, make_track):
        """Test queue order and history recency"""
        _fill(radio, make_track, "1", "2", "3")
        radio.advance()
        clock.advance(seconds=200)
        radio.advance()

        assert [entry.track.catalog_id for entry in radio.get_queue()] == ["3"]
        assert [entry.track.catalog_id for entry in radio.get_history()] == ["1"]

    def test_no_key_pool(self, radio):
        """Test key usage is unavailable without keys"""
        assert radio.key_usage() is None
        assert radio.rollover() == 0


class TestPrivilegedOperations:
    """Test skip and queue clear"""

    def test_skip_requires_controller(self, radio, make_track):
        """Test listeners cannot skip"""
        _fill(radio, make_track, "1", "2")
        radio.advance()

        with pytest.raises(AuthorizationError):
            radio.skip("listener")
        assert radio.get_current_track().catalog_id == "1"

    def test_skip_nothing_on_air(self, radio):
        """Test a skip with nothing on air reports no_current_track"""
        result = radio.skip("admin")

        assert not result.success
        assert result.reason == NO_CURRENT_TRACK

    def test_skip_advances(self, radio, make_track):
        """Test a controller skip moves to the next track and is recorded"""
        _fill(radio, make_track, "1", "2")
        radio.advance()

        result = radio.skip("admin", reason="bad audio")

        assert result.success
        assert result.advance.catalog_id == "2"
        assert radio.get_current_track().catalog_id == "2"
        assert radio.get_history(1)[0].track.catalog_id == "1"
        assert radio.feedback.counts() == {"skip": 1}

    def test_skip_without_replacement(self, radio, make_track):
        """Test a skip that cannot advance leaves the track on air"""
        _fill(radio, make_track, "1")
        radio.advance()

        result = radio.skip("admin")

        assert not result.success
        assert result.reason == NO_FALLBACK_REASON
        assert radio.get_current_track().catalog_id == "1"

    def test_clear_queue(self, radio, make_track):
        """Test controllers can clear the queue"""
        _fill(radio, make_track, "1", "2", "3")

        with pytest.raises(AuthorizationError):
            radio.clear_queue("listener")

        assert radio.clear_queue("admin", keep_count=1) == 2
        assert [entry.track.catalog_id for entry in radio.get_queue()] == ["1"]

    def test_toggle_like(self, radio, clock, make_track):
        """Test likes on the on-air track and on past plays"""
        assert radio.toggle_like("alice") is None

        _fill(radio, make_track, "1", "2")
        radio.advance()
        assert radio.toggle_like("alice") is True
        assert radio.toggle_like("alice", "1") is False

        clock.advance(seconds=200)
        radio.advance()
        assert radio.toggle_like("bob", "1") is True
        assert radio.get_history(1)[0].liked_by == ("bob",)
        assert radio.toggle_like("bob", "unknown") is None

    def test_read_likes(self, radio, clock, make_track):
        """Test likes read back for the on-air track and for past plays"""
        assert radio.is_liked("alice") is None
        assert radio.liked_tracks("alice") == []

        _fill(radio, make_track, "1", "2", "3")
        radio.advance()
        radio.toggle_like("alice")

        assert radio.is_liked("alice") is True
        assert radio.is_liked("bob") is False
        assert [track.catalog_id for track in radio.liked_tracks("alice")] == ["1"]

        clock.advance(seconds=200)
        radio.advance()
        radio.toggle_like("alice")

        assert radio.is_liked("alice", "1") is True
        assert radio.is_liked("bob", "1") is False
        assert radio.is_liked("alice", "unknown") is None
        assert [track.catalog_id for track in radio.liked_tracks("alice")] == ["2", "1"]
        assert [track.catalog_id for track in radio.liked_tracks("alice", limit=1)] == ["2"]
        assert radio.liked_tracks("bob") == []


class TestReplenishment:
    """Test discovery requests triggered by advancement"""

    @pytest.fixture
    def discovery(self, radio):
        radio.discovery = Mock()
        return radio.discovery

    def test_request_without_discovery(self, radio):
        """Test requests are refused when discovery is not configured"""
        assert radio.request_discovery(5) is None

    def test_low_queue_after_advance(self, radio, discovery, make_track):
        """Test an advance that leaves the queue low requests the deficit"""
        _fill(radio, make_track, "1", "2")

        radio.advance()

        discovery.request.assert_called_once_with(11, False)

    def test_fallback_triggers_emergency(self, radio, discovery, clock, make_track):
        """Test a history replay requests the emergency batch, forced"""
        radio.history.append(make_track("old"), clock.now() - timedelta(days=2))

        result = radio.advance()

        assert result.used_fallback
        discovery.request.assert_called_once_with(50, True)

    def test_not_expired_does_not_check_health(self, radio, discovery, make_track):
        """Test the periodic expiration path is quiet while the track plays"""
        _fill(radio, make_track, "1", "2")
        radio.advance()
        discovery.request.reset_mock()

        result = radio.advance_if_expired()

        assert not result.advanced
        discovery.request.assert_not_called()

    def test_stalled_skip_requests_discovery(self, radio, discovery, make_track):
        """Test a skip with nothing to replace the track still refills the queue"""
        _fill(radio, make_track, "1")
        radio.advance()
        discovery.request.reset_mock()

        result = radio.skip("admin")

        assert result.reason == NO_FALLBACK_REASON
        discovery.request.assert_called_once_with(50, True)

    def test_check_health(self, radio, discovery):
        """Test the health check requests emergency discovery for an empty queue"""
        report = radio.check_health()

        assert report.state.value == "critical"
        discovery.request.assert_called_once_with(50, True)


class TestMaintenance:
    """Test cleanup and intros"""

    def test_maintenance_keeps_dedup_window(self, config, database, clock, make_track):
        """Test old history survives when the dedup window still needs it"""
        config = parse_config({
            "storage": {"directory": str(config.storage.directory)},
            "history": {"dedup_window": 2, "fallback_pool_size": 3, "retention_days": 30},
        })
        radio = Radio(config, database, clock)
        for index in range(5):
            radio.history.append(make_track(str(index)), clock.now() - timedelta(days=60 - index))

        deleted = radio.maintenance()

        assert deleted == {"match_cache": 0, "history": 2, "key_usage": 0}
        assert radio.history.count() == 3

    def test_prepare_intros(self, config, database, clock, make_track):
        """Test intros are generated for queued entries with segue context"""
        config = parse_config({
            "storage": {"directory": str(config.storage.directory)},
            "intro": {"enabled": True, "batch_size": 2},
        })
        speech = Mock()
        speech.generate_intro.side_effect = lambda track, previous, upcoming: f"intro-{track.catalog_id}.mp3"
        radio = Radio(config, database, clock, speech=speech, rng=random.Random(1))
        _fill(radio, make_track, "1", "2", "3")
        radio.advance()

        assert radio.prepare_intros() == 2

        entries = radio.get_queue()
        assert [entry.intro_ref for entry in entries] == ["intro-2.mp3", "intro-3.mp3"]
        first_call = speech.generate_intro.call_args_list[0].args
        assert first_call[1].catalog_id == "1"
        assert first_call[2].catalog_id == "3"

        # Already prepared entries are not regenerated
        assert radio.prepare_intros() == 0

    def test_intro_failure_is_skipped(self, config, database, clock, make_track):
        """Test a failing intro leaves the entry without one"""
        config = parse_config({
            "storage": {"directory": str(config.storage.directory)},
            "intro": {"enabled": True},
        })
        speech = Mock()
        speech.generate_intro.side_effect = SpeechError("voice service down")
        radio = Radio(config, database, clock, speech=speech)
        _fill(radio, make_track, "1")

        assert radio.prepare_intros() == 0
        assert radio.get_queue()[0].intro_ref is None

    def test_intros_disabled(self, radio):
        """Test prepare_intros is a no-op without a speech pipeline"""
        assert radio.intros is None
        assert radio.prepare_intros() == 0


class TestFromConfig:
    """Test production wiring"""

    def test_without_credentials(self, temp_dir, clock):
        """Test the engine runs without keys or catalog token"""
        config = parse_config({"storage": {"directory": str(temp_dir / "data")}})

        radio = Radio.from_config(config, clock, environ={})
        try:
            assert radio.key_pool is None
            assert radio.discovery is None
            assert (temp_dir / "data" / "radio.db").exists()
        finally:
            radio.close()

    def test_with_credentials(self, temp_dir, clock):
        """Test discovery is wired when a key and the token resolve"""
        config = parse_config({
            "storage": {"directory": str(temp_dir)},
            "youtube": {"keys": [{"id": "main", "env": "YT_KEY"}]},
        })

        radio = Radio.from_config(
            config, clock, environ={"YT_KEY": "AIza-test", "DISCOGS_API_TOKEN": "token"}
        )
        try:
            assert [credential.id for credential in radio.key_pool.credentials] == ["main"]
            assert radio.discovery is not None
            assert radio.key_usage()["keys"][0]["key_id"] == "main"
        finally:
            radio.close()

    def test_unresolved_key_disables_lookup(self, temp_dir, clock):
        """Test a missing key variable disables discovery instead of failing"""
        config = parse_config({
            "storage": {"directory": str(temp_dir)},
            "youtube": {"keys": [{"id": "main", "env": "YT_KEY"}]},
        })

        radio = Radio.from_config(config, clock, environ={"DISCOGS_API_TOKEN": "token"})
        try:
            assert radio.key_pool is None
            assert radio.discovery is None
        finally:
            radio.close()
