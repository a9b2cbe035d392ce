"""Test client playback sync and the intro handoff"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from airwave.core.config import IntroConfig
from airwave.engine.models import AdvanceSource, CurrentTrack
from airwave.sync.intro_handoff import HandoffState, IntroHandoff
from airwave.sync.playback import PlaybackPosition, PlaybackSynchronizer, SyncActionKind


START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def on_air(make_track):
    def _on_air(catalog_id="1001", duration_seconds=200, started_at=START, intro_ref=None):
        return CurrentTrack(
            track=make_track(catalog_id, duration_seconds=duration_seconds),
            started_at=started_at,
            source=AdvanceSource.QUEUE,
            intro_ref=intro_ref,
        )
    return _on_air


class TestPlaybackPosition:
    """Test position derivation from started_at"""

    def test_mid_track(self, on_air):
        """Test elapsed, remaining and progress"""
        position = PlaybackPosition.at(on_air(), START + timedelta(seconds=50))

        assert position.elapsed == 50
        assert position.remaining == 150
        assert position.progress == 0.25
        assert not position.has_expired

    def test_client_clock_behind(self, on_air):
        """Test elapsed never goes negative"""
        position = PlaybackPosition.at(on_air(), START - timedelta(seconds=2))

        assert position.elapsed == 0
        assert position.remaining == 200

    def test_overrun(self, on_air):
        """Test an overrun track is expired with progress capped"""
        position = PlaybackPosition.at(on_air(), START + timedelta(seconds=230))

        assert position.has_expired
        assert position.remaining == -30
        assert position.progress == 1.0

    def test_exact_end(self, on_air):
        """Test remaining == 0 counts as expired"""
        assert PlaybackPosition.at(on_air(), START + timedelta(seconds=200)).has_expired


class TestPlaybackSynchronizer:
    """Test the actions a client player receives"""

    def test_load_on_first_observation(self, on_air):
        """Test a (re)connecting client loads and seeks to the shared position"""
        sync = PlaybackSynchronizer()
        assert sync.is_loading

        action = sync.observe(on_air(), START + timedelta(seconds=42))

        assert action.kind is SyncActionKind.LOAD
        assert action.video_id == "vid1001xxxx"
        assert action.position_seconds == 42
        assert not sync.is_loading

    def test_same_airing_is_quiet(self, on_air):
        """Test repeated observations of one airing produce nothing"""
        sync = PlaybackSynchronizer()
        sync.observe(on_air(), START)

        assert sync.observe(on_air(), START + timedelta(seconds=10)) is None

    def test_new_airing_loads(self, on_air):
        """Test a replay of the same catalog id is a new airing"""
        sync = PlaybackSynchronizer()
        sync.observe(on_air(), START)
        replay_start = START + timedelta(seconds=200)

        action = sync.observe(on_air(started_at=replay_start), replay_start)

        assert action.kind is SyncActionKind.LOAD
        assert action.position_seconds == 0

    def test_stop_once_on_expiry(self, on_air):
        """Test an expired airing stops the player a single time"""
        sync = PlaybackSynchronizer()
        sync.observe(on_air(), START)

        action = sync.observe(on_air(), START + timedelta(seconds=201))

        assert action.kind is SyncActionKind.STOP
        assert sync.observe(on_air(), START + timedelta(seconds=210)) is None

    def test_already_expired_on_connect(self, on_air):
        """Test connecting to an expired record waits instead of loading"""
        sync = PlaybackSynchronizer()

        action = sync.observe(on_air(), START + timedelta(seconds=300))

        assert action.kind is SyncActionKind.STOP
        assert sync.observe(on_air(), START + timedelta(seconds=310)) is None

    def test_record_removed(self, on_air):
        """Test a disappearing record stops playback"""
        sync = PlaybackSynchronizer()
        assert sync.observe(None, START) is None

        sync.observe(on_air(), START)

        assert sync.observe(None, START).kind is SyncActionKind.STOP
        assert sync.is_loading

    def test_reconnect_reloads(self, on_air):
        """Test reconnect() forces a fresh load at the current position"""
        sync = PlaybackSynchronizer()
        sync.observe(on_air(), START)
        sync.reconnect()

        action = sync.observe(on_air(), START + timedelta(seconds=90))

        assert action.kind is SyncActionKind.LOAD
        assert action.position_seconds == 90

    def test_check_drift(self, on_air):
        """Test drift beyond the tolerance triggers a seek"""
        sync = PlaybackSynchronizer(drift_tolerance_seconds=3.0)
        now = START + timedelta(seconds=60)

        assert sync.check_drift(on_air(), 62.5, now) is None
        action = sync.check_drift(on_air(), 55.0, now)
        assert action.kind is SyncActionKind.SEEK
        assert action.position_seconds == 60

        assert sync.check_drift(on_air(), 0.0, START + timedelta(seconds=250)) is None
        assert sync.check_drift(None, 0.0, now) is None


class TestIntroHandoff:
    """Test the intro/main audio state machine"""

    @pytest.fixture
    def media(self):
        return Mock()

    @pytest.fixture
    def handoff(self, media):
        return IntroHandoff(media, stall_timeout_seconds=8.0)

    def test_without_intro(self, handoff, media, on_air):
        """Test a track without intro goes straight to main"""
        assert handoff.start(on_air(), START) is HandoffState.MAIN_PLAYING

        media.unmute_main.assert_called_once()
        media.play_main.assert_called_once()
        media.play_intro.assert_not_called()

    def test_intro_then_main(self, handoff, media, on_air):
        """Test the intro plays over silenced main media, then hands back"""
        state = handoff.start(on_air(intro_ref="intro-1.mp3"), START)

        assert state is HandoffState.INTRO_PLAYING
        media.mute_main.assert_called_once()
        media.pause_main.assert_called_once()
        media.play_intro.assert_called_once_with("intro-1.mp3")
        media.play_main.assert_not_called()

        handoff.intro_completed()

        assert handoff.state is HandoffState.MAIN_PLAYING
        media.unmute_main.assert_called_once()
        media.play_main.assert_called_once()

    def test_intro_failed(self, handoff, media, on_air):
        """Test a failed intro stops the audio and resumes main"""
        handoff.start(on_air(intro_ref="intro-1.mp3"), START)

        handoff.intro_failed("decode error")

        assert handoff.state is HandoffState.MAIN_PLAYING
        media.stop_intro.assert_called_once()
        media.play_main.assert_called_once()

    def test_intro_cannot_start(self, handoff, media, on_air):
        """Test an intro that raises on play falls through to main"""
        media.play_intro.side_effect = RuntimeError("autoplay blocked")

        state = handoff.start(on_air(intro_ref="intro-1.mp3"), START)

        assert state is HandoffState.MAIN_PLAYING
        media.play_main.assert_called_once()

    def test_stall_timeout(self, handoff, media, on_air):
        """Test tick() abandons an intro after the stall timeout"""
        handoff.start(on_air(intro_ref="intro-1.mp3"), START)

        assert not handoff.tick(START + timedelta(seconds=7.9))
        assert handoff.state is HandoffState.INTRO_PLAYING

        assert handoff.tick(START + timedelta(seconds=8))
        assert handoff.state is HandoffState.MAIN_PLAYING
        media.stop_intro.assert_called_once()

    def test_timeout_from_config(self, media, on_air):
        """Test the configured intro timeout drives the stall check"""
        handoff = IntroHandoff.from_config(media, IntroConfig(stall_timeout_seconds=3.0))
        handoff.start(on_air(intro_ref="intro-1.mp3"), START)

        assert not handoff.tick(START + timedelta(seconds=2.9))
        assert handoff.tick(START + timedelta(seconds=3))
        assert handoff.state is HandoffState.MAIN_PLAYING

    def test_late_events_ignored(self, handoff, media, on_air):
        """Test completion events after the handoff change nothing"""
        handoff.start(on_air(intro_ref="intro-1.mp3"), START)
        handoff.intro_completed()

        handoff.intro_completed()
        handoff.intro_failed("late")

        assert media.play_main.call_count == 1
        assert not handoff.tick(START + timedelta(seconds=60))

    def test_stop_intro_errors_swallowed(self, handoff, media, on_air):
        """Test a failing stop_intro does not block the handoff"""
        media.stop_intro.side_effect = RuntimeError("already stopped")
        handoff.start(on_air(intro_ref="intro-1.mp3"), START)

        handoff.intro_failed()

        assert handoff.state is HandoffState.MAIN_PLAYING

    def test_new_track_during_intro(self, handoff, media, on_air):
        """Test a track change stops the running intro first"""
        handoff.start(on_air("1", intro_ref="intro-1.mp3"), START)

        handoff.start(on_air("2"), START + timedelta(seconds=3))

        media.stop_intro.assert_called_once()
        assert handoff.catalog_id == "2"
        assert handoff.state is HandoffState.MAIN_PLAYING

    def test_reset(self, handoff, media, on_air):
        """Test reset returns to idle and silences the intro"""
        handoff.start(on_air(intro_ref="intro-1.mp3"), START)

        handoff.reset()

        assert handoff.state is HandoffState.IDLE
        assert handoff.catalog_id is None
        media.stop_intro.assert_called_once()
