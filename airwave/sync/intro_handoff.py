"""
Spoken intro handoff.

When a track with an intro goes on air the client plays the intro over
silenced main media, then hands back to the main stream:

    IDLE ──start(track with intro)──> INTRO_PLAYING ──completed/failed/stall──> MAIN_PLAYING
    IDLE ──start(track without intro)──────────────────────────────────────────> MAIN_PLAYING

The stall timer is checked by tick(); a broken or silent intro falls
through to the main stream after stall_timeout_seconds at the latest.
Events that arrive for an intro which is no longer playing are ignored.
"""

from datetime import datetime
from enum import Enum
from typing import Protocol

from airwave.core.config import IntroConfig
from airwave.core.logger import get_logger
from airwave.engine.models import CurrentTrack


logger = get_logger(__name__)


DEFAULT_STALL_TIMEOUT_SECONDS = 8.0


class HandoffState(str, Enum):
    IDLE = "idle"
    INTRO_PLAYING = "intro_playing"
    MAIN_PLAYING = "main_playing"


class MediaController(Protocol):
    """The client's two audio outputs: main video media and intro audio."""

    def mute_main(self) -> None:
        ...

    def pause_main(self) -> None:
        ...

    def unmute_main(self) -> None:
        ...

    def play_main(self) -> None:
        ...

    def play_intro(self, intro_ref: str) -> None:
        ...

    def stop_intro(self) -> None:
        ...


class IntroHandoff:
    """
    Intro/main audio state machine for one client.

    Attributes:
        stall_timeout_seconds: Longest an intro may hold the main stream.
    """

    def __init__(
        self,
        media: MediaController,
        stall_timeout_seconds: float = DEFAULT_STALL_TIMEOUT_SECONDS
    ) -> None:
        self._media = media
        self.stall_timeout_seconds = stall_timeout_seconds
        self.state = HandoffState.IDLE
        self.intro_started_at: datetime | None = None
        self.catalog_id: str | None = None

    @classmethod
    def from_config(cls, media: MediaController, config: IntroConfig) -> "IntroHandoff":
        return cls(media, stall_timeout_seconds=config.stall_timeout_seconds)

    def start(self, track: CurrentTrack, now: datetime) -> HandoffState:
        """
        Begin playback of a newly aired track.

        An intro still playing for the previous track is stopped first.
        """
        if self.state is HandoffState.INTRO_PLAYING:
            self._stop_intro()

        self.catalog_id = track.catalog_id
        if not track.intro_ref:
            self._enter_main()
            return self.state

        self._media.mute_main()
        self._media.pause_main()
        self.state = HandoffState.INTRO_PLAYING
        self.intro_started_at = now
        logger.debug(f"Intro playing for {track.catalog_id}")

        try:
            self._media.play_intro(track.intro_ref)
        except Exception as e:
            logger.warning(f"Intro playback failed to start: {e}")
            self.intro_failed()

        return self.state

    def intro_completed(self) -> None:
        if self.state is not HandoffState.INTRO_PLAYING:
            return
        logger.debug("Intro completed")
        self._enter_main()

    def intro_failed(self, error: str | None = None) -> None:
        if self.state is not HandoffState.INTRO_PLAYING:
            return
        logger.warning(f"Intro failed, resuming main stream{': ' + error if error else ''}")
        self._stop_intro()
        self._enter_main()

    def tick(self, now: datetime) -> bool:
        """
        Stall check; call periodically while a track is playing.

        Returns:
            True if a stalled intro was abandoned on this tick.
        """
        if self.state is not HandoffState.INTRO_PLAYING or self.intro_started_at is None:
            return False

        waited = (now - self.intro_started_at).total_seconds()
        if waited < self.stall_timeout_seconds:
            return False

        logger.warning(f"Intro stalled for {waited:.1f}s, forcing main stream")
        self._stop_intro()
        self._enter_main()
        return True

    def reset(self) -> None:
        """Back to IDLE (track removed or client disconnected)."""
        if self.state is HandoffState.INTRO_PLAYING:
            self._stop_intro()
        self.state = HandoffState.IDLE
        self.intro_started_at = None
        self.catalog_id = None

    def _stop_intro(self) -> None:
        try:
            self._media.stop_intro()
        except Exception as e:
            logger.debug(f"Stopping intro audio failed: {e}")

    def _enter_main(self) -> None:
        self.state = HandoffState.MAIN_PLAYING
        self.intro_started_at = None
        self._media.unmute_main()
        self._media.play_main()
