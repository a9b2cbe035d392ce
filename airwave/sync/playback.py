"""
Client-side playback position.

The server never tells a client where to seek. Every client derives the
position from the on-air record alone:

    elapsed   = now - started_at
    remaining = duration - elapsed
    expired   = remaining <= 0

and drives its local player to `elapsed` when it (re)connects or when
the on-air track changes. The server's expiration checker advances the
stream independently; an expired record only means the client is
waiting for the server to catch up.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from airwave.core.logger import get_logger
from airwave.engine.models import CurrentTrack


logger = get_logger(__name__)


# Local player drift tolerated before a corrective seek
DEFAULT_DRIFT_TOLERANCE_SECONDS = 3.0


@dataclass(frozen=True)
class PlaybackPosition:
    """
    Timing of the on-air track at one instant.

    Attributes:
        elapsed: Seconds since the track went on air (never negative).
        remaining: Seconds left (negative once the track overran).
        duration: Track length in seconds.
        has_expired: remaining <= 0.
        progress: elapsed / duration, clamped to [0, 1].
    """

    elapsed: float
    remaining: float
    duration: int
    has_expired: bool
    progress: float

    @classmethod
    def at(cls, track: CurrentTrack, now: datetime) -> "PlaybackPosition":
        duration = track.track.duration_seconds
        # A client clock slightly behind the server's must not seek backwards
        elapsed = max((now - track.started_at).total_seconds(), 0.0)
        remaining = duration - elapsed
        progress = min(elapsed / duration, 1.0) if duration > 0 else 1.0
        return cls(
            elapsed=elapsed,
            remaining=remaining,
            duration=duration,
            has_expired=remaining <= 0,
            progress=progress,
        )


class SyncActionKind(str, Enum):
    LOAD = "load"
    SEEK = "seek"
    STOP = "stop"


@dataclass(frozen=True)
class SyncAction:
    """
    What the client player should do.

    Attributes:
        kind: Load a new video, seek within the current one, or stop.
        video_id: Video to load (LOAD and SEEK).
        position_seconds: Where to start or seek to.
        catalog_id: Track the action refers to.
    """

    kind: SyncActionKind
    video_id: str | None = None
    position_seconds: float = 0.0
    catalog_id: str | None = None


class PlaybackSynchronizer:
    """
    Per-client state that turns on-air records into player actions.

    The client feeds every observed record (poll or subscription) to
    observe(); an action comes back only when the player must change.

    Usage:
        sync = PlaybackSynchronizer()
        action = sync.observe(radio.get_current_track(), clock.now())
        if action is not None:
            player.apply(action)
    """

    def __init__(self, drift_tolerance_seconds: float = DEFAULT_DRIFT_TOLERANCE_SECONDS) -> None:
        self.drift_tolerance_seconds = drift_tolerance_seconds
        self._airing: tuple[str, datetime] | None = None
        self._stopped = False

    @property
    def is_loading(self) -> bool:
        """True while no track is known (the UI shows "Loading...")."""
        return self._airing is None

    def reconnect(self) -> None:
        """Forget the current airing so the next observation reloads and seeks."""
        self._airing = None
        self._stopped = False

    def observe(self, track: CurrentTrack | None, now: datetime) -> SyncAction | None:
        """
        Process one observation of the on-air record.

        Returns:
            LOAD on reconnect or when the airing changed, STOP once when the
            airing disappears or has expired, otherwise None.
        """
        if track is None:
            if self._airing is None:
                return None
            logger.debug("On-air record removed, stopping playback")
            self._airing = None
            self._stopped = False
            return SyncAction(SyncActionKind.STOP)

        # started_at is part of the identity: a replay of the same catalog id is a new airing
        airing = (track.catalog_id, track.started_at)
        position = PlaybackPosition.at(track, now)

        if airing != self._airing:
            self._airing = airing
            self._stopped = position.has_expired
            if position.has_expired:
                logger.debug(f"{track.catalog_id} already expired, waiting for the next track")
                return SyncAction(SyncActionKind.STOP, catalog_id=track.catalog_id)
            logger.debug(f"Loading {track.catalog_id} at {position.elapsed:.1f}s")
            return SyncAction(
                SyncActionKind.LOAD,
                video_id=track.track.video_id,
                position_seconds=position.elapsed,
                catalog_id=track.catalog_id,
            )

        if position.has_expired and not self._stopped:
            self._stopped = True
            return SyncAction(SyncActionKind.STOP, catalog_id=track.catalog_id)

        return None

    def check_drift(
        self,
        track: CurrentTrack | None,
        player_position: float,
        now: datetime
    ) -> SyncAction | None:
        """
        Correct a local player that drifted from the shared timeline.

        Args:
            track: The on-air record the player is playing.
            player_position: Position reported by the local player, in seconds.
            now: Current time.

        Returns:
            A SEEK action when the drift exceeds the tolerance, otherwise None.
        """
        if track is None:
            return None
        position = PlaybackPosition.at(track, now)
        if position.has_expired:
            return None

        drift = player_position - position.elapsed
        if abs(drift) <= self.drift_tolerance_seconds:
            return None

        logger.debug(f"Player drifted {drift:+.1f}s on {track.catalog_id}, seeking")
        return SyncAction(
            SyncActionKind.SEEK,
            video_id=track.track.video_id,
            position_seconds=position.elapsed,
            catalog_id=track.catalog_id,
        )
