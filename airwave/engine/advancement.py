"""
Track advancement: the only code path that changes what is on air.

One advancement is one SQLite transaction:
    1. Pop the oldest queue entry.
    2. If the queue is empty, ask the fallback selector for a replay.
       No candidate at all: NotAvailable, nothing is touched.
    3. Archive the outgoing track into history (played_at = its started_at).
    4. Install the new track with started_at = now.
    5. History source: bump the replayed entry's replay bookkeeping.

Because every step runs inside Database.transaction(), concurrent
callers (expiration checker, health controller, a controller's skip)
serialize, and each observes either the state before or after a whole
advancement, never a half-done one.

Usage:
    advancer = TrackAdvancer(database, clock, queue, history, selector, current)
    result = advancer.advance()
    if not result.advanced:
        logger.warning(result.reason)
"""

from dataclasses import replace

from airwave.core.clock import Clock
from airwave.core.database import Database
from airwave.core.logger import get_logger
from airwave.engine.current import CurrentTrackStore
from airwave.engine.feedback import FeedbackLog
from airwave.engine.history import FallbackSelector, HistoryLedger
from airwave.engine.models import AdvanceResult, AdvanceSource, CurrentTrack, Track
from airwave.engine.queue_store import QueueStore


logger = get_logger(__name__)


NO_FALLBACK_REASON = "queue is empty and history has nothing to replay"
NOT_EXPIRED_REASON = "current track has not expired"
SUPERSEDED_REASON = "current track changed before this advancement ran"


class TrackAdvancer:
    """
    Moves the stream to its next track.

    Attributes:
        default_duration_seconds: Duration installed for tracks that carry none.
    """

    def __init__(
        self,
        database: Database,
        clock: Clock,
        queue: QueueStore,
        history: HistoryLedger,
        selector: FallbackSelector,
        current: CurrentTrackStore,
        default_duration_seconds: int = 180,
        feedback: FeedbackLog | None = None
    ) -> None:
        self._database = database
        self._clock = clock
        self._queue = queue
        self._history = history
        self._selector = selector
        self._current = current
        self.default_duration_seconds = default_duration_seconds
        self._feedback = feedback

    def advance(self, expected_catalog_id: str | None = None) -> AdvanceResult:
        """
        Put the next track on air.

        Args:
            expected_catalog_id: If given, only advance when this is still the
                                 current track. Lets two callers that both saw
                                 the same track end advance it exactly once.

        Returns:
            AdvanceResult describing the new track, or NotAvailable.
        """
        with self._database.transaction():
            previous = self._current.get()

            if expected_catalog_id is not None:
                if previous is None or previous.catalog_id != expected_catalog_id:
                    return AdvanceResult.not_available(SUPERSEDED_REASON, self._queue.length())

            return self._advance_locked(previous)

    def advance_if_expired(self) -> AdvanceResult:
        """
        Advance when the on-air track has run out, or when nothing is on air.

        Check and advancement share one transaction, so a skip that lands
        between them cannot cause a second, unwanted advancement.
        """
        with self._database.transaction():
            previous = self._current.get()
            if previous is not None and self._clock.now() < previous.ends_at:
                return AdvanceResult.not_available(NOT_EXPIRED_REASON, self._queue.length())
            return self._advance_locked(previous)

    def _advance_locked(self, previous: CurrentTrack | None) -> AdvanceResult:
        outgoing_id = previous.catalog_id if previous is not None else None

        entry = self._queue.pop_oldest()
        replayed_id = None
        if entry is not None:
            track, source, intro_ref = entry.track, AdvanceSource.QUEUE, entry.intro_ref
        else:
            fallback = self._selector.select(exclude_catalog_id=outgoing_id)
            if fallback is None:
                return AdvanceResult.not_available(NO_FALLBACK_REASON)
            # Replays carry no intro; it was written for the original context
            track, source, intro_ref = fallback.track, AdvanceSource.HISTORY, None
            replayed_id = fallback.id

        if previous is not None:
            liked_by = None
            if self._feedback is not None:
                liked_by = self._feedback.likes(previous.catalog_id, previous.started_at)
            self._history.append(previous.track, previous.started_at, liked_by)

        now = self._clock.now()
        installed = self._current.install(self._with_duration(track), now, source, intro_ref)

        if replayed_id is not None:
            self._history.mark_replayed(replayed_id, now)

        queue_length = self._queue.length()

        logger.info(
            f"Now playing: {installed.track.display_name} "
            f"({source.value}, {installed.track.duration_seconds}s, {queue_length} queued)"
        )
        return AdvanceResult.success(installed.catalog_id, source, outgoing_id, queue_length)

    def _with_duration(self, track: Track) -> Track:
        if track.duration_seconds and track.duration_seconds > 0:
            return track
        logger.debug(f"No duration for {track.display_name}, using {self.default_duration_seconds}s")
        return replace(track, duration_seconds=self.default_duration_seconds)
