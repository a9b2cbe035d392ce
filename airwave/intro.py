"""
Spoken intro pre-generation.

Intros are produced ahead of time for the head of the queue, so that an
advancement never waits on script generation or speech synthesis. The
pipeline itself (script writer + TTS) lives outside this package and is
reached through the SpeechPipeline protocol; it returns an opaque
reference (usually a URL or file name) stored on the queue entry and
carried onto the current track when the entry goes on air.

Tracks replayed from history never get an intro.
"""

from typing import Protocol

from airwave.core.exceptions import RadioError
from airwave.core.logger import get_logger
from airwave.engine.current import CurrentTrackStore
from airwave.engine.models import Track
from airwave.engine.queue_store import QueueStore


logger = get_logger(__name__)


class SpeechPipeline(Protocol):
    """Script generation + speech synthesis for one intro."""

    def generate_intro(
        self,
        track: Track,
        previous: Track | None = None,
        upcoming: Track | None = None
    ) -> str:
        """
        Produce an intro for `track`.

        Args:
            track: The track being introduced.
            previous: What plays right before it, for a segue.
            upcoming: What plays right after it, for a teaser.

        Returns:
            Reference to the generated audio.

        Raises:
            SpeechError: If generation failed.
        """
        ...


class IntroPreparer:
    """
    Attaches intros to queued entries that do not have one yet.

    Usage:
        preparer = IntroPreparer(queue, current, pipeline, batch_size=5)
        prepared = preparer.prepare()
    """

    def __init__(
        self,
        queue: QueueStore,
        current: CurrentTrackStore,
        pipeline: SpeechPipeline,
        batch_size: int = 5
    ) -> None:
        self._queue = queue
        self._current = current
        self._pipeline = pipeline
        self.batch_size = batch_size

    def prepare(self) -> int:
        """
        Generate intros for the next `batch_size` entries in play order.

        Failures are logged and the entry is retried on the next run; the
        track still plays, just without an intro.

        Returns:
            Number of intros attached.
        """
        entries = self._queue.entries(limit=self.batch_size + 1)
        if not entries:
            return 0

        on_air = self._current.get()
        previous = on_air.track if on_air is not None else None

        prepared = 0
        for index, entry in enumerate(entries[:self.batch_size]):
            upcoming = entries[index + 1].track if index + 1 < len(entries) else None

            if entry.intro_ref is None:
                try:
                    intro_ref = self._pipeline.generate_intro(entry.track, previous, upcoming)
                except RadioError as e:
                    logger.warning(f"Intro generation failed for {entry.track.display_name}: {e}")
                else:
                    if self._queue.attach_intro(entry.id, intro_ref):
                        prepared += 1
                        logger.debug(f"Intro ready for {entry.track.display_name}")
                    else:
                        logger.debug(f"{entry.track.display_name} left the queue before its intro was ready")

            previous = entry.track

        if prepared:
            logger.info(f"Prepared {prepared} intro(s)")
        return prepared
