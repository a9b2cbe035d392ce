"""
Discovery: sourcing new tracks into the queue.

A discovery batch asks the catalog provider for candidates, skips the
ones played recently or already queued, resolves each remaining
candidate to a video (match cache first, then the quota-limited lookup)
and enqueues it.

Batch rules:
    - Refused up front when the queue is already at max, unless forced.
    - Queue depth is re-checked before every enqueue; the batch stops at
      max (forced batches may overfill, they exist for empty queues).
    - A failure on one candidate is counted and logged; it never aborts
      the batch.
    - Running out of lookup quota ends the batch: every further
      candidate would need a search as well.

DiscoveryRunner executes batches on a single background worker.
request() returns immediately with a Future; while a batch is running,
further requests join it instead of starting another.

Usage:
    service = DiscoveryService(catalog, matcher, queue, dedup, config.queue)
    runner = DiscoveryRunner(service)
    future = runner.request(12)
    report = future.result()
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

from airwave.catalog.discogs import CatalogProvider
from airwave.catalog.models import CatalogCandidate
from airwave.core.config import QueueConfig
from airwave.core.exceptions import AllKeysExhaustedError, CatalogError
from airwave.core.logger import get_logger
from airwave.engine.dedup import DedupWindow
from airwave.engine.models import RejectReason, Track
from airwave.engine.queue_store import QueueStore
from airwave.youtube.matcher import VideoLookup


logger = get_logger(__name__)


# Candidates requested per track wanted, to absorb dedup and match misses
CANDIDATE_OVERSAMPLING = 2

# Upper bound on one catalog request
MAX_CANDIDATES_PER_BATCH = 100


@dataclass(frozen=True)
class DiscoveryReport:
    """
    Outcome of one discovery batch.

    Attributes:
        added: Tracks enqueued.
        skipped: Candidates dropped (recent, duplicate, no match).
        errors: Candidates that failed with an error.
        total_processed: Candidates looked at.
        reason: Why the batch ended: "completed", "queue_full",
                "quota_exhausted" or "catalog_error".
    """

    added: int = 0
    skipped: int = 0
    errors: int = 0
    total_processed: int = 0
    reason: str = "completed"


class DiscoveryService:
    """
    Runs discovery batches synchronously.

    Attributes:
        config: Queue thresholds (max_size is the batch stop condition).
        dedup_hours: Candidates played within this window are skipped.
        duration_bounds: (min, max) video length in seconds handed to the lookup
                         (None = the lookup defaults).
    """

    def __init__(
        self,
        catalog: CatalogProvider,
        lookup: VideoLookup,
        queue: QueueStore,
        dedup: DedupWindow,
        config: QueueConfig,
        dedup_hours: int = 24,
        duration_bounds: tuple[int, int] | None = None,
        on_enqueued: Callable[[int], None] | None = None
    ) -> None:
        self._catalog = catalog
        self._lookup = lookup
        self._queue = queue
        self._dedup = dedup
        self.config = config
        self.dedup_hours = dedup_hours
        self.duration_bounds = duration_bounds
        self._on_enqueued = on_enqueued

    def run(self, count: int, force_refresh: bool = False) -> DiscoveryReport:
        """
        Try to enqueue `count` new tracks.

        Args:
            count: Tracks wanted.
            force_refresh: Ignore the max queue size (emergency and daily refresh).

        Returns:
            DiscoveryReport with the batch counters.
        """
        length = self._queue.length()
        if length >= self.config.max_size and not force_refresh:
            logger.info(f"Queue full ({length}/{self.config.max_size}), discovery skipped")
            return DiscoveryReport(reason="queue_full")

        limit = min(count * CANDIDATE_OVERSAMPLING, MAX_CANDIDATES_PER_BATCH)
        try:
            candidates = self._catalog.search(limit)
        except CatalogError as e:
            logger.error(f"Catalog search failed: {e.message}")
            return DiscoveryReport(errors=1, reason="catalog_error")

        logger.info(f"Discovery: {len(candidates)} candidates for {count} slots")

        added = skipped = errors = processed = 0
        reason = "completed"

        for candidate in candidates:
            if added >= count:
                break
            if not force_refresh and self._queue.length() >= self.config.max_size:
                reason = "queue_full"
                break

            processed += 1
            try:
                outcome = self._process(candidate, force_refresh)
            except AllKeysExhaustedError:
                logger.warning(f"Lookup quota exhausted after {added} tracks, ending discovery batch")
                reason = "quota_exhausted"
                break
            except Exception as e:
                errors += 1
                logger.warning(
                    f"Discovery failed for {candidate.artist} - {candidate.title}: {e}",
                    exc_info=True
                )
                continue

            if outcome is None:
                added += 1
            elif outcome is RejectReason.QUEUE_FULL:
                reason = "queue_full"
                break
            else:
                skipped += 1

        report = DiscoveryReport(
            added=added,
            skipped=skipped,
            errors=errors,
            total_processed=processed,
            reason=reason,
        )
        logger.info(
            f"Discovery finished ({reason}): {added} added, {skipped} skipped, {errors} errors"
        )
        return report

    def _process(self, candidate: CatalogCandidate, force_refresh: bool) -> RejectReason | str | None:
        """
        Resolve and enqueue one candidate.

        Returns:
            None if enqueued, the RejectReason if the queue refused it, or a
            short string naming why it was skipped before reaching the queue.
        """
        if self._queue.contains(candidate.catalog_id):
            return RejectReason.DUPLICATE_IN_QUEUE
        if self._dedup.is_recently_played(candidate.catalog_id, hours=self.dedup_hours):
            logger.debug(f"Skipping recently played: {candidate.artist} - {candidate.title}")
            return RejectReason.RECENTLY_PLAYED

        match = self._lookup.find_best_match(
            candidate.artist, candidate.title, duration_bounds=self.duration_bounds
        )
        if match is None:
            return "no_match"

        track = Track(
            catalog_id=candidate.catalog_id,
            title=candidate.title,
            artist=candidate.artist,
            video_id=match.video_id,
            duration_seconds=match.duration_seconds,
            year=candidate.year,
            label=candidate.label,
            thumbnail_url=match.thumbnail_url or candidate.thumbnail_url,
        )
        result = self._queue.enqueue(track, force=force_refresh)
        if not result.accepted:
            return result.reason

        if self._on_enqueued is not None:
            self._on_enqueued(result.queue_id)
        return None


class DiscoveryRunner:
    """
    Single-worker background executor for discovery batches.

    Attributes:
        last_report: Report of the most recent finished batch.
    """

    def __init__(self, service: DiscoveryService) -> None:
        self._service = service
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="discovery")
        self._lock = threading.Lock()
        self._future: Future | None = None
        self.last_report: DiscoveryReport | None = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._future is not None and not self._future.done()

    def request(self, count: int, force_refresh: bool = False) -> Future:
        """
        Start a batch in the background, or join the one already running.

        Never blocks the caller.
        """
        with self._lock:
            if self._future is not None and not self._future.done():
                logger.debug(f"Discovery already running, request for {count} joined it")
                return self._future
            self._future = self._executor.submit(self._run, count, force_refresh)
            return self._future

    def _run(self, count: int, force_refresh: bool) -> DiscoveryReport:
        try:
            report = self._service.run(count, force_refresh)
        except Exception:
            logger.exception("Discovery batch crashed")
            raise
        self.last_report = report
        return report

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
