"""
Queue health controller.

Classifies the queue depth against the configured thresholds and acts on
it:

    length == 0                         critical  emergency discovery (past max)
    0 < length < target                 low       discovery for the deficit + buffer
    length >= max                       full      nothing; discovery is refused
    target <= length < max, nothing on  stalled   advance directly
    otherwise                           healthy   nothing

The controller never sources tracks itself; it hands a count to the
discovery requester, which runs in the background and returns at once.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from airwave.core.clock import Clock
from airwave.core.config import QueueConfig
from airwave.core.logger import get_logger
from airwave.engine.advancement import TrackAdvancer
from airwave.engine.current import CurrentTrackStore
from airwave.engine.models import AdvanceResult
from airwave.engine.queue_store import QueueStore


logger = get_logger(__name__)


# Signature of the discovery hook: (count, force_refresh) -> anything
DiscoveryRequester = Callable[[int, bool], object]


class HealthState(str, Enum):
    CRITICAL = "critical"
    LOW = "low"
    FULL = "full"
    STALLED = "stalled"
    HEALTHY = "healthy"


@dataclass(frozen=True)
class HealthReport:
    """
    One evaluation of the queue.

    Attributes:
        state: Classification of the queue depth.
        queue_length: Depth at evaluation time.
        has_current: Whether a track is on air.
        requested: Discovery count the state calls for (0 if none).
        force_refresh: Whether that discovery may overfill past max.
        urgent: Depth is below min_size (low state only).
        estimated_playtime_minutes: Sum of queued durations.
        oldest_entry_age_minutes: Age of the head of the queue.
        newest_entry_age_minutes: Age of the tail of the queue.
    """

    state: HealthState
    queue_length: int
    has_current: bool
    requested: int = 0
    force_refresh: bool = False
    urgent: bool = False
    estimated_playtime_minutes: float = 0.0
    oldest_entry_age_minutes: float | None = None
    newest_entry_age_minutes: float | None = None

    @property
    def is_healthy(self) -> bool:
        return self.state in (HealthState.HEALTHY, HealthState.FULL)

    @property
    def needs_replenishment(self) -> bool:
        return self.requested > 0


class QueueHealthController:
    """
    Keeps the queue between its target and max depth.

    Usage:
        controller = QueueHealthController(config.queue, clock, queue, current, advancer,
                                           discovery.request)
        report = controller.check()
    """

    def __init__(
        self,
        config: QueueConfig,
        clock: Clock,
        queue: QueueStore,
        current: CurrentTrackStore,
        advancer: TrackAdvancer,
        request_discovery: DiscoveryRequester
    ) -> None:
        self.config = config
        self._clock = clock
        self._queue = queue
        self._current = current
        self._advancer = advancer
        self._request_discovery = request_discovery

    def evaluate(self) -> HealthReport:
        """Classify the queue without acting on it."""
        metrics = self._queue.metrics()
        length = metrics["length"]
        has_current = self._current.get() is not None
        now = self._clock.now()

        extra = {
            "estimated_playtime_minutes": round(metrics["total_duration_seconds"] / 60, 1),
            "oldest_entry_age_minutes": _age_minutes(now, metrics["oldest_created_at"]),
            "newest_entry_age_minutes": _age_minutes(now, metrics["newest_created_at"]),
        }

        cfg = self.config
        if length == 0:
            return HealthReport(
                HealthState.CRITICAL, length, has_current,
                requested=cfg.emergency_batch, force_refresh=True, urgent=True, **extra
            )
        if length < cfg.target_size:
            deficit = cfg.target_size - length + cfg.buffer
            requested = max(min(deficit, cfg.max_size - length), 0)
            return HealthReport(
                HealthState.LOW, length, has_current,
                requested=requested, urgent=length < cfg.min_size, **extra
            )
        if length >= cfg.max_size:
            return HealthReport(HealthState.FULL, length, has_current, **extra)
        if not has_current:
            return HealthReport(HealthState.STALLED, length, has_current, **extra)
        return HealthReport(HealthState.HEALTHY, length, has_current, **extra)

    def check(self) -> HealthReport:
        """
        Evaluate the queue and act on the result.

        Returns:
            The report that drove the action.
        """
        report = self.evaluate()

        if report.state is HealthState.CRITICAL:
            logger.warning(
                f"Queue is empty, requesting emergency discovery of {report.requested} tracks"
            )
            self._request_discovery(report.requested, True)

        elif report.state is HealthState.LOW:
            message = (
                f"Queue low ({report.queue_length}/{self.config.target_size}), "
                f"requesting {report.requested} tracks"
            )
            if report.urgent:
                logger.warning(message)
            else:
                logger.info(message)
            if report.requested > 0:
                self._request_discovery(report.requested, False)

        elif report.state is HealthState.STALLED:
            logger.warning(f"Nothing on air with {report.queue_length} queued, advancing")
            self._advancer.advance()

        else:
            logger.debug(f"Queue {report.state.value} at {report.queue_length}")

        return report

    def after_advance(self, result: AdvanceResult) -> HealthReport:
        """Re-check immediately after an advancement changed the depth."""
        logger.debug(f"Post-advance health check (queue now {result.queue_length})")
        return self.check()


def _age_minutes(now: datetime, moment: datetime | None) -> float | None:
    if moment is None:
        return None
    return round((now - moment).total_seconds() / 60, 1)
