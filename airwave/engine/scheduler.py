"""
Periodic jobs driving the stream.

    Job                 Trigger                         Action
    check_expiration    every 30 s                      advance when the on-air track ran out
    check_health        every 60 s                      queue health controller
    prepare_intros      every 10 min                    pre-generate spoken intros
    rollover_quota      00:00 in the quota timezone     open the new quota day
    run_maintenance     daily, maintenance_hour UTC     cache/usage/history cleanup
    daily_discovery     daily, discovery_hour UTC       forced discovery batch

Every job is a plain method, so tests (and the CLI) call them directly
with a ManualClock; start() only registers them with an APScheduler
BackgroundScheduler (max_instances=1, coalesce=True).

Stall handling:
    When the expiration checker cannot advance (queue and history both
    empty) the StallMonitor counts consecutive failures. Below the
    threshold the stream is "recovering", from the threshold on it is
    "stuck". Retries back off exponentially; each failure and each state
    transition is logged (failures also to advance_stalls.log).
"""

from datetime import datetime, timedelta
from enum import Enum

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from airwave.core.clock import Clock, to_iso
from airwave.core.config import SchedulerConfig
from airwave.core.exceptions import RadioError
from airwave.core.logger import get_logger, log_advance_stall
from airwave.engine.advancement import NOT_EXPIRED_REASON
from airwave.engine.models import AdvanceResult
from airwave.engine.radio import Radio


logger = get_logger(__name__)


class StallState(str, Enum):
    HEALTHY = "healthy"
    RECOVERING = "recovering"
    STUCK = "stuck"


class StallMonitor:
    """
    Consecutive advancement failure bookkeeping.

    Attributes:
        threshold: Failures in a row before the stream counts as stuck.
        backoff_seconds: Delay before the first retry.
        backoff_max_seconds: Cap on the retry delay.
        streak: Current run of failures.
        state: Current classification.
        next_retry_at: Earliest time the next attempt should run (None = now).
    """

    def __init__(
        self,
        clock: Clock,
        threshold: int = 3,
        backoff_seconds: int = 15,
        backoff_max_seconds: int = 300
    ) -> None:
        self._clock = clock
        self.threshold = threshold
        self.backoff_seconds = backoff_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.streak = 0
        self.state = StallState.HEALTHY
        self.next_retry_at: datetime | None = None

    def retry_delay(self, streak: int) -> float:
        """Backoff after `streak` consecutive failures: 15, 30, 60, ... capped."""
        return min(self.backoff_seconds * (2 ** max(streak - 1, 0)), self.backoff_max_seconds)

    def should_attempt(self, now: datetime | None = None) -> bool:
        now = now or self._clock.now()
        return self.next_retry_at is None or now >= self.next_retry_at

    def record_success(self) -> None:
        if self.state is not StallState.HEALTHY:
            logger.info(f"Stream recovered after {self.streak} failed advancement(s)")
        self.streak = 0
        self.state = StallState.HEALTHY
        self.next_retry_at = None

    def record_failure(self, reason: str) -> StallState:
        self.streak += 1
        state = StallState.STUCK if self.streak >= self.threshold else StallState.RECOVERING
        if state is not self.state:
            logger.warning(f"Stream state: {self.state.value} -> {state.value}")
        self.state = state

        self.next_retry_at = self._clock.now() + timedelta(seconds=self.retry_delay(self.streak))
        log_advance_stall(logger, self.streak, state.value, reason, to_iso(self.next_retry_at))
        return state


class RadioScheduler:
    """
    Owns the periodic jobs of one Radio.

    Usage:
        scheduler = RadioScheduler(radio, config.scheduler)
        scheduler.start()
        ...
        scheduler.shutdown()
    """

    def __init__(self, radio: Radio, config: SchedulerConfig, quota_timezone: str | None = None) -> None:
        self.radio = radio
        self.config = config
        self.quota_timezone = quota_timezone or radio.config.youtube.quota_timezone
        self.stall = StallMonitor(
            radio.clock,
            threshold=config.stall_threshold,
            backoff_seconds=config.stall_backoff_seconds,
            backoff_max_seconds=config.stall_backoff_max_seconds,
        )
        self._scheduler: BackgroundScheduler | None = None

    # =========================================================================
    # Jobs
    # =========================================================================

    def check_expiration(self) -> AdvanceResult | None:
        """
        Advance when the authoritative record has expired.

        A pending stall backoff only holds while the queue is empty; queued
        tracks are attempted right away.

        Returns:
            The advancement result, or None when a stall backoff is pending
            or the attempt raised.
        """
        if not self.stall.should_attempt():
            if self.radio.queue.length() == 0:
                logger.debug(f"Advancement retry deferred until {to_iso(self.stall.next_retry_at)}")
                return None
            logger.info("Tracks queued during stall backoff, retrying now")

        try:
            result = self.radio.advance_if_expired()
        except RadioError as e:
            logger.error(f"Expiration check failed: {e.message}", exc_info=True)
            self.stall.record_failure(e.message)
            return None

        if result.advanced or result.reason == NOT_EXPIRED_REASON:
            self.stall.record_success()
        else:
            self.stall.record_failure(result.reason or "advancement not available")
        return result

    def check_health(self) -> None:
        report = self.radio.check_health()
        logger.debug(
            f"Health: {report.state.value}, {report.queue_length} queued, "
            f"{report.estimated_playtime_minutes} min of playtime"
        )

    def prepare_intros(self) -> int:
        return self.radio.prepare_intros()

    def rollover_quota(self) -> int:
        return self.radio.rollover()

    def run_maintenance(self) -> dict[str, int]:
        return self.radio.maintenance()

    def daily_discovery(self) -> None:
        count = self.config.discovery_count
        logger.info(f"Daily discovery: requesting {count} tracks")
        self.radio.request_discovery(count, True)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Register every job and start the background scheduler."""
        if self._scheduler is not None:
            return

        config = self.config
        scheduler = BackgroundScheduler(timezone="UTC")
        job_options = {"max_instances": 1, "coalesce": True, "replace_existing": True}

        scheduler.add_job(
            self.check_expiration,
            trigger=IntervalTrigger(seconds=config.expiration_interval_seconds),
            id="check_expiration",
            misfire_grace_time=config.expiration_interval_seconds,
            **job_options
        )
        scheduler.add_job(
            self.check_health,
            trigger=IntervalTrigger(seconds=config.health_interval_seconds),
            id="check_health",
            misfire_grace_time=config.health_interval_seconds,
            **job_options
        )
        if self.radio.intros is not None:
            scheduler.add_job(
                self.prepare_intros,
                trigger=IntervalTrigger(minutes=config.intro_interval_minutes),
                id="prepare_intros",
                **job_options
            )
        scheduler.add_job(
            self.rollover_quota,
            trigger=CronTrigger(hour=0, minute=0, timezone=self.quota_timezone),
            id="rollover_quota",
            **job_options
        )
        scheduler.add_job(
            self.run_maintenance,
            trigger=CronTrigger(hour=config.maintenance_hour, minute=0, timezone="UTC"),
            id="run_maintenance",
            **job_options
        )
        scheduler.add_job(
            self.daily_discovery,
            trigger=CronTrigger(hour=config.discovery_hour, minute=0, timezone="UTC"),
            id="daily_discovery",
            **job_options
        )

        # Bring the stream up before the first interval elapses
        self.rollover_quota()
        self.check_expiration()
        self.check_health()

        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            f"Scheduler started: expiration every {config.expiration_interval_seconds}s, "
            f"health every {config.health_interval_seconds}s"
        )

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._scheduler is not None
