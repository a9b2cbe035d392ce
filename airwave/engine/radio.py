"""
Radio: the engine facade.

Wires the stores, the advancer, the health controller, discovery and
the optional collaborators together and exposes every operation the
outside world may call. Listener-facing reads, system operations
(advance, discovery, maintenance) and privileged operations (skip,
queue clear) all go through here; privileged ones are gated by the
role provider.

Construction:
    Radio.from_config() builds the full production wiring (SQLite file,
    YouTube key pool and matcher, Discogs catalog). The constructor takes
    every collaborator explicitly, which is what the tests use.

Usage:
    config = load_config()
    radio = Radio.from_config(config)

    radio.advance()
    status = radio.get_current_status()
    radio.skip("controller-user", reason="too long")
"""

import random
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Mapping

from airwave.catalog.discogs import CatalogProvider, DiscogsCatalog
from airwave.core.clock import Clock, SystemClock
from airwave.core.config import Config
from airwave.core.database import Database
from airwave.core.exceptions import AuthorizationError, ConfigError
from airwave.core.logger import get_logger
from airwave.core.roles import RoleProvider, StaticRoleProvider
from airwave.engine.advancement import NOT_EXPIRED_REASON, SUPERSEDED_REASON, TrackAdvancer
from airwave.engine.current import CurrentTrackStore
from airwave.engine.dedup import DedupWindow
from airwave.engine.discovery import DiscoveryRunner, DiscoveryService
from airwave.engine.feedback import SKIP, FeedbackLog
from airwave.engine.health import HealthReport, QueueHealthController
from airwave.engine.history import FallbackSelector, HistoryLedger
from airwave.engine.models import (
    AdvanceResult,
    CurrentTrack,
    EnqueueResult,
    HistoryEntry,
    QueueEntry,
    QueueStatus,
    SkipResult,
    Track,
)
from airwave.engine.queue_store import QueueStore
from airwave.intro import IntroPreparer, SpeechPipeline
from airwave.sync.playback import PlaybackPosition
from airwave.youtube.cache import MatchCache
from airwave.youtube.client import YouTubeClient
from airwave.youtube.key_pool import KeyPool
from airwave.youtube.matcher import VideoLookup, VideoMatcher


logger = get_logger(__name__)


NO_CURRENT_TRACK = "no_current_track"


@dataclass(frozen=True)
class TrackStatus:
    """On-air track plus its timing at the moment of the call."""

    current: CurrentTrack
    position: PlaybackPosition


class Radio:
    """
    The single global stream.

    Attributes:
        config: Engine configuration.
        database: Shared SQLite store.
        clock: Time source for every component.
        key_pool: YouTube credential pool (None when no keys are configured).
    """

    def __init__(
        self,
        config: Config,
        database: Database,
        clock: Clock | None = None,
        catalog: CatalogProvider | None = None,
        lookup: VideoLookup | None = None,
        key_pool: KeyPool | None = None,
        speech: SpeechPipeline | None = None,
        roles: RoleProvider | None = None,
        rng: random.Random | None = None
    ) -> None:
        self.config = config
        self.database = database
        self.clock = clock or SystemClock()
        self.key_pool = key_pool
        self.roles = roles or StaticRoleProvider(config.roles.controllers)

        history_config = config.history
        self.dedup = DedupWindow(
            database, self.clock, history_config.dedup_window, history_config.dedup_hours
        )
        self.current = CurrentTrackStore(database)
        self.queue = QueueStore(database, self.clock, self.dedup, max_size=config.queue.max_size)
        self.history = HistoryLedger(database, self.clock)
        self.feedback = FeedbackLog(database, self.clock)
        self.cache = MatchCache(database, self.clock)
        self.selector = FallbackSelector(
            database,
            self.clock,
            freshness_hours=history_config.freshness_hours,
            exclude_recent=history_config.exclude_recent,
            pool_size=history_config.fallback_pool_size,
            rng=rng,
        )
        self.advancer = TrackAdvancer(
            database,
            self.clock,
            self.queue,
            self.history,
            self.selector,
            self.current,
            default_duration_seconds=config.queue.default_duration_seconds,
            feedback=self.feedback,
        )

        self.discovery: DiscoveryRunner | None = None
        if catalog is not None and lookup is not None:
            service = DiscoveryService(
                catalog, lookup, self.queue, self.dedup, config.queue,
                dedup_hours=history_config.dedup_hours,
                duration_bounds=(
                    config.youtube.min_duration_seconds,
                    config.youtube.max_duration_seconds,
                ),
            )
            self.discovery = DiscoveryRunner(service)

        self.health = QueueHealthController(
            config.queue, self.clock, self.queue, self.current, self.advancer,
            self.request_discovery,
        )

        self.intros: IntroPreparer | None = None
        if speech is not None and config.intro.enabled:
            self.intros = IntroPreparer(self.queue, self.current, speech, config.intro.batch_size)

    @classmethod
    def from_config(
        cls,
        config: Config,
        clock: Clock | None = None,
        environ: Mapping[str, str] | None = None,
        speech: SpeechPipeline | None = None,
        roles: RoleProvider | None = None
    ) -> "Radio":
        """
        Build the production wiring.

        Discovery is enabled only when both a YouTube key and the Discogs
        token resolve; without them the engine still plays the queue and
        the history fallback.

        Raises:
            DatabaseError: If the database cannot be opened.
        """
        clock = clock or SystemClock()
        config.storage.directory.mkdir(parents=True, exist_ok=True)
        database = Database(config.storage.database_path)

        key_pool = None
        lookup = None
        if config.youtube.keys:
            try:
                key_pool = KeyPool.from_config(database, clock, config.youtube, environ)
            except ConfigError as e:
                logger.warning(f"{e.message}, video lookup disabled")
        if key_pool is not None:
            client = YouTubeClient(key_pool, config.youtube)
            lookup = VideoMatcher(
                client,
                MatchCache(database, clock),
                config.youtube.min_duration_seconds,
                config.youtube.max_duration_seconds,
            )

        catalog = None
        try:
            catalog = DiscogsCatalog.from_config(config.catalog, environ)
        except ConfigError as e:
            logger.warning(f"{e.message}, catalog search disabled")

        if catalog is None or lookup is None:
            logger.warning("Discovery disabled: the queue will only be fed by enqueue()")

        return cls(
            config,
            database,
            clock,
            catalog=catalog,
            lookup=lookup,
            key_pool=key_pool,
            speech=speech,
            roles=roles,
        )

    # =========================================================================
    # Listener reads
    # =========================================================================

    def get_current_track(self) -> CurrentTrack | None:
        return self.current.get()

    def get_current_status(self) -> TrackStatus | None:
        """Current track with elapsed/remaining time, or None while loading."""
        current = self.current.get()
        if current is None:
            return None
        return TrackStatus(current, PlaybackPosition.at(current, self.clock.now()))

    def get_queue(self, limit: int = 10) -> list[QueueEntry]:
        return self.queue.entries(limit)

    def get_history(self, limit: int = 20) -> list[HistoryEntry]:
        return self.history.recent(limit)

    def get_queue_status(self) -> QueueStatus:
        current = self.current.get()
        metrics = self.queue.metrics()

        moments = [moment for moment in (
            current.started_at if current else None,
            metrics["newest_created_at"],
        ) if moment is not None]

        return QueueStatus(
            length=metrics["length"],
            has_current=current is not None,
            current_catalog_id=current.catalog_id if current else None,
            history_count=self.history.count(),
            last_updated=max(moments) if moments else None,
        )

    def get_queue_health(self) -> HealthReport:
        """Health classification without side effects."""
        return self.health.evaluate()

    def key_usage(self) -> dict | None:
        """Today's key pool usage, or None when no keys are configured."""
        if self.key_pool is None:
            return None
        return self.key_pool.usage_summary()

    def cache_stats(self) -> dict:
        return self.cache.stats()

    # =========================================================================
    # System operations
    # =========================================================================

    def advance(self) -> AdvanceResult:
        """Put the next track on air unconditionally."""
        result = self.advancer.advance()
        self._after_advance(result)
        return result

    def advance_if_expired(self) -> AdvanceResult:
        """Advance only when the on-air track has run out (or nothing is on air)."""
        result = self.advancer.advance_if_expired()
        if result.advanced or result.reason != NOT_EXPIRED_REASON:
            self._after_advance(result)
        return result

    def enqueue(self, track: Track, force: bool = False) -> EnqueueResult:
        return self.queue.enqueue(track, force=force)

    def request_discovery(self, count: int, force_refresh: bool = False) -> Future | None:
        """
        Start (or join) a background discovery batch.

        Returns:
            The batch Future, or None when discovery is not configured.
        """
        if self.discovery is None:
            logger.warning(f"Discovery of {count} tracks requested but discovery is not configured")
            return None
        return self.discovery.request(count, force_refresh)

    def check_health(self) -> HealthReport:
        return self.health.check()

    def prepare_intros(self) -> int:
        if self.intros is None:
            return 0
        return self.intros.prepare()

    def rollover(self) -> int:
        """Open the current quota day for every key."""
        if self.key_pool is None:
            return 0
        return self.key_pool.rollover()

    def maintenance(self) -> dict[str, int]:
        """
        Daily cleanup.

        History keeps at least the rows the dedup window and the fallback
        pool look at, whatever their age.

        Returns:
            Rows deleted per table.
        """
        history_config = self.config.history
        keep_last = max(history_config.dedup_window, history_config.fallback_pool_size)

        deleted = {
            "match_cache": self.cache.cleanup(self.config.cache.retention_days),
            "history": self.history.cleanup(history_config.retention_days, keep_last=keep_last),
            "key_usage": 0,
        }
        if self.key_pool is not None:
            deleted["key_usage"] = self.key_pool.cleanup_old_usage(
                self.config.cache.usage_retention_days
            )

        logger.info(
            "Maintenance done: "
            + ", ".join(f"{count} {table}" for table, count in deleted.items())
        )
        return deleted

    def _after_advance(self, result: AdvanceResult) -> None:
        if result.used_fallback:
            logger.warning(
                f"Queue ran dry, replaying from history; requesting "
                f"{self.config.queue.emergency_batch} tracks"
            )
            self.request_discovery(self.config.queue.emergency_batch, True)
            return
        self.health.after_advance(result)

    # =========================================================================
    # Listener and privileged operations
    # =========================================================================

    def skip(self, user_id: str, reason: str | None = None) -> SkipResult:
        """
        Skip the on-air track.

        Raises:
            AuthorizationError: If the user is not a controller.
        """
        self._authorize(user_id, "skip")

        current = self.current.get()
        if current is None:
            return SkipResult(False, NO_CURRENT_TRACK)

        self.feedback.record(user_id, current.catalog_id, SKIP, reason)
        logger.info(f"Skip by {user_id}: {current.track.display_name}" + (f" ({reason})" if reason else ""))

        result = self.advancer.advance(expected_catalog_id=current.catalog_id)
        # A stalled skip still has to get discovery going
        if result.advanced or result.reason != SUPERSEDED_REASON:
            self._after_advance(result)
        return SkipResult(result.advanced, result.reason, result)

    def clear_queue(self, user_id: str, keep_count: int = 0) -> int:
        """
        Drop queued entries, keeping the first `keep_count`.

        Raises:
            AuthorizationError: If the user is not a controller.
        """
        self._authorize(user_id, "clear the queue")
        removed = self.queue.clear(keep_count)
        logger.info(f"Queue cleared by {user_id}: {removed} removed, {keep_count} kept")
        return removed

    def toggle_like(self, user_id: str, catalog_id: str | None = None) -> bool | None:
        """
        Flip a user's like on the on-air track (default) or on a past play.

        Returns:
            True if now liked, False if unliked, None if there is nothing to like.
        """
        current = self.current.get()
        if catalog_id is None or (current is not None and catalog_id == current.catalog_id):
            if current is None:
                return None
            return self.feedback.toggle_like(user_id, current.catalog_id, current.started_at)
        return self.history.toggle_like(catalog_id, user_id)

    def is_liked(self, user_id: str, catalog_id: str | None = None) -> bool | None:
        """
        Whether the user likes the on-air track (default) or the latest play of a past track.

        Returns:
            None if there is nothing to look at, as in toggle_like.
        """
        current = self.current.get()
        if catalog_id is None or (current is not None and catalog_id == current.catalog_id):
            if current is None:
                return None
            return user_id in self.feedback.likes(current.catalog_id, current.started_at)
        liked_by = self.history.likes(catalog_id)
        return None if liked_by is None else user_id in liked_by

    def liked_tracks(self, user_id: str, limit: int = 50) -> list[Track]:
        """Tracks the user liked, newest first: the on-air one, then past plays."""
        tracks: list[Track] = []
        current = self.current.get()
        if current is not None and user_id in self.feedback.likes(current.catalog_id, current.started_at):
            tracks.append(current.track)

        seen = {track.catalog_id for track in tracks}
        for entry in self.history.liked_by_user(user_id, limit):
            if entry.track.catalog_id not in seen:
                tracks.append(entry.track)
        return tracks[:limit]

    def _authorize(self, user_id: str, operation: str) -> None:
        if not self.roles.is_controller(user_id):
            logger.warning(f"Unauthorized attempt to {operation} by {user_id}")
            raise AuthorizationError(
                f"User {user_id} is not allowed to {operation}",
                details={"user_id": user_id, "operation": operation}
            )

    def close(self) -> None:
        if self.discovery is not None:
            self.discovery.shutdown(wait=False)
        self.database.close()
