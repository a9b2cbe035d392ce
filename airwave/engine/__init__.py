"""
Engine module for airwave.

This module decides what is on air and keeps the queue fed:
    - models: Track, CurrentTrack, QueueEntry, HistoryEntry and results
    - current: the singleton on-air record
    - queue_store: FIFO queue with insert-time dedup
    - history: play log and history fallback selector
    - dedup: time- and count-based recency checks
    - feedback: skips and likes
    - advancement: the atomic advance step
    - health: queue health controller
    - discovery: catalog -> video -> queue batches on a background worker
    - radio: facade exposing every operation
    - scheduler: periodic jobs and stall bookkeeping

Usage:
    from airwave.engine import Radio, RadioScheduler

    radio = Radio.from_config(config)
    scheduler = RadioScheduler(radio, config.scheduler)
    scheduler.start()
"""

from airwave.engine.advancement import TrackAdvancer
from airwave.engine.current import CurrentTrackStore
from airwave.engine.dedup import DedupWindow
from airwave.engine.discovery import DiscoveryReport, DiscoveryRunner, DiscoveryService
from airwave.engine.feedback import FeedbackLog
from airwave.engine.health import HealthReport, HealthState, QueueHealthController
from airwave.engine.history import FallbackSelector, HistoryLedger
from airwave.engine.models import (
    AdvanceResult,
    AdvanceSource,
    CurrentTrack,
    EnqueueResult,
    HistoryEntry,
    HistoryStats,
    QueueEntry,
    QueueStatus,
    RejectReason,
    SkipResult,
    Track,
)
from airwave.engine.queue_store import QueueStore
from airwave.engine.radio import Radio, TrackStatus
from airwave.engine.scheduler import RadioScheduler, StallMonitor, StallState

__all__ = [
    # Models
    "AdvanceResult",
    "AdvanceSource",
    "CurrentTrack",
    "EnqueueResult",
    "HistoryEntry",
    "HistoryStats",
    "QueueEntry",
    "QueueStatus",
    "RejectReason",
    "SkipResult",
    "Track",
    # Stores
    "CurrentTrackStore",
    "DedupWindow",
    "FeedbackLog",
    "HistoryLedger",
    "QueueStore",
    # Behavior
    "FallbackSelector",
    "TrackAdvancer",
    "HealthReport",
    "HealthState",
    "QueueHealthController",
    "DiscoveryReport",
    "DiscoveryRunner",
    "DiscoveryService",
    # Facade
    "Radio",
    "TrackStatus",
    "RadioScheduler",
    "StallMonitor",
    "StallState",
]
