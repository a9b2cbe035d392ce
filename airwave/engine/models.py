"""
Data models for the broadcast engine.

This module defines immutable dataclasses for the records the engine
keeps (current track, queue entries, history entries) and for the
results its operations return.

Design:
    Every stored record wraps a Track, the descriptive part shared by
    the queue, the history and the on-air record. Records are built from
    SQLite rows through from_row() classmethods; results carry factory
    classmethods for their success and failure shapes.
"""

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from airwave.core.clock import from_iso


class AdvanceSource(str, Enum):
    """Where the new current track came from."""
    QUEUE = "queue"
    HISTORY = "history"


class RejectReason(str, Enum):
    """Why an enqueue attempt was refused."""
    DUPLICATE_IN_QUEUE = "duplicate-in-queue"
    RECENTLY_PLAYED = "recently-played"
    QUEUE_FULL = "queue-full"


@dataclass(frozen=True)
class Track:
    """
    Descriptive fields of a playable track.

    Attributes:
        catalog_id: Stable id from the catalog provider (Discogs release id).
                    Uniqueness and dedup are keyed on this.
        title: Track title.
        artist: Artist name.
        video_id: External video id the players load (YouTube, 11 chars).
        duration_seconds: Playback length. Drives expiration.
        year: Release year, if known.
        label: Record label, if known.
        thumbnail_url: Artwork URL, if known.
    """

    catalog_id: str
    title: str
    artist: str
    video_id: str
    duration_seconds: int
    year: int | None = None
    label: str | None = None
    thumbnail_url: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Track":
        return cls(
            catalog_id=row["catalog_id"],
            title=row["title"],
            artist=row["artist"],
            video_id=row["video_id"],
            duration_seconds=row["duration_seconds"],
            year=row["year"],
            label=row["label"],
            thumbnail_url=row["thumbnail_url"],
        )

    def as_params(self) -> tuple:
        """Column values in the order shared by the track tables' INSERTs."""
        return (
            self.catalog_id,
            self.title,
            self.artist,
            self.year,
            self.label,
            self.video_id,
            self.duration_seconds,
            self.thumbnail_url,
        )

    @property
    def display_name(self) -> str:
        return f"{self.artist} - {self.title}"


# Column list matching Track.as_params()
TRACK_COLUMNS = "catalog_id, title, artist, year, label, video_id, duration_seconds, thumbnail_url"


@dataclass(frozen=True)
class CurrentTrack:
    """
    The single on-air record.

    Clients derive their playback position from started_at alone, so it
    is set exactly once, when the track goes on air.

    Attributes:
        track: What is playing.
        started_at: When it went on air (aware UTC).
        source: Whether it came from the queue or was replayed from history.
        intro_ref: Reference to a pre-generated spoken intro, if any.
    """

    track: Track
    started_at: datetime
    source: AdvanceSource
    intro_ref: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CurrentTrack":
        return cls(
            track=Track.from_row(row),
            started_at=from_iso(row["started_at"]),
            source=AdvanceSource(row["source"]),
            intro_ref=row["intro_ref"],
        )

    @property
    def catalog_id(self) -> str:
        return self.track.catalog_id

    @property
    def ends_at(self) -> datetime:
        return self.started_at + timedelta(seconds=self.track.duration_seconds)


@dataclass(frozen=True)
class QueueEntry:
    """
    A track waiting to go on air.

    Attributes:
        id: Row id (QueueId).
        track: What will play.
        created_at: Enqueue time; the queue is FIFO on this.
        intro_ref: Pre-generated intro, attached after enqueue.
    """

    id: int
    track: Track
    created_at: datetime
    intro_ref: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "QueueEntry":
        return cls(
            id=row["id"],
            track=Track.from_row(row),
            created_at=from_iso(row["created_at"]),
            intro_ref=row["intro_ref"],
        )


@dataclass(frozen=True)
class HistoryEntry:
    """
    One past play.

    Attributes:
        id: Row id.
        track: What played.
        played_at: When it went on air.
        replay_count: Times the fallback selector has replayed this entry.
        last_replayed_at: Last fallback replay, if any.
        liked_by: User ids who liked this play.
    """

    id: int
    track: Track
    played_at: datetime
    replay_count: int = 0
    last_replayed_at: datetime | None = None
    liked_by: tuple[str, ...] = ()

    @classmethod
    def from_row(cls, row: sqlite3.Row, liked_by: list[str] | None = None) -> "HistoryEntry":
        return cls(
            id=row["id"],
            track=Track.from_row(row),
            played_at=from_iso(row["played_at"]),
            replay_count=row["replay_count"],
            last_replayed_at=from_iso(row["last_replayed_at"]),
            liked_by=tuple(liked_by or ()),
        )


@dataclass(frozen=True)
class AdvanceResult:
    """
    Outcome of one advancement.

    Attributes:
        advanced: True if a new track went on air.
        catalog_id: The new current track (None when not advanced).
        source: Queue or history (None when not advanced).
        previous_catalog_id: The track that was archived, if any.
        queue_length: Queue depth right after the advancement.
        reason: Why nothing could be advanced (NotAvailable).
    """

    advanced: bool
    catalog_id: str | None = None
    source: AdvanceSource | None = None
    previous_catalog_id: str | None = None
    queue_length: int = 0
    reason: str | None = None

    @classmethod
    def success(
        cls,
        catalog_id: str,
        source: AdvanceSource,
        previous_catalog_id: str | None,
        queue_length: int
    ) -> "AdvanceResult":
        return cls(
            advanced=True,
            catalog_id=catalog_id,
            source=source,
            previous_catalog_id=previous_catalog_id,
            queue_length=queue_length,
        )

    @classmethod
    def not_available(cls, reason: str, queue_length: int = 0) -> "AdvanceResult":
        return cls(advanced=False, reason=reason, queue_length=queue_length)

    @property
    def used_fallback(self) -> bool:
        return self.source is AdvanceSource.HISTORY


@dataclass(frozen=True)
class EnqueueResult:
    """
    Outcome of an enqueue attempt: a QueueId or a RejectReason.
    """

    accepted: bool
    queue_id: int | None = None
    reason: RejectReason | None = None

    @classmethod
    def success(cls, queue_id: int) -> "EnqueueResult":
        return cls(accepted=True, queue_id=queue_id)

    @classmethod
    def rejected(cls, reason: RejectReason) -> "EnqueueResult":
        return cls(accepted=False, reason=reason)


@dataclass(frozen=True)
class QueueStatus:
    """
    Snapshot returned by Radio.get_queue_status().
    """

    length: int
    has_current: bool
    current_catalog_id: str | None
    history_count: int
    last_updated: datetime | None = None


@dataclass(frozen=True)
class SkipResult:
    """
    Outcome of a privileged skip.

    Attributes:
        success: True if the stream advanced.
        reason: "no_current_track", or the NotAvailable reason.
        advance: The underlying advancement, when one was attempted.
    """

    success: bool
    reason: str | None = None
    advance: AdvanceResult | None = None


@dataclass(frozen=True)
class HistoryStats:
    """Aggregate history figures for status reporting."""

    total_plays: int
    plays_last_24h: int
    plays_last_7d: int
    unique_tracks: int
    unique_artists: int
    total_replays: int
    most_replayed: list[tuple[str, int]] = field(default_factory=list)
