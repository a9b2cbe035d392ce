"""
Time source abstraction.

Every time-driven piece of the engine (advancement, expiration checks,
dedup windows, quota days, intro stall detection) reads the time from a
Clock instead of calling datetime.now() directly, so tests and
simulations can move time forward by hand.

Usage:
    clock = SystemClock()
    started = clock.now()

    clock = ManualClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))
    clock.advance(seconds=30)
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current time as an aware UTC datetime."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """
    Clock that only moves when told to.

    Attributes:
        current: The time returned by now(). Naive datetimes are treated as UTC.

    Example:
        clock = ManualClock(datetime(2024, 5, 1, tzinfo=timezone.utc))
        clock.advance(minutes=3)
        assert clock.now().minute == 3
    """

    def __init__(self, start: datetime | None = None) -> None:
        if start is None:
            start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        elif start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._current = start
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def advance(self, **delta: float) -> datetime:
        """
        Move the clock forward.

        Args:
            **delta: Keyword arguments accepted by datetime.timedelta
                     (seconds=, minutes=, hours=, days=).

        Returns:
            The new current time.
        """
        with self._lock:
            self._current = self._current + timedelta(**delta)
            return self._current

    def set(self, moment: datetime) -> None:
        """Jump to an absolute moment."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        with self._lock:
            self._current = moment


def to_iso(moment: datetime) -> str:
    """
    Serialize a datetime for storage.

    Always UTC with microsecond precision, so stored strings sort in the
    same order as the moments they represent.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
