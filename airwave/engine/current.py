"""
The on-air record.

The current_track table holds at most one row (a CHECK constraint pins
its id to 1), so "exactly one current track" is enforced by the schema
rather than by convention. Only track advancement writes it.
"""

from datetime import datetime

from airwave.core.clock import to_iso
from airwave.core.database import Database
from airwave.engine.models import TRACK_COLUMNS, AdvanceSource, CurrentTrack, Track


class CurrentTrackStore:
    """Reads and (for the advancer) replaces the singleton on-air row."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def get(self) -> CurrentTrack | None:
        with self._database.read() as conn:
            row = conn.execute("SELECT * FROM current_track WHERE id = 1").fetchone()
        return CurrentTrack.from_row(row) if row else None

    def install(
        self,
        track: Track,
        started_at: datetime,
        source: AdvanceSource,
        intro_ref: str | None = None
    ) -> CurrentTrack:
        """
        Put a track on air, replacing whatever row exists.

        Must be called inside Database.transaction() together with the
        archive of the previous track.
        """
        with self._database.transaction() as conn:
            conn.execute("DELETE FROM current_track WHERE id = 1")
            conn.execute(f"""
                INSERT INTO current_track (id, {TRACK_COLUMNS}, intro_ref, source, started_at)
                VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (*track.as_params(), intro_ref, source.value, to_iso(started_at)))
        return CurrentTrack(track=track, started_at=started_at, source=source, intro_ref=intro_ref)
