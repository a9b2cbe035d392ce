"""
Thread-safe SQLite store for airwave.

All engine state lives in a single SQLite file. The Database class owns
the connection, the schema and the transaction discipline; the engine
components (queue store, history ledger, key pool, match cache...) own
the SQL for their own tables and run it through Database.transaction()
or Database.read().

Schema:
    current_track:  Singleton row (id = 1) describing what is on air
    queue:          Upcoming tracks, FIFO by created_at, unique catalog_id
    history:        Append-only play log (plus replay bookkeeping and likes)
    key_usage:      Per-credential, per-quota-day usage counters
    match_cache:    (artist, title) -> video id, upserted
    feedback:       Skip and like events

Transactions:
    transaction() takes the process-wide re-entrant lock and opens a
    BEGIN IMMEDIATE transaction, which also takes SQLite's write lock so
    separate engine processes sharing the file are serialized. Nested
    transaction() calls on the same thread join the outer transaction,
    so a component method can be used standalone or as one step of a
    larger atomic operation (track advancement).

Usage:
    db = Database(storage_dir / "radio.db")

    with db.transaction() as conn:
        conn.execute("DELETE FROM queue WHERE id = ?", (entry_id,))
        conn.execute("INSERT INTO current_track ...")

    with db.read() as conn:
        rows = conn.execute("SELECT * FROM queue").fetchall()
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from airwave.core.exceptions import DatabaseError
from airwave.core.logger import get_logger


logger = get_logger(__name__)


DATABASE_VERSION = 1

# Special path understood by sqlite3 for a private in-memory database
MEMORY_PATH = ":memory:"


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS current_track (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    catalog_id TEXT NOT NULL,
    title TEXT NOT NULL,
    artist TEXT NOT NULL,
    year INTEGER,
    label TEXT,
    video_id TEXT NOT NULL,
    duration_seconds INTEGER NOT NULL,
    thumbnail_url TEXT,
    intro_ref TEXT,
    source TEXT NOT NULL,
    started_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    catalog_id TEXT UNIQUE NOT NULL,
    title TEXT NOT NULL,
    artist TEXT NOT NULL,
    year INTEGER,
    label TEXT,
    video_id TEXT NOT NULL,
    duration_seconds INTEGER NOT NULL,
    thumbnail_url TEXT,
    intro_ref TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    catalog_id TEXT NOT NULL,
    title TEXT NOT NULL,
    artist TEXT NOT NULL,
    year INTEGER,
    label TEXT,
    video_id TEXT NOT NULL,
    duration_seconds INTEGER NOT NULL,
    thumbnail_url TEXT,
    played_at TEXT NOT NULL,
    replay_count INTEGER NOT NULL DEFAULT 0,
    last_replayed_at TEXT,
    liked_by TEXT NOT NULL DEFAULT '[]'  -- JSON array of user ids
);

CREATE TABLE IF NOT EXISTS key_usage (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key_id TEXT NOT NULL,
    quota_day TEXT NOT NULL,
    quota_used INTEGER NOT NULL DEFAULT 0,
    success_count INTEGER NOT NULL DEFAULT 0,
    failure_count INTEGER NOT NULL DEFAULT 0,
    exhausted INTEGER NOT NULL DEFAULT 0,
    last_error_code INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(key_id, quota_day)
);

CREATE TABLE IF NOT EXISTS match_cache (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    artist TEXT NOT NULL,
    title TEXT NOT NULL,
    video_id TEXT NOT NULL,
    video_title TEXT,
    channel_title TEXT,
    thumbnail_url TEXT,
    duration_seconds INTEGER,
    view_count INTEGER,
    published_at TEXT,
    cached_at TEXT NOT NULL,
    last_used_at TEXT NOT NULL,
    use_count INTEGER NOT NULL DEFAULT 0,
    UNIQUE(artist, title)
);

CREATE TABLE IF NOT EXISTS feedback (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    catalog_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    reason TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_queue_created ON queue(created_at, id);
CREATE INDEX IF NOT EXISTS idx_history_catalog ON history(catalog_id);
CREATE INDEX IF NOT EXISTS idx_history_played ON history(played_at);
CREATE INDEX IF NOT EXISTS idx_key_usage_day ON key_usage(quota_day);
CREATE INDEX IF NOT EXISTS idx_match_cache_used ON match_cache(last_used_at);
CREATE INDEX IF NOT EXISTS idx_feedback_catalog ON feedback(catalog_id);
"""


class Database:
    """
    Thread-safe SQLite database.

    Uses a single persistent connection in autocommit mode; every write
    goes through transaction(), every read through read(). Both hold
    self._lock, a re-entrant lock, for their whole duration.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        # Nesting depth of transaction() on the thread holding the lock
        self._depth = 0

        if str(db_path) != MEMORY_PATH and not Path(db_path).parent.exists():
            raise DatabaseError(
                f"Parent directory does not exist: {Path(db_path).parent}",
                details={"path": str(Path(db_path).parent)}
            )

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection, opening it on first use.

        The connection is never closed on exit; close() does that.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                isolation_level=None,  # Transactions are explicit
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if str(self.db_path) != MEMORY_PATH:
                self._conn.execute("PRAGMA journal_mode = WAL")
        yield self._conn

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _init_database(self) -> None:
        with self.transaction() as conn:
            for statement in _SCHEMA_SQL.split(";"):
                if statement.strip():
                    conn.execute(statement)

            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()

            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
            elif row[0] != DATABASE_VERSION:
                raise DatabaseError(
                    f"Database version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                    details={"expected": DATABASE_VERSION, "actual": row[0]}
                )

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Run a block of statements atomically.

        The outermost call issues BEGIN IMMEDIATE and COMMIT (or ROLLBACK if
        the block raises); nested calls on the same thread join it.

        Raises:
            DatabaseError: If SQLite fails to begin or commit. Exceptions
                           raised inside the block propagate unchanged after
                           the rollback.
        """
        with self._lock:
            with self._get_connection() as conn:
                outermost = self._depth == 0
                if outermost:
                    try:
                        conn.execute("BEGIN IMMEDIATE")
                    except sqlite3.Error as e:
                        raise DatabaseError(
                            f"Failed to begin transaction: {e}",
                            details={"path": str(self.db_path)}
                        ) from e

                self._depth += 1
                try:
                    yield conn
                except BaseException:
                    self._depth -= 1
                    if outermost:
                        conn.execute("ROLLBACK")
                    raise
                self._depth -= 1

                if outermost:
                    try:
                        conn.execute("COMMIT")
                    except sqlite3.Error as e:
                        conn.execute("ROLLBACK")
                        raise DatabaseError(
                            f"Failed to commit transaction: {e}",
                            details={"path": str(self.db_path)}
                        ) from e

    @contextmanager
    def read(self) -> Generator[sqlite3.Connection, None, None]:
        """Hold the lock for a group of read-only statements."""
        with self._lock:
            with self._get_connection() as conn:
                yield conn

    @property
    def in_transaction(self) -> bool:
        """True while the calling thread is inside transaction()."""
        with self._lock:
            return self._depth > 0

    # =========================================================================
    # Serialization helpers
    # =========================================================================

    @staticmethod
    def encode_list(values: list[str] | tuple[str, ...]) -> str:
        return json.dumps(list(values))

    @staticmethod
    def decode_list(raw: str | None) -> list[str]:
        """Decode a JSON array column, tolerating NULL and garbage."""
        if not raw:
            return []
        try:
            decoded = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Ignoring malformed JSON list column: {raw!r}")
            return []
        return [str(item) for item in decoded] if isinstance(decoded, list) else []

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_table_counts(self) -> dict[str, int]:
        """Row counts for every engine table, shown by `airwave status`."""
        tables = ("current_track", "queue", "history", "key_usage", "match_cache", "feedback")
        with self.read() as conn:
            return {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in tables
            }
