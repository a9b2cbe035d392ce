"""Test the SQLite store"""

import sqlite3

import pytest

from airwave.core.database import DATABASE_VERSION, Database
from airwave.core.exceptions import DatabaseError


class TestDatabase:
    """Test schema and transaction behavior"""

    def test_schema_created(self, database):
        """Test every engine table exists and starts empty"""
        counts = database.get_table_counts()
        assert counts == {
            "current_track": 0,
            "queue": 0,
            "history": 0,
            "key_usage": 0,
            "match_cache": 0,
            "feedback": 0,
        }

    def test_transaction_commits(self, database):
        """Test a successful block is committed"""
        with database.transaction() as conn:
            conn.execute(
                "INSERT INTO feedback (user_id, catalog_id, kind, created_at) VALUES ('u', '1', 'skip', 'now')"
            )
        assert database.get_table_counts()["feedback"] == 1

    def test_transaction_rolls_back(self, database):
        """Test an exception inside the block rolls everything back"""
        with pytest.raises(RuntimeError):
            with database.transaction() as conn:
                conn.execute(
                    "INSERT INTO feedback (user_id, catalog_id, kind, created_at) VALUES ('u', '1', 'skip', 'now')"
                )
                raise RuntimeError("boom")

        assert database.get_table_counts()["feedback"] == 0
        assert not database.in_transaction

    def test_nested_transaction_joins_outer(self, database):
        """Test an inner failure rolls back the outer block as well"""
        with pytest.raises(RuntimeError):
            with database.transaction() as outer:
                outer.execute(
                    "INSERT INTO feedback (user_id, catalog_id, kind, created_at) VALUES ('a', '1', 'skip', 'now')"
                )
                with database.transaction() as inner:
                    assert database.in_transaction
                    inner.execute(
                        "INSERT INTO feedback (user_id, catalog_id, kind, created_at) VALUES ('b', '1', 'skip', 'now')"
                    )
                raise RuntimeError("after inner commit")

        assert database.get_table_counts()["feedback"] == 0

    def test_singleton_current_track(self, database):
        """Test the schema refuses a second on-air row"""
        with pytest.raises(sqlite3.IntegrityError):
            with database.transaction() as conn:
                conn.execute("""
                    INSERT INTO current_track (id, catalog_id, title, artist, video_id,
                                               duration_seconds, source, started_at)
                    VALUES (2, '1', 't', 'a', 'v', 10, 'queue', 'now')
                """)

    def test_file_database(self, temp_dir):
        """Test a file database persists across connections"""
        path = temp_dir / "radio.db"
        db = Database(path)
        with db.transaction() as conn:
            conn.execute(
                "INSERT INTO feedback (user_id, catalog_id, kind, created_at) VALUES ('u', '1', 'like', 'now')"
            )
        db.close()

        reopened = Database(path)
        assert reopened.get_table_counts()["feedback"] == 1
        reopened.close()

    def test_missing_parent_directory(self, temp_dir):
        """Test a database path in a missing directory raises DatabaseError"""
        with pytest.raises(DatabaseError):
            Database(temp_dir / "missing" / "radio.db")

    def test_version_mismatch(self, temp_dir):
        """Test an incompatible schema version raises DatabaseError"""
        path = temp_dir / "radio.db"
        db = Database(path)
        with db.transaction() as conn:
            conn.execute("UPDATE schema_version SET version = ?", (DATABASE_VERSION + 1,))
        db.close()

        with pytest.raises(DatabaseError, match="version mismatch"):
            Database(path)


class TestListColumns:
    """Test JSON list column helpers"""

    def test_encode_decode(self):
        """Test list columns survive encoding"""
        raw = Database.encode_list(["a", "b"])
        assert Database.decode_list(raw) == ["a", "b"]

    def test_decode_tolerates_garbage(self):
        """Test NULL, invalid JSON and non-lists decode to an empty list"""
        assert Database.decode_list(None) == []
        assert Database.decode_list("not json") == []
        assert Database.decode_list('{"a": 1}') == []
