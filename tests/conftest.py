"""Test configuration and fixtures"""

import random
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from airwave.core.clock import ManualClock
from airwave.core.config import parse_config
from airwave.core.database import Database
from airwave.engine import Radio, Track


START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def clock():
    """Manual clock starting at 2024-05-01 12:00 UTC"""
    return ManualClock(START)


@pytest.fixture
def database():
    """Private in-memory database with the full schema"""
    db = Database(":memory:")
    yield db
    db.close()


@pytest.fixture
def config(temp_dir):
    """Default configuration with one controller"""
    return parse_config({
        "storage": {"directory": str(temp_dir)},
        "roles": {"controllers": ["admin"]},
    })


@pytest.fixture
def make_track():
    """Factory for tracks with unique-looking defaults"""

    def _make(catalog_id="1001", duration_seconds=200, **overrides):
        fields = {
            "catalog_id": str(catalog_id),
            "title": f"Title {catalog_id}",
            "artist": f"Artist {catalog_id}",
            "video_id": f"vid{catalog_id}".ljust(11, "x")[:11],
            "duration_seconds": duration_seconds,
        }
        fields.update(overrides)
        return Track(**fields)

    return _make


@pytest.fixture
def radio(config, database, clock):
    """Radio without discovery, speech or key pool"""
    instance = Radio(config, database, clock, rng=random.Random(42))
    yield instance
    if instance.discovery is not None:
        instance.discovery.shutdown()
