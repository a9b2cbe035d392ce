"""Test configuration loading and validation"""

from pathlib import Path

import pytest

from airwave.core.config import load_config, parse_config
from airwave.core.exceptions import ConfigError


class TestParseConfig:
    """Test building a Config from a dictionary"""

    def test_defaults(self, temp_dir):
        """Test that every section falls back to its defaults"""
        config = parse_config({"storage": {"directory": str(temp_dir)}})

        assert config.storage.directory == temp_dir.resolve()
        assert config.storage.database_path.name == "radio.db"
        assert config.youtube.keys == ()
        assert config.youtube.daily_quota == 10000
        assert config.youtube.quota_timezone == "America/Los_Angeles"
        assert config.youtube.search_cost == 100
        assert config.queue.min_size == 3
        assert config.queue.target_size == 10
        assert config.queue.max_size == 20
        assert config.queue.emergency_batch == 50
        assert config.history.dedup_window == 100
        assert config.history.dedup_hours == 24
        assert config.cache.retention_days == 90
        assert config.intro.enabled is False
        assert config.roles.controllers == frozenset()

    def test_youtube_keys(self):
        """Test literal and env-based key entries"""
        config = parse_config({
            "youtube": {
                "keys": [
                    {"id": "primary", "key": "AIza-literal"},
                    {"id": "backup", "env": "BACKUP_KEY"},
                ],
            },
        })

        assert [key.id for key in config.youtube.keys] == ["primary", "backup"]
        assert config.youtube.keys[0].key == "AIza-literal"
        assert config.youtube.keys[1].env == "BACKUP_KEY"

    def test_key_needs_exactly_one_source(self):
        """Test that a key with both or neither of key/env is rejected"""
        with pytest.raises(ConfigError):
            parse_config({"youtube": {"keys": [{"id": "k", "key": "a", "env": "B"}]}})
        with pytest.raises(ConfigError):
            parse_config({"youtube": {"keys": [{"id": "k"}]}})

    def test_duplicate_key_ids(self):
        """Test duplicate key ids are rejected"""
        with pytest.raises(ConfigError, match="Duplicate"):
            parse_config({"youtube": {"keys": [
                {"id": "k", "key": "a"},
                {"id": "k", "key": "b"},
            ]}})

    def test_unknown_timezone(self):
        """Test an unknown quota timezone is rejected"""
        with pytest.raises(ConfigError, match="timezone"):
            parse_config({"youtube": {"quota_timezone": "Mars/Olympus_Mons"}})

    def test_queue_threshold_order(self):
        """Test min <= target <= max is enforced"""
        with pytest.raises(ConfigError):
            parse_config({"queue": {"target_size": 30, "max_size": 20}})
        with pytest.raises(ConfigError):
            parse_config({"queue": {"min_size": 12, "target_size": 10}})

    def test_integer_fields(self):
        """Test that booleans and negatives are not accepted as counts"""
        with pytest.raises(ConfigError):
            parse_config({"history": {"dedup_window": True}})
        with pytest.raises(ConfigError):
            parse_config({"history": {"dedup_window": -1}})
        with pytest.raises(ConfigError):
            parse_config({"queue": {"buffer": "two"}})

    def test_year_range(self):
        """Test year range parsing"""
        config = parse_config({"catalog": {"year_range": [1970, 1989], "genres": ["Jazz", " Funk "]}})
        assert config.catalog.year_range == (1970, 1989)
        assert config.catalog.genres == ("Jazz", "Funk")

        with pytest.raises(ConfigError):
            parse_config({"catalog": {"year_range": [1990, 1980]}})

    def test_scheduler_hours(self):
        """Test scheduler hours must be 0-23"""
        with pytest.raises(ConfigError):
            parse_config({"scheduler": {"maintenance_hour": 24}})

    def test_section_must_be_dictionary(self):
        """Test a non-dictionary section is rejected"""
        with pytest.raises(ConfigError, match="queue"):
            parse_config({"queue": [1, 2, 3]})

    def test_roles(self):
        """Test controller ids"""
        config = parse_config({"roles": {"controllers": ["admin", "dj"]}})
        assert config.roles.controllers == frozenset({"admin", "dj"})


class TestLoadConfig:
    """Test reading radio.yaml"""

    def test_missing_file(self, temp_dir):
        """Test a missing file raises ConfigError"""
        with pytest.raises(ConfigError, match="not found"):
            load_config(temp_dir / "radio.yaml")

    def test_empty_file(self, temp_dir):
        """Test an empty file is an all-defaults configuration"""
        path = temp_dir / "radio.yaml"
        path.write_text("")

        config = load_config(path)

        assert config.queue.target_size == 10
        assert config.storage.directory == Path("./radio-data").resolve()

    def test_invalid_yaml(self, temp_dir):
        """Test invalid YAML raises ConfigError"""
        path = temp_dir / "radio.yaml"
        path.write_text("queue: [unclosed")

        with pytest.raises(ConfigError, match="YAML"):
            load_config(path)

    def test_not_a_dictionary(self, temp_dir):
        """Test a top-level list is rejected"""
        path = temp_dir / "radio.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ConfigError, match="dictionary"):
            load_config(path)

    def test_full_file(self, temp_dir):
        """Test a file with several sections"""
        path = temp_dir / "radio.yaml"
        path.write_text(
            f"storage:\n"
            f"  directory: {temp_dir}\n"
            f"queue:\n"
            f"  min_size: 2\n"
            f"  target_size: 5\n"
            f"  max_size: 8\n"
            f"intro:\n"
            f"  enabled: true\n"
            f"  stall_timeout_seconds: 5\n"
        )

        config = load_config(path)

        assert config.queue.max_size == 8
        assert config.intro.enabled is True
        assert config.intro.stall_timeout_seconds == 5.0
