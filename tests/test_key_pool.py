"""Test the YouTube key pool"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from airwave.core.config import KeyConfig, YouTubeConfig
from airwave.core.exceptions import AllKeysExhaustedError, ConfigError
from airwave.youtube.key_pool import KeyPool
from airwave.youtube.models import Credential


@pytest.fixture
def pool(database, clock):
    credentials = [Credential("A", "key-a"), Credential("B", "key-b")]
    return KeyPool(database, clock, credentials, daily_quota=10000)


def _used(pool):
    return {usage.key_id: usage.quota_used for usage in pool.usage()}


class TestKeySelection:
    """Test the least-used selection rule"""

    def test_skips_key_that_cannot_afford(self, pool):
        """Test a key near its quota is passed over"""
        pool.record_usage("A", 9950, success=True)

        assert pool.select_key(100).id == "B"

    def test_least_used_wins(self, pool):
        """Test the key with the lowest usage is chosen"""
        pool.record_usage("A", 300, success=True)
        pool.record_usage("B", 200, success=True)

        assert pool.select_key(100).id == "B"

    def test_tie_goes_to_first_declared(self, pool):
        """Test declaration order breaks ties"""
        assert pool.select_key(100).id == "A"

    def test_exact_fit_is_affordable(self, pool):
        """Test usage + cost may reach the quota exactly"""
        pool.record_usage("A", 9900, success=True)
        pool.record_usage("B", 9950, success=True)

        assert pool.select_key(100).id == "A"

    def test_403_flags_key_exhausted(self, pool):
        """Test a quota refusal retires the key whatever its usage"""
        pool.record_usage("B", 500, success=True)
        pool.record_outcome("A", success=False, error_code=403)

        assert pool.select_key(100).id == "B"
        usage = {usage.key_id: usage for usage in pool.usage()}
        assert usage["A"].exhausted
        assert usage["A"].failure_count == 1
        assert usage["A"].last_error_code == 403

    def test_other_failures_do_not_exhaust(self, pool):
        """Test a 500 is booked as a failure only"""
        pool.record_outcome("A", success=False, error_code=500)

        usage = pool.usage()[0]
        assert not usage.exhausted
        assert usage.failure_count == 1

    def test_all_exhausted(self, pool):
        """Test AllKeysExhaustedError when nothing can pay"""
        pool.record_usage("A", 9950, success=True)
        pool.record_outcome("B", success=False, error_code=403)

        with pytest.raises(AllKeysExhaustedError) as exc_info:
            pool.select_key(100)
        assert exc_info.value.cost == 100

        # A cheap call still fits on A
        assert pool.select_key(1).id == "A"

    def test_empty_pool(self, database, clock):
        """Test a pool without credentials is always exhausted"""
        with pytest.raises(AllKeysExhaustedError):
            KeyPool(database, clock, []).acquire(1)


class TestAccounting:
    """Test quota charging and days"""

    def test_acquire_charges_cost(self, pool):
        """Test acquire reserves the cost on the chosen key"""
        credential = pool.acquire(100)
        pool.record_outcome(credential.id, success=True)

        assert credential.id == "A"
        assert _used(pool) == {"A": 100, "B": 0}
        assert pool.usage()[0].success_count == 1

    def test_acquire_spreads_load(self, pool):
        """Test consecutive acquisitions alternate between keys"""
        ids = [pool.acquire(100).id for _ in range(4)]

        assert ids == ["A", "B", "A", "B"]

    def test_concurrent_acquire_never_overspends(self, database, clock):
        """Test concurrent acquisitions never push a key past its quota"""
        pool = KeyPool(database, clock, [Credential("A", "a"), Credential("B", "b")], daily_quota=1000)
        granted = []
        refused = []

        def worker():
            try:
                granted.append(pool.acquire(100).id)
            except AllKeysExhaustedError:
                refused.append(True)

        threads = [threading.Thread(target=worker) for _ in range(30)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(granted) == 20
        assert len(refused) == 10
        assert _used(pool) == {"A": 1000, "B": 1000}

    def test_quota_day_is_pacific(self, pool, clock):
        """Test the quota day follows America/Los_Angeles"""
        assert pool.quota_day(datetime(2024, 5, 2, 6, 59, tzinfo=timezone.utc)) == "2024-05-01"
        assert pool.quota_day(datetime(2024, 5, 2, 7, 0, tzinfo=timezone.utc)) == "2024-05-02"

    def test_usage_resets_at_pacific_midnight(self, pool, clock):
        """Test yesterday's usage does not count against today"""
        clock.set(datetime(2024, 5, 2, 6, 0, tzinfo=timezone.utc))
        pool.record_usage("A", 10000, success=True)
        pool.record_outcome("B", success=False, error_code=403)
        with pytest.raises(AllKeysExhaustedError):
            pool.acquire(100)

        clock.set(datetime(2024, 5, 2, 7, 1, tzinfo=timezone.utc))

        assert pool.acquire(100).id == "A"
        assert _used(pool) == {"A": 100, "B": 0}

    def test_rollover_idempotent(self, pool):
        """Test rollover creates today's records once"""
        assert pool.rollover() == 2
        assert pool.rollover() == 0
        assert _used(pool) == {"A": 0, "B": 0}

    def test_usage_summary(self, pool):
        """Test the pool-wide usage report"""
        pool.record_usage("A", 2500, success=True)
        pool.record_outcome("B", success=False, error_code=403)

        summary = pool.usage_summary()

        assert summary["quota_day"] == "2024-05-01"
        assert summary["total_used"] == 2500
        assert summary["total_remaining"] == 7500
        assert summary["available_keys"] == 1
        assert summary["utilization_percent"] == 12.5
        assert [key["key_id"] for key in summary["keys"]] == ["A", "B"]

    def test_cleanup_old_usage(self, pool, clock):
        """Test old usage records are deleted"""
        pool.record_usage("A", 100, success=True)
        clock.advance(days=40)
        pool.record_usage("A", 100, success=True)

        assert pool.cleanup_old_usage(days_to_keep=30) == 1
        assert _used(pool)["A"] == 100

    def test_usage_timestamps(self, pool, clock):
        """Test usage records carry their update time"""
        pool.acquire(1)
        clock.advance(minutes=5)
        pool.acquire(1)

        usage = pool.usage()
        assert usage[0].updated_at == clock.now() - timedelta(minutes=5)
        assert usage[1].updated_at == clock.now()


class TestFromConfig:
    """Test building the pool from configuration"""

    def test_env_keys(self, database, clock):
        """Test literal keys and resolved env keys are used, unset env keys skipped"""
        config = YouTubeConfig(keys=(
            KeyConfig(id="literal", key="AIza-1"),
            KeyConfig(id="from-env", env="YT_KEY_2"),
            KeyConfig(id="unset", env="YT_KEY_3"),
        ))

        pool = KeyPool.from_config(database, clock, config, environ={"YT_KEY_2": "AIza-2"})

        assert [credential.id for credential in pool.credentials] == ["literal", "from-env"]
        assert pool.credentials[1].key == "AIza-2"

    def test_no_key_resolves(self, database, clock):
        """Test ConfigError when every configured key is missing"""
        config = YouTubeConfig(keys=(KeyConfig(id="unset", env="YT_KEY_3"),))

        with pytest.raises(ConfigError):
            KeyPool.from_config(database, clock, config, environ={})

    def test_secret_not_in_repr(self):
        """Test credentials can be logged safely"""
        assert "secret" not in repr(Credential("A", "secret"))
