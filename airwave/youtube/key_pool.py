"""
Quota-limited key pool for the YouTube Data API.

The API charges every call against a per-key daily quota (search: 100
units, videos.list: 1 unit, 10,000 units a day by default) that resets at
midnight Pacific time. The pool spreads calls across all configured keys
and stops handing out a key once it cannot afford the next call.

Selection rule:
    Among keys that are not flagged exhausted and whose usage plus the
    operation cost stays within the daily quota, pick the one with the
    lowest usage (ties go to the key declared first). No such key raises
    AllKeysExhaustedError.

Accounting:
    acquire() selects a key and charges the cost in the same transaction,
    so two threads can never both spend the last units of one key.
    record_outcome() then books the success or failure without charging
    again. A 403 from the provider flags the key exhausted for the rest
    of the quota day, whatever its numeric usage says.

Usage records are created lazily: a key with no record for today is a
fresh key. rollover() pre-creates today's records (the scheduler runs it
just after midnight in the quota timezone).

Usage:
    pool = KeyPool.from_config(database, clock, config.youtube)
    credential = pool.acquire(SEARCH_COST)
    try:
        response = call_api(credential.key)
    except HTTPError as e:
        pool.record_outcome(credential.id, success=False, error_code=e.status)
        raise
    pool.record_outcome(credential.id, success=True)
"""

import os
from datetime import datetime, timedelta
from typing import Mapping
from zoneinfo import ZoneInfo

from airwave.core.clock import Clock, to_iso
from airwave.core.config import YouTubeConfig
from airwave.core.database import Database
from airwave.core.exceptions import AllKeysExhaustedError, ConfigError
from airwave.core.logger import get_logger, log_quota_event
from airwave.youtube.models import Credential, KeyUsage


logger = get_logger(__name__)


# Quota units per operation (YouTube Data API v3 pricing)
QUOTA_COSTS = {
    "search": 100,
    "video_details": 1,
    "batch_video_details": 1,
}

DAILY_QUOTA_LIMIT = 10000

QUOTA_TIMEZONE = "America/Los_Angeles"

# HTTP status the provider returns when a key is over quota
QUOTA_EXCEEDED_STATUS = 403


class KeyPool:
    """
    Load-balances API calls across a fixed set of credentials.

    Attributes:
        credentials: Usable credentials in declaration order.
        daily_quota: Units each credential may spend per quota day.
    """

    def __init__(
        self,
        database: Database,
        clock: Clock,
        credentials: list[Credential],
        daily_quota: int = DAILY_QUOTA_LIMIT,
        quota_timezone: str = QUOTA_TIMEZONE
    ) -> None:
        self._database = database
        self._clock = clock
        self.credentials = list(credentials)
        self.daily_quota = daily_quota
        self._zone = ZoneInfo(quota_timezone)
        self._order = {credential.id: index for index, credential in enumerate(self.credentials)}
        self._exhaustion_logged_day: str | None = None

    @classmethod
    def from_config(
        cls,
        database: Database,
        clock: Clock,
        config: YouTubeConfig,
        environ: Mapping[str, str] | None = None
    ) -> "KeyPool":
        """
        Build the pool from the youtube config section.

        Env-based keys whose variable is unset are skipped with a warning.

        Raises:
            ConfigError: If keys are configured but none of them resolves.
        """
        environ = os.environ if environ is None else environ
        credentials = []

        for key_config in config.keys:
            if key_config.key is not None:
                credentials.append(Credential(id=key_config.id, key=key_config.key))
                continue

            value = environ.get(key_config.env or "", "").strip()
            if not value:
                logger.warning(
                    f"YouTube key '{key_config.id}' skipped: environment variable "
                    f"{key_config.env} is not set"
                )
                continue
            credentials.append(Credential(id=key_config.id, key=value))

        if config.keys and not credentials:
            raise ConfigError(
                "No YouTube API key could be resolved",
                details={"configured": [key.id for key in config.keys]}
            )

        if credentials:
            logger.debug(f"Key pool ready with {len(credentials)} key(s): {', '.join(c.id for c in credentials)}")

        return cls(database, clock, credentials, config.daily_quota, config.quota_timezone)

    # =========================================================================
    # Quota day
    # =========================================================================

    def quota_day(self, moment: datetime | None = None) -> str:
        """Calendar date (YYYY-MM-DD) of `moment` in the quota timezone."""
        moment = moment or self._clock.now()
        return moment.astimezone(self._zone).date().isoformat()

    # =========================================================================
    # Selection and accounting
    # =========================================================================

    def select_key(self, cost: int) -> Credential:
        """
        Choose the credential for an operation without charging it.

        Raises:
            AllKeysExhaustedError: If no credential can afford `cost`.
        """
        with self._database.read():
            return self._select(cost, self.quota_day())

    def acquire(self, cost: int) -> Credential:
        """
        Choose a credential and charge `cost` to it atomically.

        Raises:
            AllKeysExhaustedError: If no credential can afford `cost`.
        """
        day = self.quota_day()
        with self._database.transaction():
            credential = self._select(cost, day)
            self._apply(credential.id, day, cost, success=None, error_code=None)
        return credential

    def record_usage(
        self,
        key_id: str,
        cost: int,
        success: bool,
        error_code: int | None = None
    ) -> None:
        """
        Charge `cost` to a credential and book the call's outcome.

        Args:
            key_id: Credential that made the call.
            cost: Units to add to today's usage.
            success: Whether the call succeeded.
            error_code: HTTP status of a failed call; 403 flags the key exhausted.
        """
        with self._database.transaction():
            self._apply(key_id, self.quota_day(), cost, success, error_code)

    def record_outcome(self, key_id: str, success: bool, error_code: int | None = None) -> None:
        """Book the outcome of a call whose cost acquire() already charged."""
        self.record_usage(key_id, 0, success, error_code)

    def _select(self, cost: int, day: str) -> Credential:
        usage = self._usage_map(day)
        candidates = [
            credential for credential in self.credentials
            if usage[credential.id].can_afford(cost, self.daily_quota)
        ]

        if not candidates:
            if self._exhaustion_logged_day != day:
                self._exhaustion_logged_day = day
                log_quota_event(logger, "*", day, f"all {len(self.credentials)} key(s) exhausted")
            raise AllKeysExhaustedError(
                "All YouTube API keys have exhausted their daily quota",
                details={"cost": cost, "quota_day": day, "keys": list(self._order)},
                cost=cost
            )

        return min(
            candidates,
            key=lambda credential: (usage[credential.id].quota_used, self._order[credential.id])
        )

    def _apply(
        self,
        key_id: str,
        day: str,
        cost: int,
        success: bool | None,
        error_code: int | None
    ) -> None:
        now = to_iso(self._clock.now())
        exhausted = error_code == QUOTA_EXCEEDED_STATUS

        with self._database.transaction() as conn:
            conn.execute("""
                INSERT OR IGNORE INTO key_usage (key_id, quota_day, created_at, updated_at)
                VALUES (?, ?, ?, ?)
            """, (key_id, day, now, now))
            conn.execute("""
                UPDATE key_usage SET
                    quota_used = quota_used + ?,
                    success_count = success_count + ?,
                    failure_count = failure_count + ?,
                    exhausted = MAX(exhausted, ?),
                    last_error_code = COALESCE(?, last_error_code),
                    updated_at = ?
                WHERE key_id = ? AND quota_day = ?
            """, (
                cost,
                1 if success is True else 0,
                1 if success is False else 0,
                1 if exhausted else 0,
                error_code,
                now,
                key_id,
                day,
            ))
            used = conn.execute(
                "SELECT quota_used FROM key_usage WHERE key_id = ? AND quota_day = ?",
                (key_id, day)
            ).fetchone()[0]

        if exhausted:
            log_quota_event(logger, key_id, day, f"flagged exhausted ({error_code})", used=used)
        elif success is False:
            logger.debug(f"Key {key_id} call failed with {error_code} ({used} units used today)")

    # =========================================================================
    # Reporting and maintenance
    # =========================================================================

    def _usage_map(self, day: str) -> dict[str, KeyUsage]:
        """Usage of every credential on `day`; keys without a record are fresh."""
        with self._database.read() as conn:
            rows = conn.execute(
                "SELECT * FROM key_usage WHERE quota_day = ?", (day,)
            ).fetchall()
        stored = {row["key_id"]: KeyUsage.from_row(row) for row in rows}
        return {
            credential.id: stored.get(credential.id, KeyUsage(key_id=credential.id, quota_day=day))
            for credential in self.credentials
        }

    def usage(self, day: str | None = None) -> list[KeyUsage]:
        """Usage of every credential on `day` (default: today), in declaration order."""
        usage = self._usage_map(day or self.quota_day())
        return [usage[credential.id] for credential in self.credentials]

    def rollover(self, moment: datetime | None = None) -> int:
        """
        Create zero-usage records for the quota day containing `moment`.

        Idempotent: existing records are left alone.

        Returns:
            Number of records created.
        """
        day = self.quota_day(moment)
        now = to_iso(self._clock.now())
        created = 0
        with self._database.transaction() as conn:
            for credential in self.credentials:
                cursor = conn.execute("""
                    INSERT OR IGNORE INTO key_usage (key_id, quota_day, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                """, (credential.id, day, now, now))
                created += cursor.rowcount
        if created:
            logger.info(f"Quota day {day} started for {created} key(s)")
        return created

    def usage_summary(self) -> dict:
        """
        Today's usage across the pool.

        Returns:
            Dictionary with quota_day, daily_quota, total_used, total_remaining,
            utilization_percent, available_keys and a per-key list.
        """
        day = self.quota_day()
        keys = []
        for usage in self.usage(day):
            remaining = 0 if usage.exhausted else max(self.daily_quota - usage.quota_used, 0)
            keys.append({
                "key_id": usage.key_id,
                "quota_used": usage.quota_used,
                "remaining": remaining,
                "utilization_percent": round(100 * usage.quota_used / self.daily_quota, 1),
                "success_count": usage.success_count,
                "failure_count": usage.failure_count,
                "exhausted": usage.exhausted,
                "last_error_code": usage.last_error_code,
            })

        total_quota = self.daily_quota * len(keys)
        total_used = sum(key["quota_used"] for key in keys)
        return {
            "quota_day": day,
            "daily_quota": self.daily_quota,
            "total_used": total_used,
            "total_remaining": sum(key["remaining"] for key in keys),
            "utilization_percent": round(100 * total_used / total_quota, 1) if total_quota else 0.0,
            "available_keys": sum(1 for key in keys if key["remaining"] > 0),
            "keys": keys,
        }

    def cleanup_old_usage(self, days_to_keep: int = 30) -> int:
        """Delete usage records older than `days_to_keep` quota days."""
        cutoff_day = self.quota_day(self._clock.now() - timedelta(days=days_to_keep))
        with self._database.transaction() as conn:
            cursor = conn.execute("DELETE FROM key_usage WHERE quota_day < ?", (cutoff_day,))
        if cursor.rowcount:
            logger.info(f"Deleted {cursor.rowcount} key usage records before {cutoff_day}")
        return cursor.rowcount
