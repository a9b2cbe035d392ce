"""
Configuration management for airwave.

This module handles loading, validating, and providing access to the
engine configuration stored in radio.yaml.

The configuration file contains:
    - Storage directory for the SQLite database and log files
    - YouTube Data API credentials and quota accounting parameters
    - Queue health thresholds (min / target / max / buffer / emergency batch)
    - History fallback and dedup window parameters
    - Match cache retention
    - Catalog search (Discogs) settings
    - Scheduler intervals
    - Spoken intro settings
    - Controller user ids (who may skip and clear the queue)

Every section is optional; missing sections and fields take the defaults
documented on each dataclass.

Configuration File Location:
    radio.yaml in the current working directory, unless an explicit
    path is passed (the CLI exposes --config).

Example radio.yaml:
    storage:
      directory: "~/.airwave"

    youtube:
      keys:
        - id: key1
          env: YOUTUBE_API_KEY
        - id: key2
          env: YOUTUBE_API_KEY_2
      daily_quota: 10000

    queue:
      min_size: 3
      target_size: 10
      max_size: 20

    roles:
      controllers: ["admin-user-id"]
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from airwave.core.exceptions import ConfigError


# Default configuration file name (in current working directory)
CONFIG_FILENAME = "radio.yaml"

DATABASE_FILENAME = "radio.db"


@dataclass(frozen=True)
class StorageConfig:
    """
    Storage location.

    Attributes:
        directory: Absolute path holding radio.db and the logs/ subdirectory.
                   Path expansion is performed (~ is expanded to home directory).
    """
    directory: Path

    @property
    def database_path(self) -> Path:
        return self.directory / DATABASE_FILENAME


@dataclass(frozen=True)
class KeyConfig:
    """
    One YouTube Data API credential.

    Exactly one of `key` (literal) or `env` (environment variable name)
    is set. Env-based credentials are resolved when the key pool is built,
    so a missing variable only disables that one credential.
    """
    id: str
    key: str | None = None
    env: str | None = None


@dataclass(frozen=True)
class YouTubeConfig:
    """
    YouTube Data API v3 settings.

    Attributes:
        keys: Configured credentials, in declaration order.
        daily_quota: Quota units each credential may spend per quota day. Default: 10000.
        quota_timezone: IANA zone in which the provider resets quotas.
                        Default: America/Los_Angeles (Pacific time).
        search_cost: Units charged for one search call. Default: 100.
        details_cost: Units charged for one videos.list call. Default: 1.
        min_duration_seconds: Shortest acceptable video. Default: 60.
        max_duration_seconds: Longest acceptable video. Default: 1200.
        request_timeout: HTTP timeout in seconds. Default: 10.
    """
    keys: tuple[KeyConfig, ...] = ()
    daily_quota: int = 10000
    quota_timezone: str = "America/Los_Angeles"
    search_cost: int = 100
    details_cost: int = 1
    min_duration_seconds: int = 60
    max_duration_seconds: int = 1200
    request_timeout: float = 10.0


@dataclass(frozen=True)
class QueueConfig:
    """
    Queue health thresholds.

    Attributes:
        min_size: Below this depth a low queue is reported as urgent. Default: 3.
        target_size: Depth the controller tops the queue up to. Default: 10.
        max_size: Depth at which discovery is refused. Default: 20.
        buffer: Extra entries requested on top of the deficit. Default: 2.
        emergency_batch: Discovery size when the queue is empty. Default: 50.
        default_duration_seconds: Duration assumed when a track has none. Default: 180.
    """
    min_size: int = 3
    target_size: int = 10
    max_size: int = 20
    buffer: int = 2
    emergency_batch: int = 50
    default_duration_seconds: int = 180


@dataclass(frozen=True)
class HistoryConfig:
    """
    History fallback, dedup and retention parameters.

    Attributes:
        freshness_hours: Plays older than this are preferred for replay. Default: 24.
        exclude_recent: Most recent plays never replayed by the second tier. Default: 50.
        fallback_pool_size: How far back the second tier looks. Default: 500.
        dedup_window: Enqueue rejects anything among the last N plays. Default: 100.
        dedup_hours: Discovery skips anything played within this window. Default: 24.
        retention_days: History older than this is pruned by maintenance. Default: 30.
    """
    freshness_hours: int = 24
    exclude_recent: int = 50
    fallback_pool_size: int = 500
    dedup_window: int = 100
    dedup_hours: int = 24
    retention_days: int = 30


@dataclass(frozen=True)
class CacheConfig:
    """
    Match cache retention.

    Attributes:
        retention_days: Entries neither created nor used within this many days
                        are deleted by maintenance. Default: 90.
        usage_retention_days: Key usage records kept for reporting. Default: 30.
    """
    retention_days: int = 90
    usage_retention_days: int = 30


@dataclass(frozen=True)
class CatalogConfig:
    """
    Catalog search provider (Discogs) settings.

    Attributes:
        token_env: Environment variable holding the Discogs token.
        genres: Genre filters; the first is primary, the rest are OR-ed.
        styles: Optional style filters.
        year_range: Inclusive (min, max) release years, or None.
        per_page: Results requested per search. Default: 50.
        random_page: Pick a random results page 1-10 for variety. Default: True.
        user_agent: User-Agent header sent to Discogs.
    """
    token_env: str = "DISCOGS_API_TOKEN"
    genres: tuple[str, ...] = ()
    styles: tuple[str, ...] = ()
    year_range: tuple[int, int] | None = None
    per_page: int = 50
    random_page: bool = True
    user_agent: str = "airwave/0.1"


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Periodic job settings.

    Attributes:
        expiration_interval_seconds: Expiration checker period. Default: 30.
        health_interval_seconds: Queue health check period. Default: 60.
        intro_interval_minutes: Intro pre-generation period. Default: 10.
        maintenance_hour: Hour (UTC) of the daily cleanup. Default: 3.
        discovery_hour: Hour (UTC) of the daily forced discovery. Default: 6.
        discovery_count: Size of the daily forced discovery. Default: 80.
        stall_threshold: Consecutive failed advances before the stream is
                         reported stuck instead of recovering. Default: 3.
        stall_backoff_seconds: First retry delay after a failed advance. Default: 15.
        stall_backoff_max_seconds: Retry delay cap. Default: 300.
    """
    expiration_interval_seconds: int = 30
    health_interval_seconds: int = 60
    intro_interval_minutes: int = 10
    maintenance_hour: int = 3
    discovery_hour: int = 6
    discovery_count: int = 80
    stall_threshold: int = 3
    stall_backoff_seconds: int = 15
    stall_backoff_max_seconds: int = 300


@dataclass(frozen=True)
class IntroConfig:
    """
    Spoken intro settings.

    Attributes:
        enabled: Whether queued tracks get intros pre-generated. Default: False.
        stall_timeout_seconds: Client gives up on a silent intro after this. Default: 8.
        batch_size: Queue entries prepared per run. Default: 5.
    """
    enabled: bool = False
    stall_timeout_seconds: float = 8.0
    batch_size: int = 5


@dataclass(frozen=True)
class RolesConfig:
    """
    Static role assignment.

    Attributes:
        controllers: User ids allowed to skip and clear the queue.
    """
    controllers: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Config:
    """
    Complete engine configuration.

    Created by load_config() and treated as immutable (frozen dataclass).

    Example:
        config = load_config()
        print(f"Database: {config.storage.database_path}")
        print(f"Queue target: {config.queue.target_size}")
    """
    storage: StorageConfig
    youtube: YouTubeConfig = field(default_factory=YouTubeConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    intro: IntroConfig = field(default_factory=IntroConfig)
    roles: RolesConfig = field(default_factory=RolesConfig)


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from radio.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for radio.yaml in current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the config file is not found, has invalid YAML syntax,
                     or contains invalid values.

    Thread Safety:
        This function is NOT thread-safe. It should be called once at
        application startup, before the scheduler starts.
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file is a valid all-defaults configuration
    if raw_config is None:
        raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return parse_config(raw_config)


def parse_config(raw_config: dict[str, Any]) -> Config:
    """
    Build a Config from an already-parsed dictionary.

    Split out of load_config() so tests and embedding applications can
    configure the engine without a file.

    Raises:
        ConfigError: If any section is not a dictionary or holds invalid values.
    """
    for section, value in raw_config.items():
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )

    queue_config = _parse_queue_config(raw_config.get("queue"))

    return Config(
        storage=_parse_storage_config(raw_config.get("storage")),
        youtube=_parse_youtube_config(raw_config.get("youtube")),
        queue=queue_config,
        history=_parse_history_config(raw_config.get("history")),
        cache=_parse_cache_config(raw_config.get("cache")),
        catalog=_parse_catalog_config(raw_config.get("catalog")),
        scheduler=_parse_scheduler_config(raw_config.get("scheduler")),
        intro=_parse_intro_config(raw_config.get("intro")),
        roles=_parse_roles_config(raw_config.get("roles")),
    )


def _get_int(section: dict[str, Any], name: str, prefix: str, default: int, minimum: int = 0) -> int:
    """
    Read an integer field, applying the default when absent.

    Raises:
        ConfigError: If the value is not an integer or is below minimum.
    """
    value = section.get(name)
    if value is None:
        return default
    # bool is a subclass of int, and `true` is never a valid count
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(
            f"'{prefix}.{name}' must be an integer >= {minimum}",
            details={"field": f"{prefix}.{name}", "value": value}
        )
    return value


def _get_str(section: dict[str, Any], name: str, prefix: str, default: str) -> str:
    value = section.get(name)
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"'{prefix}.{name}' must be a non-empty string",
            details={"field": f"{prefix}.{name}"}
        )
    return value.strip()


def _get_str_list(section: dict[str, Any], name: str, prefix: str) -> tuple[str, ...]:
    value = section.get(name)
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(
            f"'{prefix}.{name}' must be a list of strings",
            details={"field": f"{prefix}.{name}"}
        )
    return tuple(item.strip() for item in value if item.strip())


def _parse_storage_config(storage_section: dict[str, Any] | None) -> StorageConfig:
    """
    Parse the storage section.

    Expands ~ and makes the directory absolute. Does NOT create the
    directory (that happens when the CLI initializes logging and storage).
    """
    section = storage_section or {}
    directory = _get_str(section, "directory", "storage", "./radio-data")
    return StorageConfig(directory=Path(directory).expanduser().resolve())


def _parse_youtube_config(youtube_section: dict[str, Any] | None) -> YouTubeConfig:
    """
    Parse the youtube section.

    Raises:
        ConfigError: If a key entry is malformed, ids are duplicated, the
                     quota timezone is unknown, or the duration bounds are inverted.
    """
    section = youtube_section or {}

    raw_keys = section.get("keys") or []
    if not isinstance(raw_keys, list):
        raise ConfigError(
            "'youtube.keys' must be a list",
            details={"field": "youtube.keys"}
        )

    keys = []
    seen_ids = set()
    for index, raw_key in enumerate(raw_keys):
        if not isinstance(raw_key, dict):
            raise ConfigError(
                f"'youtube.keys[{index}]' must be a dictionary with 'id' and 'key' or 'env'",
                details={"field": f"youtube.keys[{index}]"}
            )
        key_id = _get_str(raw_key, "id", f"youtube.keys[{index}]", f"key{index + 1}")
        literal = raw_key.get("key")
        env = raw_key.get("env")
        if (literal is None) == (env is None):
            raise ConfigError(
                f"'youtube.keys[{index}]' needs exactly one of 'key' or 'env'",
                details={"field": f"youtube.keys[{index}]", "id": key_id}
            )
        if key_id in seen_ids:
            raise ConfigError(
                f"Duplicate YouTube key id: '{key_id}'",
                details={"field": "youtube.keys", "id": key_id}
            )
        seen_ids.add(key_id)
        keys.append(KeyConfig(
            id=key_id,
            key=_get_str(raw_key, "key", f"youtube.keys[{index}]", "") or None,
            env=_get_str(raw_key, "env", f"youtube.keys[{index}]", "") or None,
        ))

    quota_timezone = _get_str(section, "quota_timezone", "youtube", "America/Los_Angeles")
    try:
        ZoneInfo(quota_timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(
            f"Unknown timezone for 'youtube.quota_timezone': {quota_timezone}",
            details={"field": "youtube.quota_timezone", "value": quota_timezone}
        ) from e

    min_duration = _get_int(section, "min_duration_seconds", "youtube", 60, minimum=1)
    max_duration = _get_int(section, "max_duration_seconds", "youtube", 1200, minimum=1)
    if min_duration > max_duration:
        raise ConfigError(
            "'youtube.min_duration_seconds' must not exceed 'youtube.max_duration_seconds'",
            details={"min": min_duration, "max": max_duration}
        )

    timeout = section.get("request_timeout", 10.0)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(
            "'youtube.request_timeout' must be a positive number",
            details={"field": "youtube.request_timeout", "value": timeout}
        )

    return YouTubeConfig(
        keys=tuple(keys),
        daily_quota=_get_int(section, "daily_quota", "youtube", 10000, minimum=1),
        quota_timezone=quota_timezone,
        search_cost=_get_int(section, "search_cost", "youtube", 100, minimum=0),
        details_cost=_get_int(section, "details_cost", "youtube", 1, minimum=0),
        min_duration_seconds=min_duration,
        max_duration_seconds=max_duration,
        request_timeout=float(timeout),
    )


def _parse_queue_config(queue_section: dict[str, Any] | None) -> QueueConfig:
    """
    Parse the queue section.

    Raises:
        ConfigError: If the thresholds are not ordered min <= target <= max.
    """
    section = queue_section or {}
    config = QueueConfig(
        min_size=_get_int(section, "min_size", "queue", 3, minimum=0),
        target_size=_get_int(section, "target_size", "queue", 10, minimum=1),
        max_size=_get_int(section, "max_size", "queue", 20, minimum=1),
        buffer=_get_int(section, "buffer", "queue", 2, minimum=0),
        emergency_batch=_get_int(section, "emergency_batch", "queue", 50, minimum=1),
        default_duration_seconds=_get_int(section, "default_duration_seconds", "queue", 180, minimum=1),
    )
    if not config.min_size <= config.target_size <= config.max_size:
        raise ConfigError(
            "Queue thresholds must satisfy min_size <= target_size <= max_size",
            details={
                "min_size": config.min_size,
                "target_size": config.target_size,
                "max_size": config.max_size,
            }
        )
    return config


def _parse_history_config(history_section: dict[str, Any] | None) -> HistoryConfig:
    section = history_section or {}
    return HistoryConfig(
        freshness_hours=_get_int(section, "freshness_hours", "history", 24, minimum=0),
        exclude_recent=_get_int(section, "exclude_recent", "history", 50, minimum=0),
        fallback_pool_size=_get_int(section, "fallback_pool_size", "history", 500, minimum=1),
        dedup_window=_get_int(section, "dedup_window", "history", 100, minimum=0),
        dedup_hours=_get_int(section, "dedup_hours", "history", 24, minimum=0),
        retention_days=_get_int(section, "retention_days", "history", 30, minimum=1),
    )


def _parse_cache_config(cache_section: dict[str, Any] | None) -> CacheConfig:
    section = cache_section or {}
    return CacheConfig(
        retention_days=_get_int(section, "retention_days", "cache", 90, minimum=1),
        usage_retention_days=_get_int(section, "usage_retention_days", "cache", 30, minimum=1),
    )


def _parse_catalog_config(catalog_section: dict[str, Any] | None) -> CatalogConfig:
    """
    Parse the catalog section.

    Raises:
        ConfigError: If year_range is not a [min, max] pair of integers.
    """
    section = catalog_section or {}

    year_range = None
    raw_range = section.get("year_range")
    if raw_range is not None:
        if (
            not isinstance(raw_range, list)
            or len(raw_range) != 2
            or not all(isinstance(year, int) and not isinstance(year, bool) for year in raw_range)
            or raw_range[0] > raw_range[1]
        ):
            raise ConfigError(
                "'catalog.year_range' must be a [min_year, max_year] pair",
                details={"field": "catalog.year_range", "value": raw_range}
            )
        year_range = (raw_range[0], raw_range[1])

    random_page = section.get("random_page", True)
    if not isinstance(random_page, bool):
        raise ConfigError(
            "'catalog.random_page' must be true or false",
            details={"field": "catalog.random_page"}
        )

    return CatalogConfig(
        token_env=_get_str(section, "token_env", "catalog", "DISCOGS_API_TOKEN"),
        genres=_get_str_list(section, "genres", "catalog"),
        styles=_get_str_list(section, "styles", "catalog"),
        year_range=year_range,
        per_page=_get_int(section, "per_page", "catalog", 50, minimum=1),
        random_page=random_page,
        user_agent=_get_str(section, "user_agent", "catalog", "airwave/0.1"),
    )


def _parse_scheduler_config(scheduler_section: dict[str, Any] | None) -> SchedulerConfig:
    """
    Parse the scheduler section.

    Raises:
        ConfigError: If an hour falls outside 0-23.
    """
    section = scheduler_section or {}
    config = SchedulerConfig(
        expiration_interval_seconds=_get_int(section, "expiration_interval_seconds", "scheduler", 30, minimum=1),
        health_interval_seconds=_get_int(section, "health_interval_seconds", "scheduler", 60, minimum=1),
        intro_interval_minutes=_get_int(section, "intro_interval_minutes", "scheduler", 10, minimum=1),
        maintenance_hour=_get_int(section, "maintenance_hour", "scheduler", 3, minimum=0),
        discovery_hour=_get_int(section, "discovery_hour", "scheduler", 6, minimum=0),
        discovery_count=_get_int(section, "discovery_count", "scheduler", 80, minimum=1),
        stall_threshold=_get_int(section, "stall_threshold", "scheduler", 3, minimum=1),
        stall_backoff_seconds=_get_int(section, "stall_backoff_seconds", "scheduler", 15, minimum=1),
        stall_backoff_max_seconds=_get_int(section, "stall_backoff_max_seconds", "scheduler", 300, minimum=1),
    )
    for name in ("maintenance_hour", "discovery_hour"):
        if getattr(config, name) > 23:
            raise ConfigError(
                f"'scheduler.{name}' must be between 0 and 23",
                details={"field": f"scheduler.{name}", "value": getattr(config, name)}
            )
    return config


def _parse_intro_config(intro_section: dict[str, Any] | None) -> IntroConfig:
    section = intro_section or {}

    enabled = section.get("enabled", False)
    if not isinstance(enabled, bool):
        raise ConfigError(
            "'intro.enabled' must be true or false",
            details={"field": "intro.enabled"}
        )

    timeout = section.get("stall_timeout_seconds", 8.0)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(
            "'intro.stall_timeout_seconds' must be a positive number",
            details={"field": "intro.stall_timeout_seconds", "value": timeout}
        )

    return IntroConfig(
        enabled=enabled,
        stall_timeout_seconds=float(timeout),
        batch_size=_get_int(section, "batch_size", "intro", 5, minimum=1),
    )


def _parse_roles_config(roles_section: dict[str, Any] | None) -> RolesConfig:
    section = roles_section or {}
    return RolesConfig(controllers=frozenset(_get_str_list(section, "controllers", "roles")))
