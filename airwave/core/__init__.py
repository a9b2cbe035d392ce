"""
Core module for airwave.

This module provides the foundational components used throughout the engine:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - database: Thread-safe SQLite store with explicit transactions
    - logger: Logging system with console, file and report outputs
    - clock: Injectable time source
    - roles: Controller role resolution

Usage:
    from airwave.core import (
        Config, load_config,
        Database,
        setup_logging, get_logger,
        RadioError, ConfigError, DatabaseError
    )
"""

from airwave.core.clock import Clock, ManualClock, SystemClock
from airwave.core.config import (
    CacheConfig,
    CatalogConfig,
    Config,
    HistoryConfig,
    IntroConfig,
    KeyConfig,
    QueueConfig,
    RolesConfig,
    SchedulerConfig,
    StorageConfig,
    YouTubeConfig,
    load_config,
    parse_config,
)
from airwave.core.database import Database
from airwave.core.exceptions import (
    AllKeysExhaustedError,
    AuthorizationError,
    CatalogError,
    ConfigError,
    DatabaseError,
    RadioError,
    SpeechError,
    YouTubeError,
)
from airwave.core.logger import (
    get_logger,
    log_advance_stall,
    log_quota_event,
    setup_logging,
    shutdown_logging,
)
from airwave.core.roles import RoleProvider, StaticRoleProvider

__all__ = [
    # Clock
    "Clock",
    "ManualClock",
    "SystemClock",
    # Config
    "Config",
    "StorageConfig",
    "KeyConfig",
    "YouTubeConfig",
    "QueueConfig",
    "HistoryConfig",
    "CacheConfig",
    "CatalogConfig",
    "SchedulerConfig",
    "IntroConfig",
    "RolesConfig",
    "load_config",
    "parse_config",
    # Database
    "Database",
    # Exceptions
    "RadioError",
    "ConfigError",
    "DatabaseError",
    "AllKeysExhaustedError",
    "YouTubeError",
    "CatalogError",
    "SpeechError",
    "AuthorizationError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_advance_stall",
    "log_quota_event",
    "shutdown_logging",
    # Roles
    "RoleProvider",
    "StaticRoleProvider",
]
