"""
airwave: one globally synchronized radio stream.

Every listener hears the same track at the same position. The engine
decides what plays next, keeps a bounded lookahead queue fed, prevents
near-term repeats and spends a finite pool of YouTube API quota; clients
derive their playback position from the on-air record alone.

Architecture:
    Advancement (engine/advancement.py)
        - Pops the head of the queue, or replays from history when empty
        - Archives the outgoing track and installs the new one atomically

    Queue health (engine/health.py)
        - Classifies queue depth (critical, low, full, stalled, healthy)
        - Requests discovery batches sized to the deficit

    Discovery (engine/discovery.py, catalog/, youtube/)
        - Discogs proposes candidates
        - Recently played and queued candidates are skipped
        - The match cache, then the quota-limited key pool, resolve videos

    Client sync (sync/)
        - Position = now - started_at
        - Load/seek/stop actions and the spoken intro handoff

Modules:
    core/       - Configuration, database, logging, exceptions, clock, roles
    engine/     - Queue, history, advancement, health, discovery, radio, scheduler
    youtube/    - Key pool, match cache, API client, matcher
    catalog/    - Discogs search
    sync/       - Client-side playback synchronization
    intro.py    - Spoken intro pre-generation
    cli.py      - Command-line interface

Usage:
    Command Line:
        airwave run                     # Start the scheduler and block
        airwave status                  # What is on air, queue health
        airwave skip --user admin       # Privileged skip
        airwave discover --count 20     # Run one discovery batch

    Python API:
        from airwave import Radio, RadioScheduler, load_config, setup_logging

        config = load_config()
        setup_logging(config.storage.directory)
        radio = Radio.from_config(config)
        RadioScheduler(radio, config.scheduler).start()

Configuration:
    Reads radio.yaml from the current directory (all sections optional):

        storage:
          directory: "./radio-data"

        youtube:
          keys:
            - id: key1
              env: YOUTUBE_API_KEY_1

        catalog:
          token_env: DISCOGS_API_TOKEN
          genres: ["Electronic"]

        roles:
          controllers: ["admin"]

Dependencies:
    - requests: YouTube Data API and Discogs HTTP calls
    - rapidfuzz: Fuzzy title matching
    - apscheduler: Periodic jobs
    - rich-click: CLI
    - rich: Tables
    - tqdm: Log output that coexists with progress bars
    - pyyaml: Configuration file parsing
    - python-dotenv: .env credentials
"""

__version__ = "0.1.0"
__author__ = "airwave"
__license__ = "MIT"

# The engine is imported first: intro and sync build on its models
from airwave.engine import (
    AdvanceResult,
    CurrentTrack,
    EnqueueResult,
    QueueEntry,
    Radio,
    RadioScheduler,
    Track,
)
from airwave.core import (
    AuthorizationError,
    Config,
    ConfigError,
    Database,
    DatabaseError,
    RadioError,
    get_logger,
    load_config,
    setup_logging,
)
from airwave.sync import IntroHandoff, PlaybackPosition, PlaybackSynchronizer

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "Database",
    "setup_logging",
    "get_logger",
    # Exceptions
    "RadioError",
    "ConfigError",
    "DatabaseError",
    "AuthorizationError",
    # Engine
    "Radio",
    "RadioScheduler",
    "Track",
    "CurrentTrack",
    "QueueEntry",
    "AdvanceResult",
    "EnqueueResult",
    # Sync
    "PlaybackPosition",
    "PlaybackSynchronizer",
    "IntroHandoff",
]
