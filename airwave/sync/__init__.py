"""
Client synchronization for airwave.

Everything a listening client needs to follow the shared stream:
    - playback: position derived from the on-air record, load/seek/stop actions
    - intro_handoff: spoken intro to main media state machine

Usage:
    from airwave.sync import PlaybackSynchronizer, IntroHandoff

    sync = PlaybackSynchronizer()
    handoff = IntroHandoff.from_config(media, config.intro)
"""

from airwave.sync.intro_handoff import HandoffState, IntroHandoff, MediaController
from airwave.sync.playback import (
    PlaybackPosition,
    PlaybackSynchronizer,
    SyncAction,
    SyncActionKind,
)

__all__ = [
    "HandoffState",
    "IntroHandoff",
    "MediaController",
    "PlaybackPosition",
    "PlaybackSynchronizer",
    "SyncAction",
    "SyncActionKind",
]
