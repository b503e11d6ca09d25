"""
Music Bounded Context

Domain logic for tracks, the queue, playback position and failure handling.
"""

from continuous_playback.domain.music.clock import PositionClock
from continuous_playback.domain.music.entities import PlaybackQueue, PlayHistory, Track
from continuous_playback.domain.music.recovery import (
    FailureLedger,
    RecoveryAction,
    RecoveryContext,
    RecoveryDecision,
    RecoveryPolicy,
)
from continuous_playback.domain.music.repository import QueueSnapshot, SnapshotStore
from continuous_playback.domain.music.value_objects import (
    FailureKind,
    LoopMode,
    PlaybackStatus,
    StopReason,
    TrackFinishReason,
    TrackId,
    TrackSource,
    TransportEvent,
)

__all__ = [
    # Entities
    "Track",
    "PlaybackQueue",
    "PlayHistory",
    # Value Objects
    "TrackId",
    "TrackSource",
    "PlaybackStatus",
    "LoopMode",
    "StopReason",
    "TransportEvent",
    "FailureKind",
    "TrackFinishReason",
    # Position
    "PositionClock",
    # Recovery
    "FailureLedger",
    "RecoveryAction",
    "RecoveryContext",
    "RecoveryDecision",
    "RecoveryPolicy",
    # Repository
    "QueueSnapshot",
    "SnapshotStore",
]
