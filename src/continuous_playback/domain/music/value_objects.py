"""Immutable value objects for the music bounded context."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Final

from pydantic import PlainSerializer, PlainValidator

from continuous_playback.domain.shared.messages import ErrorMessages


@dataclass(frozen=True)
class TrackId:
    """Session-local identifier assigned when a track is enqueued."""

    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError(ErrorMessages.EMPTY_TRACK_ID)

    def __str__(self) -> str:
        return self.value

    def __hash__(self) -> int:
        return hash(self.value)

    @classmethod
    def generate(cls) -> TrackId:
        return cls(uuid.uuid4().hex[:16])


# Serializes as plain string in JSON, stores as TrackId in the model.
OptionalTrackIdField = Annotated[
    TrackId | None,
    PlainValidator(lambda v: TrackId(v) if isinstance(v, str) else v),
    PlainSerializer(lambda v: v.value if v is not None else None, return_type=str | None),
]


class TrackSource(Enum):
    """Where a track descriptor came from."""

    YOUTUBE = "youtube"
    SPOTIFY = "spotify"
    SOUNDCLOUD = "soundcloud"
    DIRECT = "direct"
    UNKNOWN = "unknown"

    @property
    def is_deferred(self) -> bool:
        """Deferred sources only carry metadata; the playable stream is looked up later."""
        return self is TrackSource.SPOTIFY


class PlaybackStatus(Enum):
    """Session status with enforced transitions.

    SEEKING and TRANSITIONING double as re-entrancy guards: a command that
    would start another seek or advance is rejected while either is set.
    Any status may drop to IDLE (disconnect/cleanup/failure).
    """

    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    TRANSITIONING = "transitioning"
    SEEKING = "seeking"
    STOPPED = "stopped"

    def can_transition_to(self, target: PlaybackStatus) -> bool:
        """Check if transition to target status is valid."""
        if target is PlaybackStatus.IDLE:
            return True
        return target in _VALID_TRANSITIONS.get(self, frozenset())

    @property
    def is_active(self) -> bool:
        return self in {PlaybackStatus.PLAYING, PlaybackStatus.PAUSED}

    @property
    def is_busy(self) -> bool:
        return self in {
            PlaybackStatus.LOADING,
            PlaybackStatus.SEEKING,
            PlaybackStatus.TRANSITIONING,
        }


_VALID_TRANSITIONS: Final[dict[PlaybackStatus, frozenset[PlaybackStatus]]] = {
    PlaybackStatus.IDLE: frozenset(
        {
            PlaybackStatus.LOADING,
            PlaybackStatus.TRANSITIONING,
            PlaybackStatus.SEEKING,
            PlaybackStatus.STOPPED,
        }
    ),
    PlaybackStatus.LOADING: frozenset(
        {PlaybackStatus.PLAYING, PlaybackStatus.STOPPED, PlaybackStatus.TRANSITIONING}
    ),
    PlaybackStatus.PLAYING: frozenset(
        {
            PlaybackStatus.PAUSED,
            PlaybackStatus.TRANSITIONING,
            PlaybackStatus.SEEKING,
            PlaybackStatus.LOADING,
            PlaybackStatus.STOPPED,
        }
    ),
    PlaybackStatus.PAUSED: frozenset(
        {
            PlaybackStatus.PLAYING,
            PlaybackStatus.TRANSITIONING,
            PlaybackStatus.SEEKING,
            PlaybackStatus.LOADING,
            PlaybackStatus.STOPPED,
        }
    ),
    PlaybackStatus.TRANSITIONING: frozenset({PlaybackStatus.LOADING, PlaybackStatus.STOPPED}),
    PlaybackStatus.SEEKING: frozenset({PlaybackStatus.PLAYING, PlaybackStatus.STOPPED}),
    PlaybackStatus.STOPPED: frozenset({PlaybackStatus.LOADING, PlaybackStatus.TRANSITIONING}),
}


class LoopMode(Enum):
    """Loop mode settings for queue playback."""

    OFF = "off"
    TRACK = "track"  # Loop current track
    QUEUE = "queue"  # Loop entire queue

    def next_mode(self) -> LoopMode:
        """Cycle to next loop mode."""
        modes = list(LoopMode)
        current_index = modes.index(self)
        next_index = (current_index + 1) % len(modes)
        return modes[next_index]


class StopReason(Enum):
    """Tag set just before an intentional transport stop."""

    SKIP = "skip"
    SEEK = "seek"


class TransportEvent(Enum):
    """Inbound events emitted by a voice transport."""

    PLAYING = "playing"
    PAUSED = "paused"
    IDLE = "idle"
    BUFFERING = "buffering"
    ERROR = "error"


class FailureKind(Enum):
    """Classification of stream failures fed into error recovery."""

    RESOLUTION = "resolution"
    TRANSPORT = "transport"
    TOO_SHORT = "too_short"
    SYSTEMIC = "systemic"


class TrackFinishReason(Enum):
    """Reasons a track can finish playing."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


_DURATION_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\d+(?::\d{1,2}){0,2}$")


def parse_duration_ms(value: str) -> int:
    """Parse "s", "m:ss" or "h:mm:ss" into milliseconds.

    Raises:
        ValueError: If the string is not a colon-separated duration.
    """
    text = value.strip()
    if not _DURATION_PATTERN.match(text):
        raise ValueError(ErrorMessages.INVALID_DURATION.format(value=value))
    total = 0
    for part in text.split(":"):
        total = total * 60 + int(part)
    return total * 1000


def format_duration(duration_ms: int) -> str:
    """Format milliseconds as m:ss or h:mm:ss."""
    hours, remainder = divmod(max(0, duration_ms) // 1000, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"
