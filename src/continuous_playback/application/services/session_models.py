"""DTOs returned by the playback session."""

from __future__ import annotations

from pydantic import BaseModel

from ...domain.music.entities import Track
from ...domain.music.value_objects import LoopMode, PlaybackStatus
from ...domain.shared.types import NonNegativeInt, QueueIndexInt, VolumePercent


class EnqueueResult(BaseModel):
    success: bool
    track: Track | None = None
    position: NonNegativeInt = 0
    queue_length: NonNegativeInt = 0
    message: str = ""
    should_start: bool = False
    skipped_duplicate: bool = False


class QueueInfo(BaseModel):
    """Read-only snapshot of a session for presentation layers."""

    queue: list[Track]
    current_track: Track | None
    current_index: QueueIndexInt
    status: PlaybackStatus
    is_playing: bool
    is_paused: bool
    volume: VolumePercent
    loop_mode: LoopMode
    shuffle_enabled: bool
    auto_continuation: bool
    queue_length: NonNegativeInt
    remaining_duration_ms: NonNegativeInt
    position_ms: NonNegativeInt

    @property
    def upcoming_tracks(self) -> list[Track]:
        return self.queue[self.current_index + 1 :]
