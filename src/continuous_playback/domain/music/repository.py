"""
Music Domain Repository Interfaces

The persisted shape of a session's queue and the abstract store that keeps it.
Implementations live in the infrastructure layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field

from continuous_playback.domain.music.entities import Track
from continuous_playback.domain.music.value_objects import LoopMode
from continuous_playback.domain.shared.datetime_utils import utcnow
from continuous_playback.domain.shared.types import QueueIndexInt, UtcDatetimeField, VolumePercent


class QueueSnapshot(BaseModel):
    """Everything needed to rebuild a session's queue after a restart."""

    model_config = ConfigDict(frozen=True)

    queue: list[Track] = Field(default_factory=list)
    current_index: QueueIndexInt = -1
    loop_mode: LoopMode = LoopMode.OFF
    volume: VolumePercent = 50
    auto_continuation: bool = True
    saved_at: UtcDatetimeField = Field(default_factory=utcnow)

    def signature(self) -> str:
        """Content key used to skip redundant saves; ignores ``saved_at``."""
        return self.model_dump_json(
            include={"current_index", "loop_mode", "volume", "auto_continuation"}
        ) + "|" + "|".join(f"{t.url}#{t.source.value}" for t in self.queue)


class SnapshotStore(ABC):
    """Abstract store for queue snapshots, keyed by session.

    Implementations must be safe to share between concurrently running sessions.
    """

    @abstractmethod
    async def save(self, session_key: str, snapshot: QueueSnapshot) -> None:
        """Persist a snapshot, replacing any previous one for the session."""
        ...

    @abstractmethod
    async def load(self, session_key: str) -> QueueSnapshot | None:
        """Return the stored snapshot, or None if nothing was saved."""
        ...

    @abstractmethod
    async def clear(self, session_key: str) -> bool:
        """Remove a session's snapshot.

        Returns:
            True if a snapshot existed and was removed.
        """
        ...
