"""Port interface for turning track descriptors into playable streams."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from continuous_playback.domain.shared.types import NonEmptyStr, PositiveInt

if TYPE_CHECKING:
    from ...domain.music.entities import Track


@runtime_checkable
class AudioStream(Protocol):
    """The minimum a resolved stream must expose before it is handed to a transport."""

    @property
    def readable(self) -> bool: ...

    @property
    def destroyed(self) -> bool: ...


@dataclass(frozen=True)
class ResolveOptions:
    """Hints passed along with a resolve request."""

    seek_seconds: int | None = None


class SourceResolver(ABC):
    """Interface for resolving tracks to byte streams and managing their caches."""

    @abstractmethod
    async def resolve(
        self, track: "Track", options: ResolveOptions | None = None
    ) -> AudioStream | None:
        """Open a stream for a track, optionally starting at an offset."""
        ...

    @abstractmethod
    async def search(self, query: NonEmptyStr, limit: PositiveInt = 5) -> list["Track"]:
        """Search for tracks matching a query."""
        ...

    @abstractmethod
    async def invalidate_cache(self, track_key: str) -> None:
        """Drop any cached stream or descriptor for the track."""
        ...

    @abstractmethod
    async def prewarm(self, track: "Track") -> Any:
        """Resolve ahead of time.

        Returns a resolved descriptor for deferred sources, None otherwise.
        """
        ...
