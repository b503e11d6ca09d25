"""Port interface for the audio transport a session drives."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...domain.music.value_objects import TransportEvent
    from .source_resolver import AudioStream

TransportListener = Callable[["TransportEvent", "str | None"], Awaitable[None]]
"""Receives each transport event and, for errors, the error message."""


class VoiceTransport(ABC):
    """Interface for one audio output endpoint.

    Implementations report state changes by awaiting the registered listener
    with ``playing``, ``paused``, ``idle``, ``buffering`` or ``error`` events.
    """

    @abstractmethod
    def set_listener(self, listener: TransportListener) -> None:
        """Register the callback that receives transport events."""
        ...

    @abstractmethod
    async def play(self, stream: "AudioStream", *, volume: float) -> None:
        """Start playing a stream at a gain between 0.0 and 1.0."""
        ...

    @abstractmethod
    async def stop(self, force_flush: bool = False) -> None:
        """Stop the current stream. Emits ``idle`` if something was playing."""
        ...

    @abstractmethod
    async def pause(self) -> bool:
        """Pause the current stream."""
        ...

    @abstractmethod
    async def unpause(self) -> bool:
        """Resume a paused stream."""
        ...

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        """Apply a gain between 0.0 and 1.0 to the live stream."""
        ...

    @property
    @abstractmethod
    def is_streaming(self) -> bool:
        """Whether a stream is currently attached (playing or paused)."""
        ...
