"""Port interface for the recommendation generator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ...domain.music.entities import Track


@dataclass(frozen=True)
class RecommendationContext:
    """Session state a generator may use to avoid repeats."""

    session_key: str
    queued: tuple["Track", ...] = field(default_factory=tuple)


class RecommendationGenerator(ABC):
    """Interface for producing the next track to play from listening history."""

    @abstractmethod
    async def next_recommendation(
        self,
        seed: "Track",
        history: list["Track"],
        context: RecommendationContext,
    ) -> "Track | None":
        """Return one candidate track, or None when nothing suitable is found."""
        ...
