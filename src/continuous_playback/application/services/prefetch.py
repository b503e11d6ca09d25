"""Warms upcoming tracks shortly before the current one ends."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ...domain.shared.constants import TimerNames
from ...domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ...domain.music.entities import PlaybackQueue, Track
    from ...domain.music.value_objects import TrackId
    from ..interfaces.source_resolver import SourceResolver
    from .timers import TimerTable

logger = logging.getLogger(__name__)

MIN_DEPTH = 1
MAX_DEPTH = 5


class PrefetchScheduler:
    """Owns the single ``prefetch`` timer slot of a session.

    Prefetched urls are remembered so a track is warmed at most once until
    its cache is invalidated.
    """

    def __init__(
        self,
        resolver: SourceResolver,
        timers: TimerTable,
        *,
        enabled: bool = True,
        lead_ms: int = 30_000,
        depth: int = 2,
    ) -> None:
        self._resolver = resolver
        self._timers = timers
        self._enabled = enabled
        self._lead_ms = lead_ms
        self._depth = max(MIN_DEPTH, min(depth, MAX_DEPTH))
        self._prefetched: set[str] = set()

    @property
    def depth(self) -> int:
        return self._depth

    def is_prefetched(self, url: str) -> bool:
        return url in self._prefetched

    def delay_for(self, duration_ms: int | None, elapsed_ms: int) -> int:
        """Milliseconds until the prefetch should fire, 0 if already due."""
        return max(0, (duration_ms or 0) - elapsed_ms - self._lead_ms)

    def arm(self, queue: PlaybackQueue, elapsed_ms: int = 0) -> int | None:
        """(Re)arm the timer against the current track. Returns the delay used."""
        self.cancel()
        current = queue.current
        if not self._enabled or current is None:
            return None

        delay_ms = self.delay_for(current.duration_ms, elapsed_ms)
        armed_for = current.id

        async def fire() -> None:
            await self._on_timer(queue, armed_for)

        self._timers.schedule(TimerNames.PREFETCH, delay_ms, fire)
        logger.debug(LogTemplates.PREFETCH_ARMED, delay_ms, self._depth)
        return delay_ms

    def cancel(self) -> None:
        self._timers.cancel(TimerNames.PREFETCH)

    def forget(self, url: str) -> None:
        self._prefetched.discard(url)

    def reset(self) -> None:
        self.cancel()
        self._timers.cancel_all(TimerNames.WARM_PREFIX)
        self._prefetched.clear()

    async def run(self, queue: PlaybackQueue) -> list[Track]:
        """Warm up to ``depth`` tracks after the cursor; failures are skipped."""
        warmed: list[Track] = []
        for track in queue.upcoming[: self._depth]:
            if track.url in self._prefetched:
                continue
            if await self.warm(track):
                warmed.append(track)
        return warmed

    async def warm(self, track: Track) -> bool:
        try:
            descriptor = await self._resolver.prewarm(track)
        except Exception as e:
            logger.warning(LogTemplates.PREFETCH_FAILED, track.title, e)
            return False

        if track.source.is_deferred and descriptor is not None:
            track.prefetch_resolved = descriptor
        self._prefetched.add(track.url)
        logger.debug(LogTemplates.PREFETCH_DONE, track.title)
        return True

    def schedule_warm(self, track: Track) -> None:
        """Resolve a deferred-source track in the background."""

        async def warm() -> None:
            await self.warm(track)

        self._timers.schedule(f"{TimerNames.WARM_PREFIX}{track.url}", 0, warm)

    async def _on_timer(self, queue: PlaybackQueue, armed_for: TrackId | None) -> None:
        current = queue.current
        if current is None or current.id != armed_for:
            logger.debug(LogTemplates.PREFETCH_STALE)
            return
        await self.run(queue)
