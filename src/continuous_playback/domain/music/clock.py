"""Derived playback position.

Position is never read from the transport. It is ``now - baseline`` while
running and a frozen snapshot while paused, so it stays continuous even when
the underlying stream is torn down and rebuilt by a seek or retry.
"""

from __future__ import annotations

from collections.abc import Callable

from continuous_playback.domain.shared.datetime_utils import monotonic_ms


class PositionClock:
    """Elapsed-position estimate for the current track, in milliseconds."""

    def __init__(self, now_ms: Callable[[], int] = monotonic_ms) -> None:
        self._now_ms = now_ms
        self._baseline_ms: int | None = None
        self._paused_position_ms: int | None = None

    @property
    def baseline_ms(self) -> int | None:
        return self._baseline_ms

    def start(self, offset_ms: int = 0) -> None:
        self._baseline_ms = self._now_ms() - offset_ms
        self._paused_position_ms = None

    def pause(self) -> int:
        """Freeze the current position and return it."""
        if self._paused_position_ms is None:
            self._paused_position_ms = self.elapsed_ms()
        return self._paused_position_ms

    def resume(self) -> int:
        """Re-derive the baseline from the frozen snapshot and return the position."""
        if self._paused_position_ms is None:
            return self.elapsed_ms()
        snapshot = self._paused_position_ms
        self._baseline_ms = self._now_ms() - snapshot
        self._paused_position_ms = None
        return snapshot

    def seek(self, target_ms: int) -> None:
        self._baseline_ms = self._now_ms() - target_ms
        if self._paused_position_ms is not None:
            self._paused_position_ms = target_ms

    def reset(self) -> None:
        self._baseline_ms = None
        self._paused_position_ms = None

    def elapsed_ms(self) -> int:
        if self._paused_position_ms is not None:
            return self._paused_position_ms
        if self._baseline_ms is None:
            return 0
        return max(0, self._now_ms() - self._baseline_ms)
