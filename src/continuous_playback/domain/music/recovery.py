"""Tiered error-recovery decisions.

The policy is a pure function of the failure counters and a small context;
the session applies the returned ``RecoveryDecision`` in one place.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum

from continuous_playback.domain.music.value_objects import FailureKind


class RecoveryAction(Enum):
    SUPPRESS = "suppress"
    RETRY = "retry"
    ADVANCE = "advance"
    SKIP = "skip"
    RECOMMEND = "recommend"
    STOP = "stop"


@dataclass(frozen=True)
class RecoveryContext:
    """What the policy needs to know about the session at failure time."""

    track_key: str
    kind: FailureKind
    last_error: str | None = None
    has_next: bool = False
    can_recommend: bool = False
    seeking: bool = False


@dataclass(frozen=True)
class RecoveryDecision:
    action: RecoveryAction
    delay_ms: int = 0
    drop_current: bool = False
    systemic: bool = False
    invalidate_cache: bool = False
    reason: str = ""


class FailureLedger:
    """Session-global consecutive counter plus per-track counters."""

    def __init__(self) -> None:
        self.consecutive: int = 0
        self._per_track: Counter[str] = Counter()
        self._signals: Counter[tuple[str, str]] = Counter()

    def record(self, track_key: str, message: str | None, signals: tuple[str, ...] = ()) -> int:
        """Count one failure and return the per-track total."""
        self.consecutive += 1
        self._per_track[track_key] += 1
        if message:
            for signal in signals:
                if signal in message:
                    self._signals[(track_key, signal)] += 1
        return self._per_track[track_key]

    def track_errors(self, track_key: str) -> int:
        return self._per_track[track_key]

    def signal_count(self, track_key: str, signal: str) -> int:
        return self._signals[(track_key, signal)]

    def reset_consecutive(self) -> None:
        self.consecutive = 0

    def clear_track(self, track_key: str) -> None:
        self._per_track.pop(track_key, None)
        for key in [k for k in self._signals if k[0] == track_key]:
            del self._signals[key]

    def clear(self) -> None:
        self.consecutive = 0
        self._per_track.clear()
        self._signals.clear()


@dataclass(frozen=True)
class RecoveryPolicy:
    """Decision order:

    1. A failure during an active seek is suppressed.
    2. Both counters are incremented.
    3. Consecutive failures above ``systemic_error_ceiling`` escalate to
       advance / recommend / stop.
    4. A track at ``track_error_threshold`` failures, or carrying a terminal
       marker or a repeated permanent signal, is skipped with the same
       fallback order after ``skip_delay_ms``.
    5. Otherwise the same track is retried after a capped linear backoff.
    """

    systemic_error_ceiling: int = 8
    track_error_threshold: int = 5
    permanent_signal_threshold: int = 3
    terminal_markers: tuple[str, ...] = ("DRM protected",)
    permanent_signals: tuple[str, ...] = ("Status code: 403",)
    retry_backoff_step_ms: int = 1000
    retry_backoff_cap_ms: int = 3000
    systemic_delay_ms: int = 0
    skip_delay_ms: int = 500
    guard_timeout_ms: int = 15000

    def backoff_ms(self, track_errors: int) -> int:
        return min(self.retry_backoff_step_ms * max(track_errors, 1), self.retry_backoff_cap_ms)

    def is_terminal(self, ledger: FailureLedger, context: RecoveryContext) -> bool:
        message = context.last_error or ""
        if any(marker in message for marker in self.terminal_markers):
            return True
        return any(
            ledger.signal_count(context.track_key, signal) >= self.permanent_signal_threshold
            for signal in self.permanent_signals
        )

    def evaluate(self, ledger: FailureLedger, context: RecoveryContext) -> RecoveryDecision:
        if context.seeking:
            return RecoveryDecision(RecoveryAction.SUPPRESS, reason="seek in progress")

        track_errors = ledger.record(context.track_key, context.last_error, self.permanent_signals)

        if ledger.consecutive > self.systemic_error_ceiling:
            return RecoveryDecision(
                self._fallback(context, RecoveryAction.ADVANCE),
                delay_ms=self.systemic_delay_ms,
                systemic=True,
                reason=f"{ledger.consecutive} consecutive failures",
            )

        if track_errors >= self.track_error_threshold or self.is_terminal(ledger, context):
            return RecoveryDecision(
                self._fallback(context, RecoveryAction.SKIP),
                delay_ms=self.skip_delay_ms,
                drop_current=True,
                reason=f"{track_errors} failures on this track",
            )

        return RecoveryDecision(
            RecoveryAction.RETRY,
            delay_ms=self.backoff_ms(track_errors),
            invalidate_cache=True,
            reason=f"attempt {track_errors}",
        )

    @staticmethod
    def _fallback(context: RecoveryContext, preferred: RecoveryAction) -> RecoveryAction:
        if context.has_next:
            return preferred
        if context.can_recommend:
            return RecoveryAction.RECOMMEND
        return RecoveryAction.STOP
