"""Date/time helpers.

All persisted and logged instants are timezone-aware UTC datetimes.
Monotonic millisecond readings for the position clock come from
`monotonic_ms`, which is unaffected by wall-clock adjustments.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Returns a timezone-aware datetime in UTC."""
    return datetime.now(UTC)


def monotonic_ms() -> int:
    """Milliseconds from a monotonic clock, for measuring elapsed playback."""
    return time.monotonic_ns() // 1_000_000
