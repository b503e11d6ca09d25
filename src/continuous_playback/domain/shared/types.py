"""Reusable Pydantic Annotated types for domain-wide validation.

Every constrained type used across the package is defined here once,
so models can simply annotate their fields::

    from continuous_playback.domain.shared.types import NonEmptyStr, VolumePercent

    class MyModel(BaseModel):
        name: NonEmptyStr
        volume: VolumePercent
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator, Field

from continuous_playback.domain.shared.messages import ErrorMessages

# ── Numeric constraints ─────────────────────────────────────────────

NonNegativeInt = Annotated[int, Field(ge=0)]
"""Integer >= 0."""

PositiveInt = Annotated[int, Field(gt=0)]
"""Integer > 0."""

VolumePercent = Annotated[int, Field(ge=0, le=100)]
"""Playback volume as a percentage: 0 … 100."""


# ── String constraints ──────────────────────────────────────────────

NonEmptyStr = Annotated[str, Field(min_length=1)]
"""String with at least one character."""

TrackTitleStr = Annotated[str, Field(min_length=1, max_length=500)]
"""Track title: 1-500 characters."""


# ── Domain-specific numeric constraints ─────────────────────────────

DurationMs = Annotated[int, Field(ge=0, le=86_400_000)]
"""Track duration in milliseconds: 0 … 24 hours."""

QueueIndexInt = Annotated[int, Field(ge=-1)]
"""Queue cursor: -1 when nothing is current, otherwise a zero-based index."""


# ── Datetime constraints ────────────────────────────────────────────

def _ensure_utc(v: datetime) -> datetime:
    """Validate that a datetime is timezone-aware and normalise to UTC."""
    if v.tzinfo is None:
        raise ValueError(ErrorMessages.TIMEZONE_REQUIRED_UTC_DATETIME)
    return v.astimezone(UTC)


UtcDatetimeField = Annotated[datetime, AfterValidator(_ensure_utc)]
"""Timezone-aware datetime (ISO strings accepted), normalised to UTC."""
