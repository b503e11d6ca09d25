"""Core domain entities for the music bounded context."""

from __future__ import annotations

import logging
import random
from collections import deque
from collections.abc import Iterator
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from continuous_playback.domain.music.value_objects import (
    OptionalTrackIdField,
    TrackId,
    TrackSource,
    parse_duration_ms,
)
from continuous_playback.domain.shared.datetime_utils import utcnow
from continuous_playback.domain.shared.exceptions import InvalidCommandError
from continuous_playback.domain.shared.messages import ErrorMessages, LogTemplates
from continuous_playback.domain.shared.types import (
    DurationMs,
    NonNegativeInt,
    TrackTitleStr,
    UtcDatetimeField,
)

logger = logging.getLogger(__name__)


class Track(BaseModel):
    """A playable item descriptor.

    Descriptive fields come from the resolver or recommendation generator.
    ``last_error``, ``fallback_index`` and ``prefetch_resolved`` are
    bookkeeping owned by the session and mutated in place.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: OptionalTrackIdField = None
    url: str
    upstream_id: str | None = None
    title: TrackTitleStr
    author: str = "Unknown Artist"
    source: TrackSource = TrackSource.UNKNOWN
    thumbnail: str | None = None

    duration: str | None = None
    duration_ms: DurationMs | None = None

    added_at: UtcDatetimeField | None = None
    played_at: UtcDatetimeField | None = None
    is_from_recommendation: bool = False
    skipped_duplicate: bool = False

    # Session bookkeeping
    last_error: str | None = None
    fallback_index: NonNegativeInt = 0
    prefetch_resolved: Any = Field(default=None, exclude=True)

    @property
    def key(self) -> str:
        """Key used for resolver cache operations and error counters."""
        return self.url

    def normalize_for_queue(self, added_at: datetime | None = None) -> Track:
        """Assign an id and a millisecond duration in place, then return self."""
        if self.id is None:
            self.id = TrackId.generate()
        if self.duration_ms is None:
            self.duration_ms = self._duration_from_string()
        self.added_at = added_at or utcnow()
        return self

    def _duration_from_string(self) -> int:
        if not self.duration:
            return 0
        try:
            return parse_duration_ms(self.duration)
        except ValueError:
            logger.debug(LogTemplates.QUEUE_INVALID_DURATION, self.title, self.duration)
            return 0


class PlaybackQueue:
    """Ordered tracks plus a cursor.

    ``current_index`` is always -1 or a valid index into ``tracks``.
    Every removal below the cursor decrements it.
    """

    def __init__(self, tracks: list[Track] | None = None) -> None:
        self._tracks: list[Track] = list(tracks or [])
        self._current_index: int = -1

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(self._tracks)

    def __getitem__(self, index: int) -> Track:
        return self._tracks[index]

    @property
    def tracks(self) -> list[Track]:
        return list(self._tracks)

    @property
    def current_index(self) -> int:
        return self._current_index

    @current_index.setter
    def current_index(self, index: int) -> None:
        if index != -1 and not 0 <= index < len(self._tracks):
            raise InvalidCommandError(
                "set_cursor",
                ErrorMessages.CURSOR_OUT_OF_RANGE.format(index=index, length=len(self._tracks)),
            )
        self._current_index = index

    @property
    def current(self) -> Track | None:
        if 0 <= self._current_index < len(self._tracks):
            return self._tracks[self._current_index]
        return None

    @property
    def is_empty(self) -> bool:
        return not self._tracks

    @property
    def upcoming(self) -> list[Track]:
        """Tracks strictly after the cursor."""
        return self._tracks[self._current_index + 1 :]

    def add(self, track: Track, position: int | None = None) -> int:
        """Insert a track and return its index.

        Inserting at or before the cursor shifts the cursor so the current
        track stays current.
        """
        if position is None or position >= len(self._tracks):
            self._tracks.append(track)
            return len(self._tracks) - 1
        if position < 0:
            raise InvalidCommandError("add", ErrorMessages.INVALID_INSERT_POSITION)
        self._tracks.insert(position, track)
        if self._current_index != -1 and position <= self._current_index:
            self._current_index += 1
        return position

    def remove_at(self, index: int) -> Track:
        """Remove and return the track at ``index``.

        Removing the current track leaves the cursor on the same index, which
        now holds the following track; if nothing follows, the cursor resets.
        """
        self._check_index(index, "remove")
        track = self._tracks.pop(index)
        if index < self._current_index:
            self._current_index -= 1
        elif index == self._current_index and self._current_index >= len(self._tracks):
            self._current_index = -1
        return track

    def move(self, from_index: int, to_index: int) -> Track:
        """Move a track, keeping the cursor on the same track."""
        self._check_index(from_index, "move")
        self._check_index(to_index, "move")
        track = self._tracks.pop(from_index)
        self._tracks.insert(to_index, track)

        cursor = self._current_index
        if cursor == from_index:
            self._current_index = to_index
        elif from_index < cursor <= to_index:
            self._current_index = cursor - 1
        elif to_index <= cursor < from_index:
            self._current_index = cursor + 1
        return track

    def jump(self, index: int) -> Track:
        self._check_index(index, "jump")
        self._current_index = index
        return self._tracks[index]

    def advance(self) -> Track | None:
        """Move the cursor forward; return the new current track or None past the end."""
        if self._current_index + 1 < len(self._tracks):
            self._current_index += 1
            return self._tracks[self._current_index]
        return None

    def rewind(self) -> Track | None:
        """Move the cursor back by one, floored at 0."""
        if not self._tracks:
            return None
        self._current_index = max(0, self._current_index - 1)
        return self._tracks[self._current_index]

    def wrap(self) -> Track | None:
        if not self._tracks:
            self._current_index = -1
            return None
        self._current_index = 0
        return self._tracks[0]

    def clear(self) -> int:
        count = len(self._tracks)
        self._tracks.clear()
        self._current_index = -1
        return count

    def shuffle_upcoming(self, rng: random.Random | None = None) -> int:
        """Fisher-Yates over the tail strictly after the cursor.

        Returns the number of tracks in the shuffled tail.
        """
        rng = rng or random.Random()
        start = self._current_index + 1
        tail = self._tracks[start:]
        for i in range(len(tail) - 1, 0, -1):
            j = rng.randint(0, i)
            tail[i], tail[j] = tail[j], tail[i]
        self._tracks[start:] = tail
        return len(tail)

    def index_of(self, track_id: TrackId) -> int:
        for index, track in enumerate(self._tracks):
            if track.id == track_id:
                return index
        return -1

    def contains_url(self, url: str) -> bool:
        return any(track.url == url for track in self._tracks)

    def remaining_duration_ms(self) -> int:
        """Sum of durations from the cursor (inclusive) to the end."""
        start = max(self._current_index, 0)
        return sum(track.duration_ms or 0 for track in self._tracks[start:])

    def replace(self, tracks: list[Track]) -> None:
        self._tracks = list(tracks)
        self._current_index = -1

    def _check_index(self, index: int, command: str) -> None:
        if not 0 <= index < len(self._tracks):
            raise InvalidCommandError(
                command,
                ErrorMessages.INDEX_OUT_OF_RANGE.format(index=index, length=len(self._tracks)),
            )


class PlayHistory:
    """Bounded ring of previously played tracks, oldest dropped first."""

    def __init__(self, maxlen: int = 50) -> None:
        self._entries: deque[Track] = deque(maxlen=maxlen)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Track]:
        return iter(self._entries)

    def append(self, track: Track) -> None:
        self._entries.append(track)

    @property
    def last(self) -> Track | None:
        return self._entries[-1] if self._entries else None

    def recent(self, count: int) -> list[Track]:
        """The most recent ``count`` entries, oldest first."""
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def clear(self) -> None:
        self._entries.clear()
