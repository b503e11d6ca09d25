"""Pure-function utilities for duplicate detection.

A fingerprint is ``title::author::upstream_id::url`` with title and author
normalized so that cosmetic variants ("(Official Video)", "[HD]", casing,
punctuation) of the same song collide.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Final

from continuous_playback.domain.music.entities import Track

# ── Precompiled patterns ────────────────────────────────────────────────

_BRACKETED_SEGMENT: Final[re.Pattern[str]] = re.compile(r"[\[\(\{][^\]\)\}]*[\]\)\}]")
_NON_ALPHANUMERIC: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]+")
_URL_SCHEME: Final[re.Pattern[str]] = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)

NOISE_TOKENS: Final[frozenset[str]] = frozenset({
    "official",
    "video",
    "audio",
    "lyrics",
    "lyric",
    "remastered",
    "remaster",
    "hd",
    "hq",
    "4k",
    "mv",
})


def normalize_text(value: str | None) -> str:
    """Lower-case, drop bracketed segments and noise words, collapse punctuation."""
    if not value:
        return ""
    text = _BRACKETED_SEGMENT.sub(" ", value.lower())
    text = _NON_ALPHANUMERIC.sub(" ", text)
    return " ".join(word for word in text.split() if word not in NOISE_TOKENS)


def strip_scheme(url: str | None) -> str:
    if not url:
        return ""
    return _URL_SCHEME.sub("", url.strip())


def title_author_key(track: Track) -> str:
    return f"{normalize_text(track.title)}::{normalize_text(track.author)}"


def fingerprint(track: Track) -> str:
    """Build the full duplicate-detection key for a track."""
    return "::".join(
        (
            normalize_text(track.title),
            normalize_text(track.author),
            track.upstream_id or "",
            strip_scheme(track.url),
        )
    )


def is_same_track(candidate: Track, other: Track) -> bool:
    """True when two descriptors refer to the same song.

    Matches on the full fingerprint, on raw identity (id, url, upstream id),
    or on normalized ``title::author`` when the title survives normalization.
    """
    if fingerprint(candidate) == fingerprint(other):
        return True
    if candidate.id is not None and candidate.id == other.id:
        return True
    if candidate.url and candidate.url == other.url:
        return True
    if candidate.upstream_id and candidate.upstream_id == other.upstream_id:
        return True
    if not normalize_text(candidate.title):
        return False
    return title_author_key(candidate) == title_author_key(other)


def find_duplicate(candidate: Track, window: Iterable[Track]) -> Track | None:
    """Return the first track in ``window`` that matches ``candidate``."""
    for existing in window:
        if is_same_track(candidate, existing):
            return existing
    return None
