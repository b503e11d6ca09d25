"""Throttled queue persistence for one session."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from ...domain.shared.datetime_utils import monotonic_ms
from ...domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ...domain.music.repository import QueueSnapshot, SnapshotStore

logger = logging.getLogger(__name__)


class ThrottledSnapshotSaver:
    """Skips a save when the content signature matches the last save inside the window.

    Store failures are logged and never propagate into playback.
    """

    def __init__(
        self,
        store: SnapshotStore | None,
        session_key: str,
        *,
        throttle_ms: int = 3000,
        enabled: bool = True,
        now_ms: Callable[[], int] = monotonic_ms,
    ) -> None:
        self._store = store
        self._session_key = session_key
        self._throttle_ms = throttle_ms
        self._enabled = enabled and store is not None
        self._now_ms = now_ms
        self._last_signature: str | None = None
        self._last_saved_ms: int | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _is_redundant(self, signature: str) -> bool:
        if signature != self._last_signature or self._last_saved_ms is None:
            return False
        return self._now_ms() - self._last_saved_ms < self._throttle_ms

    async def save(self, snapshot: QueueSnapshot, *, force: bool = False) -> bool:
        """Persist unless redundant. Returns True if the store was written."""
        if not self._enabled or self._store is None:
            return False

        signature = snapshot.signature()
        if not force and self._is_redundant(signature):
            logger.debug(LogTemplates.SNAPSHOT_SAVE_SKIPPED, self._session_key)
            return False

        try:
            await self._store.save(self._session_key, snapshot)
        except Exception:
            logger.exception(LogTemplates.SNAPSHOT_SAVE_FAILED, self._session_key)
            return False

        self._last_signature = signature
        self._last_saved_ms = self._now_ms()
        logger.debug(LogTemplates.SNAPSHOT_SAVED, self._session_key, len(snapshot.queue))
        return True

    async def load(self) -> QueueSnapshot | None:
        if not self._enabled or self._store is None:
            return None
        try:
            snapshot = await self._store.load(self._session_key)
        except Exception:
            logger.exception(LogTemplates.SNAPSHOT_LOAD_FAILED, self._session_key)
            return None
        if snapshot is None:
            logger.debug(LogTemplates.SNAPSHOT_MISSING, self._session_key)
        return snapshot

    async def clear(self) -> None:
        self._last_signature = None
        self._last_saved_ms = None
        if not self._enabled or self._store is None:
            return
        try:
            await self._store.clear(self._session_key)
            logger.debug(LogTemplates.SNAPSHOT_CLEARED, self._session_key)
        except Exception:
            logger.exception(LogTemplates.SNAPSHOT_CLEAR_FAILED, self._session_key)
