"""Registry of independent playback sessions, one per channel."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from ...domain.shared.messages import LogTemplates
from .playback_session import PlaybackSession

if TYPE_CHECKING:
    from ...config.settings import Settings
    from ...domain.music.recovery import RecoveryPolicy
    from ...domain.music.repository import SnapshotStore
    from ...domain.shared.events import EventBus
    from ..interfaces.recommendation import RecommendationGenerator
    from ..interfaces.source_resolver import SourceResolver
    from ..interfaces.voice_transport import VoiceTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], "VoiceTransport"]
"""Builds the transport bound to one session key."""


class SessionRegistry:
    """Creates sessions lazily and owns their lifecycle.

    Sessions share only the snapshot store and the event bus.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        resolver: SourceResolver,
        transport_factory: TransportFactory,
        recommender: RecommendationGenerator | None = None,
        snapshot_store: SnapshotStore | None = None,
        event_bus: EventBus | None = None,
        recovery_policy: RecoveryPolicy | None = None,
        restore_on_create: bool = True,
    ) -> None:
        self._settings = settings
        self._resolver = resolver
        self._transport_factory = transport_factory
        self._recommender = recommender
        self._snapshot_store = snapshot_store
        self._event_bus = event_bus
        self._recovery_policy = recovery_policy
        self._restore_on_create = restore_on_create
        self._sessions: dict[str, PlaybackSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_key: str) -> bool:
        return session_key in self._sessions

    def keys(self) -> list[str]:
        return list(self._sessions)

    def get(self, session_key: str) -> PlaybackSession | None:
        return self._sessions.get(session_key)

    async def get_or_create(self, session_key: str) -> PlaybackSession:
        async with self._lock:
            session = self._sessions.get(session_key)
            if session is not None:
                return session

            session = PlaybackSession(
                session_key,
                resolver=self._resolver,
                transport=self._transport_factory(session_key),
                settings=self._settings,
                recommender=self._recommender,
                snapshot_store=self._snapshot_store,
                event_bus=self._event_bus,
                recovery_policy=self._recovery_policy,
            )
            self._sessions[session_key] = session
            logger.info(LogTemplates.SESSION_CREATED, session_key)

            if self._restore_on_create:
                await session.restore()
            return session

    async def remove(self, session_key: str) -> bool:
        session = self._sessions.pop(session_key, None)
        if session is None:
            return False
        try:
            await session.close()
        except Exception:
            logger.exception(LogTemplates.SESSION_CLOSE_FAILED, session_key)
        logger.info(LogTemplates.SESSION_CLOSED, session_key)
        return True

    async def close_all(self) -> None:
        for session_key in list(self._sessions):
            await self.remove(session_key)
