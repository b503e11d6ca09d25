"""Dependency Injection Container

Manages the dependency graph of the playback controller, providing lazy
initialization and lifecycle management. Components are created on demand
and cached for reuse; external collaborators are bound at construction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..domain.shared.messages import ErrorMessages
from ..utils.logging import setup_logging

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from ..application.interfaces.recommendation import RecommendationGenerator
    from ..application.interfaces.source_resolver import SourceResolver
    from ..application.services.session_registry import SessionRegistry, TransportFactory
    from ..domain.music.recovery import RecoveryPolicy
    from ..domain.music.repository import SnapshotStore
    from ..domain.shared.events import EventBus
    from ..infrastructure.persistence.database import Database
    from .settings import Settings


@dataclass
class Container:
    """Dependency injection container.

    Components are lazily initialized when first accessed.
    """

    settings: Settings

    # External collaborators
    source_resolver: SourceResolver | None = None
    transport_factory: TransportFactory | None = None
    recommendation_generator: RecommendationGenerator | None = None

    # Lazily built
    _event_bus: EventBus | None = None
    _database: Database | None = None
    _snapshot_store: SnapshotStore | None = None
    _recovery_policy: RecoveryPolicy | None = None
    _session_registry: SessionRegistry | None = None

    # === Events ===

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            from ..domain.shared.events import get_event_bus

            self._event_bus = get_event_bus()
        return self._event_bus

    # === Persistence ===

    @property
    def database(self) -> Database:
        """Get the database connection manager."""
        if self._database is None:
            from ..infrastructure.persistence.database import Database

            persistence = self.settings.persistence
            self._database = Database(persistence.url, settings=persistence)
        return self._database

    @property
    def snapshot_store(self) -> SnapshotStore:
        if self._snapshot_store is None:
            from ..infrastructure.persistence.snapshot_store import (
                InMemorySnapshotStore,
                SQLiteSnapshotStore,
            )

            if self.settings.persistence.enabled:
                self._snapshot_store = SQLiteSnapshotStore(self.database)
            else:
                self._snapshot_store = InMemorySnapshotStore()
        return self._snapshot_store

    # === Playback ===

    @property
    def recovery_policy(self) -> RecoveryPolicy:
        if self._recovery_policy is None:
            from ..application.services.playback_session import policy_from_settings

            self._recovery_policy = policy_from_settings(self.settings.recovery)
        return self._recovery_policy

    @property
    def session_registry(self) -> SessionRegistry:
        if self._session_registry is None:
            from ..application.services.session_registry import SessionRegistry

            if self.source_resolver is None:
                raise RuntimeError(
                    ErrorMessages.COLLABORATOR_NOT_BOUND.format(name="source_resolver")
                )
            if self.transport_factory is None:
                raise RuntimeError(
                    ErrorMessages.COLLABORATOR_NOT_BOUND.format(name="transport_factory")
                )

            self._session_registry = SessionRegistry(
                settings=self.settings,
                resolver=self.source_resolver,
                transport_factory=self.transport_factory,
                recommender=self.recommendation_generator,
                snapshot_store=self.snapshot_store,
                event_bus=self.event_bus,
                recovery_policy=self.recovery_policy,
                restore_on_create=self.settings.persistence.enabled,
            )
        return self._session_registry

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Configure logging, then initialize all async resources."""
        setup_logging(self.settings.log_level)
        if self.settings.persistence.enabled:
            await self.database.initialize()

    async def shutdown(self) -> None:
        """Close every session, then the database."""
        if self._session_registry is not None:
            try:
                await self._session_registry.close_all()
            except Exception as exc:
                logger.warning("Failed closing playback sessions: %r", exc)

        if self._database is not None:
            await self._database.close()


def create_container(
    settings: Settings | None = None,
    *,
    source_resolver: SourceResolver | None = None,
    transport_factory: TransportFactory | None = None,
    recommendation_generator: RecommendationGenerator | None = None,
) -> Container:
    """Create a new dependency injection container."""
    if settings is None:
        from .settings import get_settings

        settings = get_settings()
    return Container(
        settings,
        source_resolver=source_resolver,
        transport_factory=transport_factory,
        recommendation_generator=recommendation_generator,
    )
