"""Tests for the dependency injection container."""

import pytest
from conftest import FakeTransport, build_settings

from continuous_playback.application.services.session_registry import SessionRegistry
from continuous_playback.config import container as container_module
from continuous_playback.config.container import Container, create_container
from continuous_playback.domain.music.recovery import RecoveryPolicy
from continuous_playback.infrastructure.persistence.snapshot_store import (
    InMemorySnapshotStore,
    SQLiteSnapshotStore,
)


class TestContainer:
    def test_snapshot_store_follows_persistence_flag(self):
        enabled = Container(build_settings())
        disabled = Container(build_settings(persistence={"enabled": False}))

        assert isinstance(enabled.snapshot_store, SQLiteSnapshotStore)
        assert isinstance(disabled.snapshot_store, InMemorySnapshotStore)

    def test_components_are_cached(self):
        container = Container(build_settings())
        assert container.database is container.database
        assert container.snapshot_store is container.snapshot_store
        assert container.recovery_policy is container.recovery_policy

    def test_recovery_policy_from_settings(self):
        container = Container(build_settings(recovery={"track_error_threshold": 2}))
        policy = container.recovery_policy
        assert isinstance(policy, RecoveryPolicy)
        assert policy.track_error_threshold == 2

    def test_registry_requires_collaborators(self):
        container = Container(build_settings())
        with pytest.raises(RuntimeError, match="source_resolver"):
            _ = container.session_registry

    def test_registry_requires_transport_factory(self, resolver):
        container = create_container(build_settings(), source_resolver=resolver)
        with pytest.raises(RuntimeError, match="transport_factory"):
            _ = container.session_registry

    @pytest.mark.asyncio
    async def test_lifecycle(self, resolver, make_track, monkeypatch):
        monkeypatch.setattr(container_module, "setup_logging", lambda level: None)
        container = create_container(
            build_settings(),
            source_resolver=resolver,
            transport_factory=lambda key: FakeTransport(),
        )
        await container.initialize()

        registry = container.session_registry
        assert isinstance(registry, SessionRegistry)
        session = await registry.get_or_create("guild-1")
        await session.add_to_queue(make_track(1))

        persisted = await container.snapshot_store.load("guild-1")
        assert persisted is not None
        assert len(persisted.queue) == 1

        await container.shutdown()

        assert len(registry) == 0

    def test_create_container_uses_cached_settings(self, monkeypatch):
        from continuous_playback.config import settings as settings_module

        settings_module.clear_settings_cache()
        monkeypatch.setenv("LOG_LEVEL", "debug")
        try:
            container = create_container()
            assert container.settings.log_level == "DEBUG"
            assert container.settings is settings_module.get_settings()
        finally:
            settings_module.clear_settings_cache()

    @pytest.mark.asyncio
    async def test_initialize_applies_log_level(self, monkeypatch):
        """Startup configures logging from the settings before touching the database."""
        levels = []
        monkeypatch.setattr(container_module, "setup_logging", levels.append)
        container = Container(
            build_settings(persistence={"enabled": False}).model_copy(
                update={"log_level": "WARNING"}
            )
        )

        await container.initialize()

        assert levels == ["WARNING"]
        assert container._database is None
