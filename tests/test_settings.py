"""
Unit Tests for Application Settings Configuration

Tests for:
- Default values for every settings group
- Loading settings from environment variables (nested with "__")
- Custom validators (persistence URL, log level)
- Settings caching and clearing
"""

import pytest
from pydantic import ValidationError

from continuous_playback.config.settings import (
    PersistenceSettings,
    PlaybackSettings,
    PrefetchSettings,
    RecoverySettings,
    Settings,
    clear_settings_cache,
    get_settings,
)


class TestPlaybackSettings:
    def test_defaults(self):
        playback = PlaybackSettings()
        assert playback.default_volume == 50
        assert playback.min_play_duration_ms == 5000
        assert playback.auto_continuation is True
        assert playback.end_of_queue_behavior == "recommendations"

    def test_alias(self):
        """``volume`` is accepted as an alias for ``default_volume``."""
        assert PlaybackSettings(volume=70).default_volume == 70

    @pytest.mark.parametrize("volume", [-1, 101])
    def test_volume_out_of_range(self, volume):
        with pytest.raises(ValidationError):
            PlaybackSettings(default_volume=volume)

    def test_end_of_queue_behavior_literal(self):
        with pytest.raises(ValidationError, match="Input should be"):
            PlaybackSettings(end_of_queue_behavior="shuffle")

    def test_frozen(self):
        playback = PlaybackSettings()
        with pytest.raises(ValidationError):
            playback.default_volume = 10


class TestPrefetchSettings:
    def test_defaults(self):
        prefetch = PrefetchSettings()
        assert prefetch.lead_ms == 30_000
        assert prefetch.depth == 2

    def test_depth_bounds(self):
        with pytest.raises(ValidationError):
            PrefetchSettings(depth=6)


class TestRecoverySettings:
    def test_defaults(self):
        recovery = RecoverySettings()
        assert recovery.systemic_error_ceiling == 8
        assert recovery.track_error_threshold == 5
        assert recovery.retry_backoff_cap_ms == 3000
        assert "DRM protected" in recovery.terminal_markers

    def test_marker_lists_become_tuples(self):
        recovery = RecoverySettings(terminal_markers=["Private video", "DRM protected"])
        assert recovery.terminal_markers == ("Private video", "DRM protected")


class TestPersistenceSettings:
    @pytest.mark.parametrize("url", [":memory:", "sqlite:///data/x.db"])
    def test_valid_urls(self, url):
        assert PersistenceSettings(url=url).url == url

    def test_invalid_url(self):
        with pytest.raises(ValidationError, match="Persistence URL"):
            PersistenceSettings(url="postgresql://localhost/db")

    def test_url_aliases(self):
        assert PersistenceSettings(database_url=":memory:").url == ":memory:"


class TestSettings:
    def test_create_with_all_defaults(self, monkeypatch):
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        settings = Settings()

        assert settings.environment == "development"
        assert settings.log_level == "INFO"
        assert settings.persistence.enabled is True

    def test_load_from_environment_variables(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("LOG_LEVEL", "WARNING")

        settings = Settings()

        assert settings.environment == "production"
        assert settings.log_level == "WARNING"

    def test_load_nested_settings_from_env(self, monkeypatch):
        """Nested groups are read with the ``__`` delimiter."""
        monkeypatch.setenv("PLAYBACK__END_OF_QUEUE_BEHAVIOR", "stop")
        monkeypatch.setenv("PERSISTENCE__URL", ":memory:")

        settings = Settings()

        assert settings.playback.end_of_queue_behavior == "stop"
        assert settings.persistence.url == ":memory:"

    def test_log_level_validation_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert Settings().log_level == "DEBUG"

    def test_invalid_log_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        with pytest.raises(ValidationError, match="Invalid log level"):
            Settings()


class TestSettingsCache:
    def test_cached_until_cleared(self):
        clear_settings_cache()
        first = get_settings()
        assert get_settings() is first

        clear_settings_cache()
        assert get_settings() is not first
        clear_settings_cache()
