"""Application Settings and Configuration

Pydantic-based settings management using environment variables.
Settings are loaded from environment variables with support for .env files,
type validation, and sensible defaults. All settings are frozen and immutable
after initialization.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.shared.constants import DatabaseURLSchemes, LogLevels
from ..domain.shared.messages import ErrorMessages


class PlaybackSettings(BaseModel):
    """Session behaviour: volume, history and the settle delays around transport restarts."""

    model_config = SettingsConfigDict(frozen=True, strict=True, populate_by_name=True)

    default_volume: int = Field(
        default=50, ge=0, le=100, validation_alias=AliasChoices("default_volume", "volume")
    )
    history_size: int = Field(default=50, ge=1, le=500)
    duplicate_history_window: int = Field(default=20, ge=0, le=500)
    restart_grace_ms: int = Field(default=200, ge=0, le=10_000)
    skip_settle_ms: int = Field(default=300, ge=0, le=10_000)
    jump_settle_ms: int = Field(default=150, ge=0, le=10_000)
    autostart_delay_ms: int = Field(default=100, ge=0, le=10_000)
    min_play_duration_ms: int = Field(default=5000, ge=0, le=60_000)
    auto_continuation: bool = Field(
        default=True, validation_alias=AliasChoices("auto_continuation", "auto_play")
    )
    end_of_queue_behavior: Literal["recommendations", "stop"] = "recommendations"
    refill_when_low: bool = False
    low_queue_threshold: int = Field(default=2, ge=0, le=50)
    refill_count: int = Field(default=5, ge=1, le=25)


class PrefetchSettings(BaseModel):
    """Prefetch configuration."""

    model_config = SettingsConfigDict(frozen=True, strict=True, populate_by_name=True)

    enabled: bool = True
    lead_ms: int = Field(
        default=30_000, ge=0, le=600_000, validation_alias=AliasChoices("lead_ms", "lead_time")
    )
    depth: int = Field(default=2, ge=1, le=5)


class RecoverySettings(BaseModel):
    """Error recovery thresholds and delays."""

    model_config = SettingsConfigDict(frozen=True, strict=True, populate_by_name=True)

    systemic_error_ceiling: int = Field(default=8, ge=1)
    track_error_threshold: int = Field(default=5, ge=1)
    permanent_signal_threshold: int = Field(default=3, ge=1)
    terminal_markers: tuple[str, ...] = ("DRM protected",)
    permanent_signals: tuple[str, ...] = ("Status code: 403",)
    retry_backoff_step_ms: int = Field(default=1000, ge=0)
    retry_backoff_cap_ms: int = Field(default=3000, ge=0)
    systemic_delay_ms: int = Field(default=0, ge=0)
    skip_delay_ms: int = Field(default=500, ge=0)
    guard_timeout_ms: int = Field(default=15_000, ge=100)

    @field_validator("terminal_markers", "permanent_signals", mode="before")
    @classmethod
    def validate_markers(cls, v: tuple[str, ...] | list[str]) -> tuple[str, ...]:
        """Convert lists (from JSON arrays in env vars) to tuples."""
        if isinstance(v, list):
            v = tuple(v)
        return v


class PersistenceSettings(BaseModel):
    """Queue snapshot storage configuration."""

    model_config = SettingsConfigDict(frozen=True, strict=True, populate_by_name=True)

    enabled: bool = True
    url: str = Field(
        default="sqlite:///data/playback.db",
        validation_alias=AliasChoices("url", "database_url", "db_url"),
    )
    busy_timeout_ms: int = Field(
        default=5000,
        ge=1000,
        le=30000,
        validation_alias=AliasChoices("busy_timeout_ms", "busy_timeout"),
    )
    connection_timeout_s: int = Field(
        default=10,
        ge=1,
        le=60,
        validation_alias=AliasChoices("connection_timeout_s", "connection_timeout"),
    )
    save_throttle_ms: int = Field(default=3000, ge=0, le=60_000)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if v != DatabaseURLSchemes.MEMORY and not v.startswith(DatabaseURLSchemes.SQLITE):
            raise ValueError(ErrorMessages.INVALID_PERSISTENCE_URL)
        return v


class CleanupSettings(BaseModel):
    """Finished-track cache cleanup configuration."""

    model_config = SettingsConfigDict(frozen=True, strict=True)

    auto_delete_finished: bool = True
    delete_delay_ms: int = Field(default=60_000, ge=0)


class Settings(BaseSettings):
    """Application settings container.

    Automatically loads configuration from environment variables.

    Environment variable naming:
    - ENVIRONMENT, DEBUG, LOG_LEVEL (top-level)
    - PLAYBACK__DEFAULT_VOLUME, PREFETCH__LEAD_MS, RECOVERY__SKIP_DELAY_MS, ... (nested)
    - PERSISTENCE__URL (sqlite:///path or :memory:)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        strict=True,
    )

    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    playback: PlaybackSettings = Field(default_factory=PlaybackSettings)
    prefetch: PrefetchSettings = Field(default_factory=PrefetchSettings)
    recovery: RecoverySettings = Field(default_factory=RecoverySettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    cleanup: CleanupSettings = Field(default_factory=CleanupSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = set(LogLevels.ALL)
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                ErrorMessages.INVALID_LOG_LEVEL.format(level=v, valid_levels=valid_levels)
            )
        return v_upper


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are automatically loaded from:
    1. .env file (if present)
    2. Environment variables
    3. Default values
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
