"""Centralized constants for database schema, pragmas and other shared values."""

from __future__ import annotations


class DatabaseTables:
    """Database table names."""

    PLAYBACK_SNAPSHOTS = "playback_snapshots"


class DatabaseColumns:
    """Database column names."""

    SESSION_KEY = "session_key"
    PAYLOAD = "payload"
    SAVED_AT = "saved_at"


class SQLPragmas:
    """SQLite PRAGMA statements applied to each connection."""

    JOURNAL_MODE_WAL = "PRAGMA journal_mode=WAL"
    BUSY_TIMEOUT = "PRAGMA busy_timeout={timeout}"


class DatabaseURLSchemes:
    """Valid database URL schemes for validation."""

    SQLITE = "sqlite://"

    # For in-memory testing
    MEMORY = ":memory:"
    MEMORY_SHARED_URI = "file:continuous-playback?mode=memory&cache=shared"


class TimerNames:
    """Names of the per-session timer slots."""

    PREFETCH = "prefetch"
    RECOVERY = "recovery"
    RECOVERY_GUARD = "recovery-guard"
    AUTOSTART = "autostart"
    REFILL = "refill"
    CLEANUP_PREFIX = "cleanup:"
    WARM_PREFIX = "warm:"


class LogLevels:
    """Valid logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    ALL = (DEBUG, INFO, WARNING, ERROR, CRITICAL)
