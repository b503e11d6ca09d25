"""Centralized message constants for error messages and log templates."""

from __future__ import annotations


class ErrorMessages:
    """Error messages for exceptions and validation failures."""

    # Track Validation Errors
    EMPTY_TRACK_ID = "Track ID cannot be empty"
    INVALID_DURATION = "Invalid duration '{value}': expected m:ss or h:mm:ss"

    # Queue Errors
    INDEX_OUT_OF_RANGE = "Index {index} is out of range for a queue of {length} tracks"
    INVALID_INSERT_POSITION = "Insert position cannot be negative"
    CURSOR_OUT_OF_RANGE = "current_index {index} is not valid for a queue of {length} tracks"

    # Command Errors
    NEGATIVE_SEEK = "Seek target cannot be negative"

    # Stream Errors
    RESOLVER_RETURNED_NONE = "Resolver returned no stream"
    STREAM_NOT_READABLE = "Stream is not readable or already destroyed"
    STREAM_UNAVAILABLE = "Stream unavailable for '{title}': {reason}"

    # State Machine Errors
    INVALID_TRANSITION = "Cannot transition from {current} to {target}"

    # Configuration Errors
    INVALID_PERSISTENCE_URL = "Persistence URL must start with sqlite:// or be ':memory:'"
    INVALID_LOG_LEVEL = "Invalid log level: {level}. Must be one of {valid_levels}"
    TIMEZONE_REQUIRED_UTC_DATETIME = "datetime must be timezone-aware (UTC)"

    # Container Errors
    COLLABORATOR_NOT_BOUND = "{name} is not bound. Pass it to create_container()."


class LogTemplates:
    """Log message templates.

    Use these with logger.info(), logger.error(), etc. and pass values as parameters
    so formatting stays lazy.
    """

    # Database Lifecycle
    DATABASE_INITIALIZED = "Database initialized at %s"
    DATABASE_CLOSED = "Database manager closed"

    # Snapshot Persistence
    SNAPSHOT_SAVED = "Saved queue snapshot for session %s (%d tracks)"
    SNAPSHOT_SAVE_SKIPPED = "Skipped redundant snapshot save for session %s"
    SNAPSHOT_SAVE_FAILED = "Failed to save queue snapshot for session %s"
    SNAPSHOT_CLEARED = "Cleared persisted queue for session %s"
    SNAPSHOT_CLEAR_FAILED = "Failed to clear persisted queue for session %s"
    SNAPSHOT_RESTORED = "Restored %d tracks for session %s (loop=%s, volume=%s, auto=%s)"
    SNAPSHOT_MISSING = "No persisted queue for session %s, starting fresh"
    SNAPSHOT_LOAD_FAILED = "Failed to load queue snapshot for session %s"

    # State Machine
    STATUS_CHANGED = "Session %s: %s -> %s"
    TRANSPORT_EVENT = "Session %s: transport %s (previous=%s)"
    TRANSPORT_EVENT_FAILED = "Error handling transport event %s for session %s"
    GUARD_FORCED_RELEASE = "Session %s: transition guard held too long, forcing release"

    # Playback
    PLAY_QUEUE_EMPTY = "Session %s: queue is empty"
    PLAY_REJECTED = "Session %s: play rejected while %s"
    PLAY_RESTARTING = "Session %s: already playing, stopping current stream first"
    PLAY_ATTEMPT = "Session %s: attempting to play '%s'"
    PLAY_ABANDONED = "Session %s: play of '%s' superseded while resolving"
    PLAY_FAILED_ON_START = "Session %s: '%s' failed while the transport was starting (status %s)"
    PLAY_STARTED = "Session %s: now playing '%s' (%s)"
    PLAY_TRANSPORT_FAILED = "Session %s: transport failed to start '%s'"
    STREAM_UNAVAILABLE = "Session %s: %s"
    PAUSED = "Session %s: paused at %d ms"
    RESUMED = "Session %s: resumed at %d ms"
    STOPPED = "Session %s: playback stopped (user_initiated=%s)"
    HALTED = "Session %s: end of queue, stopping"
    VOLUME_SET = "Session %s: volume set to %d%%"
    VOLUME_APPLY_FAILED = "Session %s: failed to apply volume to transport"

    # Track Lifecycle
    TRACK_FINISHED = "Session %s: '%s' finished naturally"
    TRACK_TOO_SHORT = "Session %s: '%s' ended after %d ms, treating as stream error"
    TRACK_SKIPPED = "Session %s: skipped '%s'"
    TRACK_LOOPING = "Session %s: loop=track, replaying '%s'"
    IDLE_INTENTIONAL = "Session %s: idle after %s, ignoring"
    IDLE_IGNORED = "Session %s: idle while %s, ignoring"
    TRANSPORT_ERROR = "Session %s: transport error: %s"
    TRANSPORT_ERROR_SUPPRESSED = "Session %s: transport error during intentional teardown: %s"

    # Seek
    SEEK_REJECTED = "Session %s: seek to %ss rejected while %s"
    SEEK_FAILED = "Session %s: seek to %ss failed: %s"
    SEEK_ABANDONED = "Session %s: seek to %ss abandoned, '%s' is no longer current"
    SEEK_DONE = "Session %s: seeked to %ss"
    SEEK_INVALID = "Session %s: seek to %ss rejected: %s"
    JUMP_REJECTED = "Session %s: jump to %d rejected, queue has %d tracks"

    # Queue Operations
    QUEUE_ENQUEUED = "Session %s: enqueued '%s' at position %d"
    QUEUE_DUPLICATE = "Session %s: duplicate '%s' by %s not added"
    QUEUE_REMOVED = "Session %s: removed '%s' from queue"
    QUEUE_CLEARED = "Session %s: cleared %d tracks (user_initiated=%s)"
    QUEUE_SHUFFLED = "Session %s: shuffled %d upcoming tracks"
    QUEUE_MOVED = "Session %s: moved track from %d to %d"
    QUEUE_WRAPPED = "Session %s: loop=queue, restarting from the beginning"
    QUEUE_AUTOSTART = "Session %s: queue was empty, auto-starting '%s'"
    QUEUE_INVALID_DURATION = "Track '%s' has unparseable duration %r, using 0"
    LOOP_MODE_CHANGED = "Session %s: loop mode set to %s"
    AUTO_PLAY_CHANGED = "Session %s: auto-continuation %s"

    # Recommendations
    RECOMMEND_NO_SEED = "Session %s: no seed track for recommendation"
    RECOMMEND_FAILED = "Session %s: recommendation request failed"
    RECOMMEND_REJECTED = "Session %s: no usable recommendation (duplicate or empty)"
    RECOMMEND_PLAYING = "Session %s: auto-playing recommendation '%s' by %s"
    REFILL_ADDED = "Session %s: added %d recommended tracks"

    # Error Recovery
    RECOVERY_SUPPRESSED_SEEK = "Session %s: suppressing stream error during active seek"
    RECOVERY_IN_PROGRESS = "Session %s: stream error ignored, recovery already in progress"
    RECOVERY_DECIDED = (
        "Session %s: %s failure on '%s' (track errors=%d, consecutive=%d) -> %s in %d ms"
    )
    RECOVERY_STALE = "Session %s: recovery for '%s' superseded, not applying"
    RECOVERY_FAILED = "Session %s: error while applying recovery"
    CACHE_INVALIDATE_FAILED = "Failed to invalidate cache for %s"

    # Prefetch
    PREFETCH_ARMED = "Prefetch armed in %d ms for %d upcoming tracks"
    PREFETCH_DONE = "Prefetched '%s'"
    PREFETCH_FAILED = "Prefetch failed for '%s': %r"
    PREFETCH_STALE = "Prefetch timer fired for a track that is no longer current"

    # Timers
    TIMER_CALLBACK_FAILED = "Timer '%s' callback failed"

    # Cleanup
    CLEANUP_SCHEDULED = "Scheduled cache cleanup for %s in %d ms"
    CLEANUP_SKIPPED_REQUEUED = "Skipping cache cleanup for %s, it is queued again"
    CLEANUP_DONE = "Cleaned cached stream for %s"

    # Session Registry
    SESSION_CREATED = "Created playback session %s"
    SESSION_CLOSED = "Closed playback session %s"
    SESSION_CLOSE_FAILED = "Error while closing session %s"
