"""Playback Session - the continuous-playback state machine for one channel."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from ...domain.music.clock import PositionClock
from ...domain.music.entities import PlaybackQueue, PlayHistory, Track
from ...domain.music.fingerprint import find_duplicate
from ...domain.music.recovery import (
    FailureLedger,
    RecoveryAction,
    RecoveryContext,
    RecoveryDecision,
    RecoveryPolicy,
)
from ...domain.music.repository import QueueSnapshot
from ...domain.music.value_objects import (
    FailureKind,
    LoopMode,
    PlaybackStatus,
    StopReason,
    TrackFinishReason,
    TrackId,
    TransportEvent,
    format_duration,
)
from ...domain.shared.constants import TimerNames
from ...domain.shared.datetime_utils import monotonic_ms, utcnow
from ...domain.shared.events import (
    DomainEvent,
    EventBus,
    PlaybackStopped,
    QueueUpdated,
    RecoveryScheduled,
    TrackAddedToQueue,
    TrackEnded,
    TrackStarted,
    get_event_bus,
)
from ...domain.shared.exceptions import InvalidOperationError, StreamUnavailableError
from ...domain.shared.messages import ErrorMessages, LogTemplates
from ..interfaces.recommendation import RecommendationContext
from ..interfaces.source_resolver import ResolveOptions
from .prefetch import PrefetchScheduler
from .session_models import EnqueueResult, QueueInfo
from .snapshot_saver import ThrottledSnapshotSaver
from .timers import TimerTable

if TYPE_CHECKING:
    from ...config.settings import RecoverySettings, Settings
    from ...domain.music.repository import SnapshotStore
    from ..interfaces.recommendation import RecommendationGenerator
    from ..interfaces.source_resolver import AudioStream, SourceResolver
    from ..interfaces.voice_transport import VoiceTransport

logger = logging.getLogger(__name__)

_EventHandler = Callable[["TransportEvent | None", "str | None"], Awaitable[None]]


def policy_from_settings(settings: RecoverySettings) -> RecoveryPolicy:
    return RecoveryPolicy(
        systemic_error_ceiling=settings.systemic_error_ceiling,
        track_error_threshold=settings.track_error_threshold,
        permanent_signal_threshold=settings.permanent_signal_threshold,
        terminal_markers=settings.terminal_markers,
        permanent_signals=settings.permanent_signals,
        retry_backoff_step_ms=settings.retry_backoff_step_ms,
        retry_backoff_cap_ms=settings.retry_backoff_cap_ms,
        systemic_delay_ms=settings.systemic_delay_ms,
        skip_delay_ms=settings.skip_delay_ms,
        guard_timeout_ms=settings.guard_timeout_ms,
    )


class PlaybackSession:
    """Owns one queue, one current track and one transport binding.

    Commands and transport events run on the event loop and are serialized
    for a session. Awaits on the resolver, recommender or store can overlap
    with a fresh command, so the SEEKING, LOADING and TRANSITIONING statuses
    double as re-entrancy guards: work started under one status abandons
    itself once it observes that the status has moved on.

    Public commands never raise for stream failures; they return a success
    flag and recovery continues in the background.
    """

    def __init__(
        self,
        session_key: str,
        *,
        resolver: SourceResolver,
        transport: VoiceTransport,
        settings: Settings,
        recommender: RecommendationGenerator | None = None,
        snapshot_store: SnapshotStore | None = None,
        event_bus: EventBus | None = None,
        recovery_policy: RecoveryPolicy | None = None,
        now_ms: Callable[[], int] = monotonic_ms,
        rng: random.Random | None = None,
    ) -> None:
        self._key = session_key
        self._resolver = resolver
        self._transport = transport
        self._recommender = recommender
        self._settings = settings
        self._playback = settings.playback
        self._bus = event_bus or get_event_bus()
        self._policy = recovery_policy or policy_from_settings(settings.recovery)
        self._now_ms = now_ms
        self._rng = rng or random.Random()

        self._status = PlaybackStatus.IDLE
        self._queue = PlaybackQueue()
        self._history = PlayHistory(self._playback.history_size)
        self._clock = PositionClock(now_ms)
        self._ledger = FailureLedger()
        self._timers = TimerTable()
        self._prefetch = PrefetchScheduler(
            resolver,
            self._timers,
            enabled=settings.prefetch.enabled,
            lead_ms=settings.prefetch.lead_ms,
            depth=settings.prefetch.depth,
        )
        self._saver = ThrottledSnapshotSaver(
            snapshot_store,
            session_key,
            throttle_ms=settings.persistence.save_throttle_ms,
            enabled=settings.persistence.enabled,
            now_ms=now_ms,
        )

        self._volume = self._playback.default_volume
        self._loop_mode = LoopMode.OFF
        self._shuffle_enabled = False
        self._auto_continuation = (
            self._playback.auto_continuation
            and self._playback.end_of_queue_behavior == "recommendations"
        )

        self._stop_reason: StopReason | None = None
        self._transport_state: TransportEvent | None = None
        self._pending_seek_ms = 0
        self._play_offset_ms = 0
        self._stream_started_ms: int | None = None
        self._load_generation = 0
        self._transition_epoch = 0
        self._closed = False

        self._event_handlers: dict[TransportEvent, _EventHandler] = {
            TransportEvent.PLAYING: self._on_transport_playing,
            TransportEvent.PAUSED: self._on_transport_paused,
            TransportEvent.IDLE: self._on_transport_idle,
            TransportEvent.BUFFERING: self._on_transport_buffering,
            TransportEvent.ERROR: self._on_transport_error,
        }
        self._transport.set_listener(self.dispatch)

    # ── Read-only state ─────────────────────────────────────────────

    @property
    def session_key(self) -> str:
        return self._key

    @property
    def status(self) -> PlaybackStatus:
        return self._status

    @property
    def is_playing(self) -> bool:
        return self._status is PlaybackStatus.PLAYING

    @property
    def is_paused(self) -> bool:
        return self._status is PlaybackStatus.PAUSED

    @property
    def queue(self) -> list[Track]:
        return self._queue.tracks

    @property
    def current_index(self) -> int:
        return self._queue.current_index

    @property
    def current_track(self) -> Track | None:
        return self._queue.current

    @property
    def history(self) -> list[Track]:
        return list(self._history)

    @property
    def volume(self) -> int:
        return self._volume

    @property
    def loop_mode(self) -> LoopMode:
        return self._loop_mode

    @property
    def shuffle_enabled(self) -> bool:
        return self._shuffle_enabled

    @property
    def auto_continuation(self) -> bool:
        return self._auto_continuation

    @property
    def position_ms(self) -> int:
        return self._clock.elapsed_ms()

    @property
    def consecutive_errors(self) -> int:
        return self._ledger.consecutive

    @property
    def pending_timers(self) -> list[str]:
        return self._timers.pending()

    @property
    def prefetch(self) -> PrefetchScheduler:
        return self._prefetch

    def track_errors(self, track: Track) -> int:
        return self._ledger.track_errors(track.key)

    def get_queue_info(self) -> QueueInfo:
        return QueueInfo(
            queue=self._queue.tracks,
            current_track=self._queue.current,
            current_index=self._queue.current_index,
            status=self._status,
            is_playing=self.is_playing,
            is_paused=self.is_paused,
            volume=self._volume,
            loop_mode=self._loop_mode,
            shuffle_enabled=self._shuffle_enabled,
            auto_continuation=self._auto_continuation,
            queue_length=len(self._queue),
            remaining_duration_ms=self._queue.remaining_duration_ms(),
            position_ms=self._clock.elapsed_ms(),
        )

    # ── Transport events ────────────────────────────────────────────

    async def dispatch(self, event: TransportEvent, error: str | None = None) -> None:
        """Single entry point for transport events. Never raises."""
        previous = self._transport_state
        if event is not TransportEvent.ERROR:
            self._transport_state = event
        logger.debug(LogTemplates.TRANSPORT_EVENT, self._key, event.value, previous)
        if self._closed:
            return

        handler = self._event_handlers[event]
        try:
            await handler(previous, error)
        except Exception:
            logger.exception(LogTemplates.TRANSPORT_EVENT_FAILED, event.value, self._key)

    async def _on_transport_playing(
        self, previous: TransportEvent | None, error: str | None
    ) -> None:
        if self._status is PlaybackStatus.PAUSED:
            self._set_status(PlaybackStatus.PLAYING)
            self._clock.resume()
            return
        if self._status not in (PlaybackStatus.LOADING, PlaybackStatus.SEEKING):
            return

        track = self._queue.current
        self._set_status(PlaybackStatus.PLAYING)
        self._stop_reason = None
        self._clock.start(self._pending_seek_ms)
        self._play_offset_ms = self._pending_seek_ms
        self._pending_seek_ms = 0
        self._stream_started_ms = self._now_ms()
        self._ledger.reset_consecutive()
        if track is None:
            return

        track.last_error = None
        self._prefetch.arm(self._queue, self._clock.elapsed_ms())
        self._maybe_schedule_refill()
        await self._publish(
            TrackStarted(
                track_id=track.id,
                track_title=track.title,
                track_url=track.url,
                duration_ms=track.duration_ms,
                position_ms=self._clock.elapsed_ms(),
            )
        )

    async def _on_transport_paused(
        self, previous: TransportEvent | None, error: str | None
    ) -> None:
        if self._status is PlaybackStatus.PLAYING:
            self._set_status(PlaybackStatus.PAUSED)
            self._clock.pause()

    async def _on_transport_buffering(
        self, previous: TransportEvent | None, error: str | None
    ) -> None:
        return None

    async def _on_transport_idle(
        self, previous: TransportEvent | None, error: str | None
    ) -> None:
        reason, self._stop_reason = self._stop_reason, None
        if reason is not None:
            logger.debug(LogTemplates.IDLE_INTENTIONAL, self._key, reason.value)
            return
        if self._status is not PlaybackStatus.PLAYING:
            logger.debug(LogTemplates.IDLE_IGNORED, self._key, self._status.value)
            return

        track = self._queue.current
        if previous is TransportEvent.BUFFERING and track is not None:
            await self._handle_stream_failure(
                track, FailureKind.TRANSPORT, "Stream ended while buffering"
            )
        elif track is not None and self._ended_too_soon(track):
            alive = self._now_ms() - (self._stream_started_ms or 0)
            logger.warning(LogTemplates.TRACK_TOO_SHORT, self._key, track.title, alive)
            await self._handle_stream_failure(
                track, FailureKind.TOO_SHORT, f"Playback ended after {alive} ms"
            )
        else:
            await self._handle_track_end(track)

    async def _on_transport_error(
        self, previous: TransportEvent | None, error: str | None
    ) -> None:
        message = error or "Transport error"
        if self._stop_reason is not None:
            logger.debug(LogTemplates.TRANSPORT_ERROR_SUPPRESSED, self._key, message)
            return
        track = self._queue.current
        if track is None:
            return
        logger.warning(LogTemplates.TRANSPORT_ERROR, self._key, message)
        track.last_error = message
        await self._handle_stream_failure(track, FailureKind.TRANSPORT, message)

    def _ended_too_soon(self, track: Track) -> bool:
        """A stream that died well before its expected end counts as a failure."""
        if self._stream_started_ms is None:
            return False
        minimum = self._playback.min_play_duration_ms
        alive = self._now_ms() - self._stream_started_ms
        if alive >= minimum:
            return False
        if not track.duration_ms:
            return True
        return track.duration_ms - self._play_offset_ms > minimum

    # ── Playback commands ───────────────────────────────────────────

    async def play(self) -> bool:
        """Start the track at the cursor (index 0 if nothing is current)."""
        if self._queue.is_empty:
            logger.debug(LogTemplates.PLAY_QUEUE_EMPTY, self._key)
            if self._status is PlaybackStatus.TRANSITIONING:
                self._set_status(PlaybackStatus.IDLE)
            return False
        if self._status in (PlaybackStatus.SEEKING, PlaybackStatus.LOADING):
            logger.debug(LogTemplates.PLAY_REJECTED, self._key, self._status.value)
            return False

        if self._queue.current_index == -1:
            self._queue.current_index = 0
        track = self._queue.current
        if track is None:
            return False

        self._load_generation += 1
        generation = self._load_generation
        restarting = self._transport.is_streaming
        self._pending_seek_ms = 0
        self._clock.reset()
        self._set_status(PlaybackStatus.LOADING)

        if restarting:
            logger.debug(LogTemplates.PLAY_RESTARTING, self._key)
            await self._stop_transport(StopReason.SKIP)
            await self._sleep(self._playback.restart_grace_ms)
            if not self._owns_load(generation, track):
                return self._abandon_load(generation, track)

        logger.info(LogTemplates.PLAY_ATTEMPT, self._key, track.title)
        try:
            stream = await self._open_stream(track)
        except StreamUnavailableError as e:
            if not self._owns_load(generation, track):
                return self._abandon_load(generation, track)
            track.last_error = e.message
            logger.warning(LogTemplates.STREAM_UNAVAILABLE, self._key, e.message)
            self._set_status(PlaybackStatus.IDLE)
            await self._handle_stream_failure(track, FailureKind.RESOLUTION, e.message)
            return False

        if not self._owns_load(generation, track):
            return self._abandon_load(generation, track)

        try:
            await self._transport.play(stream, volume=self._volume / 100)
        except Exception as e:
            logger.exception(LogTemplates.PLAY_TRANSPORT_FAILED, self._key, track.title)
            track.last_error = str(e)
            self._set_status(PlaybackStatus.IDLE)
            await self._handle_stream_failure(track, FailureKind.TRANSPORT, str(e))
            return False

        if not self._load_started(generation, track):
            logger.debug(
                LogTemplates.PLAY_FAILED_ON_START, self._key, track.title, self._status.value
            )
            return False

        track.played_at = utcnow()
        self._history.append(track)
        self._prefetch.arm(self._queue, self._clock.elapsed_ms())
        logger.info(
            LogTemplates.PLAY_STARTED, self._key, track.title, format_duration(track.duration_ms or 0)
        )
        await self._save()
        return True

    async def pause(self) -> bool:
        if self._status is not PlaybackStatus.PLAYING:
            return False
        self._set_status(PlaybackStatus.PAUSED)
        position = self._clock.pause()
        if not await self._transport.pause():
            self._clock.resume()
            self._set_status(PlaybackStatus.PLAYING)
            return False
        logger.info(LogTemplates.PAUSED, self._key, position)
        return True

    async def resume(self) -> bool:
        if self._status is not PlaybackStatus.PAUSED:
            return False
        self._set_status(PlaybackStatus.PLAYING)
        position = self._clock.resume()
        if not await self._transport.unpause():
            self._clock.pause()
            self._set_status(PlaybackStatus.PAUSED)
            return False
        logger.info(LogTemplates.RESUMED, self._key, position)
        return True

    async def skip(self) -> bool:
        """Drop the current track and move on.

        With ``LoopMode.TRACK`` the loop check runs before removal, so the
        current track is replayed and stays in the queue.
        """
        track = self._queue.current
        if track is None:
            return False
        if self._status in (PlaybackStatus.TRANSITIONING, PlaybackStatus.SEEKING):
            logger.debug(LogTemplates.PLAY_REJECTED, self._key, self._status.value)
            return False

        epoch = self._begin_transition()
        await self._stop_transport(StopReason.SKIP)
        self._clock.reset()
        self._prefetch.cancel()
        logger.info(LogTemplates.TRACK_SKIPPED, self._key, track.title)
        await self._publish(
            TrackEnded(track_id=track.id, track_title=track.title, reason=TrackFinishReason.SKIPPED)
        )

        if self._loop_mode is LoopMode.TRACK:
            logger.info(LogTemplates.TRACK_LOOPING, self._key, track.title)
            await self._sleep(self._playback.skip_settle_ms)
            if not self._end_transition(epoch):
                return False
            return await self.play()

        self._drop_track(track)
        await self._publish_queue_updated()
        await self._sleep(self._playback.skip_settle_ms)
        if not self._end_transition(epoch):
            return False
        await self._continue_from_cursor(track, allow_recommendation=False)
        return True

    async def previous(self) -> bool:
        """Step the cursor back (floored at 0) and replay."""
        if len(self._history) == 0 or self._queue.is_empty:
            return False
        if self._status in (PlaybackStatus.TRANSITIONING, PlaybackStatus.SEEKING):
            return False
        self._queue.rewind()
        return await self.play()

    async def jump_to(self, index: int) -> bool:
        if not 0 <= index < len(self._queue):
            logger.debug(LogTemplates.JUMP_REJECTED, self._key, index, len(self._queue))
            return False
        if self._status in (PlaybackStatus.TRANSITIONING, PlaybackStatus.SEEKING):
            return False

        epoch = self._begin_transition()
        await self._stop_transport(StopReason.SKIP)
        self._clock.reset()
        await self._sleep(self._playback.jump_settle_ms)
        if not self._end_transition(epoch):
            return False
        self._queue.jump(index)
        return await self.play()

    async def seek(self, seconds: int) -> bool:
        """Restart the current track at ``seconds``.

        A failed seek leaves the session IDLE on the same track; it does not advance.
        """
        if seconds < 0:
            logger.debug(LogTemplates.SEEK_INVALID, self._key, seconds, ErrorMessages.NEGATIVE_SEEK)
            return False
        track = self._queue.current
        if track is None or self._status.is_busy or self._status is PlaybackStatus.STOPPED:
            logger.debug(LogTemplates.SEEK_REJECTED, self._key, seconds, self._status.value)
            return False

        target_ms = seconds * 1000
        self._set_status(PlaybackStatus.SEEKING)
        self._prefetch.cancel()
        await self._stop_transport(StopReason.SEEK)

        try:
            stream = await self._open_stream(track, seek_seconds=seconds)
        except StreamUnavailableError as e:
            logger.warning(LogTemplates.SEEK_FAILED, self._key, seconds, e.message)
            track.last_error = e.message
            self._stop_reason = None
            self._clock.reset()
            if self._status is PlaybackStatus.SEEKING:
                self._set_status(PlaybackStatus.IDLE)
            return False

        if self._status is not PlaybackStatus.SEEKING:
            return False
        if self._queue.current is not track:
            logger.debug(LogTemplates.SEEK_ABANDONED, self._key, seconds, track.title)
            self._stop_reason = None
            self._release_superseded()
            return False

        self._pending_seek_ms = target_ms
        try:
            await self._transport.play(stream, volume=self._volume / 100)
        except Exception as e:
            logger.warning(LogTemplates.SEEK_FAILED, self._key, seconds, e)
            self._stop_reason = None
            self._pending_seek_ms = 0
            self._clock.reset()
            self._set_status(PlaybackStatus.IDLE)
            return False

        self._clock.seek(target_ms)
        logger.info(LogTemplates.SEEK_DONE, self._key, seconds)
        return True

    async def stop(self, user_initiated: bool = False) -> bool:
        """Stop playback and clear the cursor.

        A user-initiated stop also disables auto-continuation.
        """
        self._cancel_pending_work()
        await self._stop_transport(StopReason.SKIP)
        self._queue.current_index = -1
        self._clock.reset()
        self._set_status(PlaybackStatus.STOPPED)
        if user_initiated:
            self._auto_continuation = False
        logger.info(LogTemplates.STOPPED, self._key, user_initiated)
        await self._publish(PlaybackStopped(user_initiated=user_initiated))
        await self._save()
        return True

    async def set_volume(self, volume: int) -> int:
        self._volume = max(0, min(100, int(volume)))
        if self._transport.is_streaming:
            try:
                self._transport.set_volume(self._volume / 100)
            except Exception:
                logger.exception(LogTemplates.VOLUME_APPLY_FAILED, self._key)
        logger.info(LogTemplates.VOLUME_SET, self._key, self._volume)
        await self._save()
        return self._volume

    async def set_loop(self, mode: LoopMode) -> LoopMode:
        self._loop_mode = mode
        logger.info(LogTemplates.LOOP_MODE_CHANGED, self._key, mode.value)
        await self._save()
        return mode

    async def toggle_repeat(self) -> LoopMode:
        """Cycle Off -> Track -> Queue -> Off."""
        return await self.set_loop(self._loop_mode.next_mode())

    async def shuffle(self) -> int:
        """One-shot Fisher-Yates of the tracks after the cursor."""
        count = self._queue.shuffle_upcoming(self._rng)
        logger.info(LogTemplates.QUEUE_SHUFFLED, self._key, count)
        if self._status is PlaybackStatus.PLAYING:
            self._prefetch.arm(self._queue, self._clock.elapsed_ms())
        await self._publish_queue_updated()
        await self._save()
        return count

    async def toggle_shuffle(self) -> bool:
        self._shuffle_enabled = not self._shuffle_enabled
        if self._shuffle_enabled:
            await self.shuffle()
        return self._shuffle_enabled

    async def set_auto_play(self, enabled: bool) -> bool:
        """Toggle auto-continuation; enabling it on an idle, empty queue fetches a track."""
        self._auto_continuation = enabled
        logger.info(LogTemplates.AUTO_PLAY_CHANGED, self._key, "enabled" if enabled else "disabled")
        if (
            enabled
            and self._queue.current is None
            and not (self._status.is_active or self._status.is_busy)
        ):
            await self.find_and_play_recommendation()
        await self._save()
        return enabled

    # ── Queue commands ──────────────────────────────────────────────

    async def add_to_queue(self, track: Track, position: int | None = None) -> EnqueueResult:
        """Enqueue a track, rejecting fingerprint duplicates.

        Enqueueing into an empty queue while idle arms the auto-start timer.
        """
        return await self._enqueue(track, position, autostart=True)

    async def add_playlist(self, tracks: list[Track]) -> int:
        added = 0
        for track in tracks:
            result = await self._enqueue(track, None, autostart=True)
            if result.success:
                added += 1
        return added

    async def remove_from_queue(self, index: int) -> Track | None:
        """Remove a track; removing the current track skips it."""
        if not 0 <= index < len(self._queue):
            return None
        if index == self._queue.current_index:
            track = self._queue.current
            return track if await self.skip() else None

        track = self._queue.remove_at(index)
        self._prefetch.forget(track.url)
        self._schedule_cleanup(track)
        logger.info(LogTemplates.QUEUE_REMOVED, self._key, track.title)
        await self._publish_queue_updated()
        await self._save()
        return track

    async def move_in_queue(self, from_index: int, to_index: int) -> bool:
        size = len(self._queue)
        if not (0 <= from_index < size and 0 <= to_index < size):
            return False
        self._queue.move(from_index, to_index)
        logger.info(LogTemplates.QUEUE_MOVED, self._key, from_index, to_index)
        await self._publish_queue_updated()
        await self._save()
        return True

    async def clear_queue(self, user_initiated: bool = False) -> int:
        """Empty the queue; the current stream, if any, keeps playing out."""
        count = self._queue.clear()
        self._prefetch.reset()
        self._timers.cancel(TimerNames.AUTOSTART)
        self._timers.cancel(TimerNames.REFILL)
        if user_initiated:
            self._auto_continuation = False
        logger.info(LogTemplates.QUEUE_CLEARED, self._key, count, user_initiated)
        await self._publish_queue_updated()
        await self._saver.clear()
        return count

    async def clear_track(self, track_id: TrackId) -> bool:
        """Forget a queued track's cached stream and failure bookkeeping."""
        index = self._queue.index_of(track_id)
        if index == -1:
            return False
        track = self._queue[index]
        track.last_error = None
        track.fallback_index = 0
        track.prefetch_resolved = None
        self._ledger.clear_track(track.key)
        await self._invalidate(track)
        return True

    # ── Recommendations ─────────────────────────────────────────────

    async def find_and_play_recommendation(self, seed: Track | None = None) -> bool:
        """Ask for one recommendation, enqueue it unless it is a duplicate, and play it."""
        if self._recommender is None:
            return False
        seed = seed or self._history.last or self._queue.current
        if seed is None:
            logger.info(LogTemplates.RECOMMEND_NO_SEED, self._key)
            return False

        candidate = await self._request_recommendation(seed)
        if candidate is None:
            logger.info(LogTemplates.RECOMMEND_REJECTED, self._key)
            return False

        result = await self._enqueue(candidate, None, autostart=False)
        if not result.success:
            logger.info(LogTemplates.RECOMMEND_REJECTED, self._key)
            return False

        logger.info(LogTemplates.RECOMMEND_PLAYING, self._key, candidate.title, candidate.author)
        self._queue.jump(result.position)
        return await self.play()

    async def fill_queue_with_recommendations(self, count: int | None = None) -> int:
        """Append up to ``count`` recommended tracks; duplicates are discarded."""
        if self._recommender is None:
            return 0
        count = count or self._playback.refill_count
        added = 0
        for _ in range(count):
            tracks = self._queue.tracks
            seed = tracks[-1] if tracks else self._history.last
            if seed is None:
                break
            candidate = await self._request_recommendation(seed)
            if candidate is None:
                break
            result = await self._enqueue(candidate, None, autostart=False)
            if result.success:
                added += 1
        if added:
            logger.info(LogTemplates.REFILL_ADDED, self._key, added)
        return added

    async def _request_recommendation(self, seed: Track) -> Track | None:
        recommender = self._recommender
        if recommender is None:
            return None
        context = RecommendationContext(session_key=self._key, queued=tuple(self._queue))
        try:
            candidate = await recommender.next_recommendation(
                seed, self._history.recent(self._playback.history_size), context
            )
        except Exception:
            logger.exception(LogTemplates.RECOMMEND_FAILED, self._key)
            return None
        if candidate is not None:
            candidate.is_from_recommendation = True
        return candidate

    def _can_recommend(self) -> bool:
        return self._auto_continuation and self._recommender is not None

    def _maybe_schedule_refill(self) -> None:
        if not (self._playback.refill_when_low and self._can_recommend()):
            return
        if len(self._queue.upcoming) >= self._playback.low_queue_threshold:
            return

        async def refill() -> None:
            await self.fill_queue_with_recommendations(self._playback.refill_count)

        self._timers.schedule(TimerNames.REFILL, 0, refill)

    # ── Persistence & lifecycle ─────────────────────────────────────

    async def restore(self) -> bool:
        """Load the persisted queue and modes. The cursor starts unset."""
        snapshot = await self._saver.load()
        if snapshot is None:
            return False
        self._queue.replace([track.model_copy() for track in snapshot.queue])
        self._loop_mode = snapshot.loop_mode
        self._volume = snapshot.volume
        self._auto_continuation = snapshot.auto_continuation
        logger.info(
            LogTemplates.SNAPSHOT_RESTORED,
            len(self._queue),
            self._key,
            self._loop_mode.value,
            self._volume,
            self._auto_continuation,
        )
        await self._publish_queue_updated()
        return True

    async def close(self) -> None:
        """Cancel every timer, stop the transport and flush a final save."""
        if self._closed:
            return
        await self._timers.aclose()
        try:
            await self._stop_transport(StopReason.SKIP)
        except Exception:
            logger.exception(LogTemplates.SESSION_CLOSE_FAILED, self._key)
        self._clock.reset()
        self._set_status(PlaybackStatus.IDLE)
        self._closed = True
        await self._saver.save(self._snapshot(), force=True)

    # ── Internals: end of track ─────────────────────────────────────

    async def _handle_track_end(self, track: Track | None) -> None:
        epoch = self._begin_transition()
        self._clock.reset()
        if track is not None:
            logger.info(LogTemplates.TRACK_FINISHED, self._key, track.title)
            self._ledger.clear_track(track.key)
            await self._publish(
                TrackEnded(
                    track_id=track.id,
                    track_title=track.title,
                    reason=TrackFinishReason.COMPLETED,
                )
            )
            if self._loop_mode is LoopMode.TRACK:
                logger.info(LogTemplates.TRACK_LOOPING, self._key, track.title)
                if self._end_transition(epoch):
                    await self.play()
                return
            self._drop_track(track)
            await self._publish_queue_updated()

        if self._end_transition(epoch):
            await self._continue_from_cursor(track, allow_recommendation=True)

    async def _continue_from_cursor(self, seed: Track | None, *, allow_recommendation: bool) -> bool:
        """Play whatever now sits at the cursor, wrap, recommend, or halt."""
        if self._queue.current is not None:
            return await self.play()
        if self._loop_mode is LoopMode.QUEUE and not self._queue.is_empty:
            logger.info(LogTemplates.QUEUE_WRAPPED, self._key)
            self._queue.wrap()
            return await self.play()
        if allow_recommendation and self._can_recommend():
            if await self.find_and_play_recommendation(seed):
                return True
        await self._halt()
        return False

    async def _halt(self) -> None:
        """End of queue: release the transport and settle in IDLE."""
        logger.info(LogTemplates.HALTED, self._key)
        self._prefetch.cancel()
        await self._stop_transport(StopReason.SKIP)
        self._clock.reset()
        self._set_status(PlaybackStatus.IDLE)
        await self._publish(PlaybackStopped(user_initiated=False))
        await self._save()

    def _drop_track(self, track: Track) -> None:
        index = self._queue.index_of(track.id) if track.id is not None else -1
        if index == -1:
            return
        self._queue.remove_at(index)
        self._prefetch.forget(track.url)
        self._schedule_cleanup(track)

    # ── Internals: error recovery ───────────────────────────────────

    async def _handle_stream_failure(self, track: Track, kind: FailureKind, message: str) -> None:
        if self._status is PlaybackStatus.TRANSITIONING:
            logger.debug(LogTemplates.RECOVERY_IN_PROGRESS, self._key)
            return

        context = RecoveryContext(
            track_key=track.key,
            kind=kind,
            last_error=message or track.last_error,
            has_next=self._queue.current_index + 1 < len(self._queue),
            can_recommend=self._can_recommend(),
            seeking=self._status is PlaybackStatus.SEEKING,
        )
        decision = self._policy.evaluate(self._ledger, context)
        if decision.action is RecoveryAction.SUPPRESS:
            logger.debug(LogTemplates.RECOVERY_SUPPRESSED_SEEK, self._key)
            return

        epoch = self._begin_transition()
        track_errors = self._ledger.track_errors(track.key)
        logger.info(
            LogTemplates.RECOVERY_DECIDED,
            self._key,
            FailureKind.SYSTEMIC.value if decision.systemic else kind.value,
            track.title,
            track_errors,
            self._ledger.consecutive,
            decision.action.value,
            decision.delay_ms,
        )
        await self._publish(
            RecoveryScheduled(
                track_title=track.title,
                kind=FailureKind.SYSTEMIC if decision.systemic else kind,
                action=decision.action.value,
                delay_ms=decision.delay_ms,
                track_errors=track_errors,
                consecutive_errors=self._ledger.consecutive,
            )
        )
        if decision.invalidate_cache:
            track.fallback_index += 1
            await self._invalidate(track)

        async def apply() -> None:
            await self._apply_recovery(epoch, track, decision)

        self._timers.schedule(TimerNames.RECOVERY, decision.delay_ms, apply)

    async def _apply_recovery(self, epoch: int, track: Track, decision: RecoveryDecision) -> None:
        if not self._end_transition(epoch):
            logger.debug(LogTemplates.RECOVERY_STALE, self._key, track.title)
            return

        try:
            action = decision.action
            if action is RecoveryAction.RETRY:
                if self._queue.current is track:
                    await self.play()
                else:
                    await self._continue_from_cursor(track, allow_recommendation=True)
                return

            if action is RecoveryAction.ADVANCE:
                if self._queue.advance() is not None:
                    await self.play()
                else:
                    await self._continue_from_cursor(track, allow_recommendation=True)
                return

            if decision.drop_current:
                await self._stop_transport(StopReason.SKIP)
                self._drop_track(track)
                await self._publish(
                    TrackEnded(
                        track_id=track.id,
                        track_title=track.title,
                        reason=TrackFinishReason.FAILED,
                    )
                )
                await self._publish_queue_updated()

            if action is RecoveryAction.SKIP:
                await self._continue_from_cursor(track, allow_recommendation=True)
            elif action is RecoveryAction.RECOMMEND:
                if not await self.find_and_play_recommendation(track):
                    await self._halt()
            else:
                await self._halt()
        except Exception:
            logger.exception(LogTemplates.RECOVERY_FAILED, self._key)
            if self._status is not PlaybackStatus.IDLE:
                self._set_status(PlaybackStatus.IDLE)

    def _begin_transition(self) -> int:
        """Enter TRANSITIONING and arm the watchdog that force-releases it."""
        self._transition_epoch += 1
        epoch = self._transition_epoch
        self._set_status(PlaybackStatus.TRANSITIONING)

        async def release() -> None:
            if self._status is PlaybackStatus.TRANSITIONING and self._transition_epoch == epoch:
                logger.warning(LogTemplates.GUARD_FORCED_RELEASE, self._key)
                self._set_status(PlaybackStatus.IDLE)

        self._timers.schedule(TimerNames.RECOVERY_GUARD, self._policy.guard_timeout_ms, release)
        return epoch

    def _end_transition(self, epoch: int) -> bool:
        """Release the guard if ``epoch`` still owns it. Status stays TRANSITIONING."""
        if self._transition_epoch != epoch or self._status is not PlaybackStatus.TRANSITIONING:
            return False
        self._timers.cancel(TimerNames.RECOVERY_GUARD)
        return True

    # ── Internals: helpers ──────────────────────────────────────────

    async def _enqueue(self, track: Track, position: int | None, *, autostart: bool) -> EnqueueResult:
        track.normalize_for_queue()
        window = [*self._queue, *self._history.recent(self._playback.duplicate_history_window)]
        if find_duplicate(track, window) is not None:
            track.skipped_duplicate = True
            logger.info(LogTemplates.QUEUE_DUPLICATE, self._key, track.title, track.author)
            return EnqueueResult(
                success=False,
                track=track,
                queue_length=len(self._queue),
                message=f"'{track.title}' is already queued or was played recently",
                skipped_duplicate=True,
            )

        was_empty = self._queue.is_empty
        index = self._queue.add(track, position)
        logger.info(LogTemplates.QUEUE_ENQUEUED, self._key, track.title, index)

        if track.source.is_deferred and self._in_warm_window(index):
            self._prefetch.schedule_warm(track)

        should_start = was_empty and self._status in (PlaybackStatus.IDLE, PlaybackStatus.STOPPED)
        if should_start and autostart:
            self._timers.schedule(
                TimerNames.AUTOSTART, self._playback.autostart_delay_ms, self._autostart
            )

        await self._publish(
            TrackAddedToQueue(track_id=track.id, track_title=track.title, queue_position=index)
        )
        await self._publish_queue_updated()
        await self._save()
        return EnqueueResult(
            success=True,
            track=track,
            position=index,
            queue_length=len(self._queue),
            message=f"Added '{track.title}' at position {index + 1}",
            should_start=should_start,
        )

    async def _autostart(self) -> None:
        if self._status not in (PlaybackStatus.IDLE, PlaybackStatus.STOPPED):
            return
        if self._queue.is_empty:
            return
        if self._queue.current_index == -1:
            self._queue.current_index = 0
        current = self._queue.current
        logger.info(LogTemplates.QUEUE_AUTOSTART, self._key, current.title if current else "")
        await self.play()

    def _in_warm_window(self, index: int) -> bool:
        return index - max(self._queue.current_index, 0) <= max(2, self._prefetch.depth)

    async def _open_stream(self, track: Track, seek_seconds: int | None = None) -> AudioStream:
        """Resolve a stream and check it is usable before a transport sees it."""
        try:
            stream = await self._resolver.resolve(track, ResolveOptions(seek_seconds=seek_seconds))
        except StreamUnavailableError:
            raise
        except Exception as e:
            raise StreamUnavailableError(track.title, str(e) or type(e).__name__) from e
        if stream is None:
            raise StreamUnavailableError(track.title, ErrorMessages.RESOLVER_RETURNED_NONE)
        if not stream.readable or stream.destroyed:
            raise StreamUnavailableError(track.title, ErrorMessages.STREAM_NOT_READABLE)
        return stream

    async def _stop_transport(self, reason: StopReason) -> None:
        """Stop the transport, tagging the resulting idle event as intentional."""
        if not self._transport.is_streaming:
            return
        self._stop_reason = reason
        await self._transport.stop(force_flush=True)

    async def _invalidate(self, track: Track) -> None:
        self._prefetch.forget(track.url)
        try:
            await self._resolver.invalidate_cache(track.key)
        except Exception:
            logger.exception(LogTemplates.CACHE_INVALIDATE_FAILED, track.key)

    def _schedule_cleanup(self, track: Track) -> None:
        cleanup = self._settings.cleanup
        if not cleanup.auto_delete_finished:
            return
        url = track.url

        async def clean() -> None:
            if self._queue.contains_url(url):
                logger.debug(LogTemplates.CLEANUP_SKIPPED_REQUEUED, url)
                return
            self._prefetch.forget(url)
            await self._resolver.invalidate_cache(url)
            logger.debug(LogTemplates.CLEANUP_DONE, url)

        self._timers.schedule(f"{TimerNames.CLEANUP_PREFIX}{url}", cleanup.delete_delay_ms, clean)
        logger.debug(LogTemplates.CLEANUP_SCHEDULED, url, cleanup.delete_delay_ms)

    def _cancel_pending_work(self) -> None:
        for name in (
            TimerNames.RECOVERY,
            TimerNames.RECOVERY_GUARD,
            TimerNames.AUTOSTART,
            TimerNames.REFILL,
        ):
            self._timers.cancel(name)
        self._prefetch.cancel()

    def _owns_load(self, generation: int, track: Track) -> bool:
        return (
            generation == self._load_generation
            and self._status is PlaybackStatus.LOADING
            and self._queue.current is track
        )

    def _load_started(self, generation: int, track: Track) -> bool:
        """The transport took the stream without failing inline."""
        return (
            generation == self._load_generation
            and self._status in (PlaybackStatus.LOADING, PlaybackStatus.PLAYING)
            and self._queue.current is track
        )

    def _abandon_load(self, generation: int, track: Track) -> bool:
        logger.debug(LogTemplates.PLAY_ABANDONED, self._key, track.title)
        if generation == self._load_generation and self._status is PlaybackStatus.LOADING:
            self._release_superseded()
        return False

    def _release_superseded(self) -> None:
        """Drop a LOADING or SEEKING guard whose track stopped being current mid-await.

        Whatever the queue holds now is handed to the auto-start timer.
        """
        self._pending_seek_ms = 0
        self._clock.reset()
        self._set_status(PlaybackStatus.IDLE)
        if not self._queue.is_empty:
            self._timers.schedule(
                TimerNames.AUTOSTART, self._playback.autostart_delay_ms, self._autostart
            )

    def _set_status(self, target: PlaybackStatus) -> None:
        if target is self._status:
            return
        if not self._status.can_transition_to(target):
            raise InvalidOperationError(
                f"set_status({target.value})",
                self._status.value,
                ErrorMessages.INVALID_TRANSITION.format(
                    current=self._status.value, target=target.value
                ),
            )
        logger.debug(LogTemplates.STATUS_CHANGED, self._key, self._status.value, target.value)
        self._status = target

    def _snapshot(self) -> QueueSnapshot:
        return QueueSnapshot(
            queue=self._queue.tracks,
            current_index=self._queue.current_index,
            loop_mode=self._loop_mode,
            volume=self._volume,
            auto_continuation=self._auto_continuation,
        )

    async def _save(self) -> None:
        if self._saver.enabled:
            await self._saver.save(self._snapshot())

    async def _publish(self, event: DomainEvent) -> None:
        await self._bus.publish(event.model_copy(update={"session_key": self._key}))

    async def _publish_queue_updated(self) -> None:
        await self._publish(
            QueueUpdated(queue_length=len(self._queue), current_index=self._queue.current_index)
        )

    @staticmethod
    async def _sleep(ms: int) -> None:
        if ms > 0:
            await asyncio.sleep(ms / 1000)
