import asyncio
import random
from collections.abc import Callable

import pytest
import pytest_asyncio

from continuous_playback.application.interfaces.recommendation import (
    RecommendationContext,
    RecommendationGenerator,
)
from continuous_playback.application.interfaces.source_resolver import (
    ResolveOptions,
    SourceResolver,
)
from continuous_playback.application.interfaces.voice_transport import VoiceTransport
from continuous_playback.config.settings import (
    CleanupSettings,
    PersistenceSettings,
    PlaybackSettings,
    PrefetchSettings,
    RecoverySettings,
    Settings,
)
from continuous_playback.domain.music.entities import Track
from continuous_playback.domain.music.value_objects import TrackSource, TransportEvent
from continuous_playback.domain.shared.events import EventBus

# ============================================================================
# Fakes for the external collaborators
# ============================================================================


class FakeStream:
    """Minimal readable stream handed out by the fake resolver."""

    def __init__(self, url: str, seek_seconds: int | None = None) -> None:
        self.url = url
        self.seek_seconds = seek_seconds
        self.readable = True
        self.destroyed = False


class FakeResolver(SourceResolver):
    """Resolver that records calls and fails for configured urls."""

    def __init__(self) -> None:
        self.failures: dict[str, str] = {}
        self.seek_failure: str | None = None
        self.unreadable: set[str] = set()
        self.gate: asyncio.Event | None = None
        self.resolved: list[tuple[Track, ResolveOptions | None]] = []
        self.invalidated: list[str] = []
        self.prewarmed: list[str] = []
        self.prewarm_result: object = None
        self.prewarm_error: str | None = None

    @property
    def resolved_urls(self) -> list[str]:
        return [track.url for track, _ in self.resolved]

    async def resolve(self, track, options=None):
        self.resolved.append((track, options))
        if self.gate is not None:
            await self.gate.wait()
        seek_seconds = options.seek_seconds if options else None
        if seek_seconds is not None and self.seek_failure:
            raise RuntimeError(self.seek_failure)
        if track.url in self.failures:
            raise RuntimeError(self.failures[track.url])
        stream = FakeStream(track.url, seek_seconds)
        if track.url in self.unreadable:
            stream.readable = False
        return stream

    async def search(self, query, limit=5):
        return []

    async def invalidate_cache(self, track_key):
        self.invalidated.append(track_key)

    async def prewarm(self, track):
        self.prewarmed.append(track.url)
        if self.prewarm_error:
            raise RuntimeError(self.prewarm_error)
        return self.prewarm_result


class FakeTransport(VoiceTransport):
    """Transport that reports its events inline, like a synchronous player."""

    def __init__(self) -> None:
        self._listener = None
        self.streaming = False
        self.paused = False
        self.played: list[tuple[FakeStream, float]] = []
        self.stop_calls = 0
        self.volumes: list[float] = []
        self.play_error: str | None = None

    def set_listener(self, listener):
        self._listener = listener

    async def emit(self, event: TransportEvent, error: str | None = None) -> None:
        if self._listener is not None:
            await self._listener(event, error)

    async def play(self, stream, *, volume):
        if self.play_error:
            raise RuntimeError(self.play_error)
        self.played.append((stream, volume))
        self.streaming = True
        self.paused = False
        await self.emit(TransportEvent.PLAYING)

    async def stop(self, force_flush=False):
        self.stop_calls += 1
        if not self.streaming:
            return
        self.streaming = False
        self.paused = False
        await self.emit(TransportEvent.IDLE)

    async def pause(self):
        if not self.streaming or self.paused:
            return False
        self.paused = True
        await self.emit(TransportEvent.PAUSED)
        return True

    async def unpause(self):
        if not self.paused:
            return False
        self.paused = False
        await self.emit(TransportEvent.PLAYING)
        return True

    def set_volume(self, volume):
        self.volumes.append(volume)

    @property
    def is_streaming(self):
        return self.streaming

    async def finish(self) -> None:
        """The stream ran out on its own."""
        self.streaming = False
        await self.emit(TransportEvent.IDLE)

    async def fail(self, message: str) -> None:
        await self.emit(TransportEvent.ERROR, message)


class FakeRecommender(RecommendationGenerator):
    """Hands out queued candidates in order, then None."""

    def __init__(self, candidates: list[Track] | None = None) -> None:
        self.candidates = list(candidates or [])
        self.seeds: list[Track] = []
        self.contexts: list[RecommendationContext] = []

    async def next_recommendation(self, seed, history, context):
        self.seeds.append(seed)
        self.contexts.append(context)
        if not self.candidates:
            return None
        return self.candidates.pop(0)


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = 1_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


# ============================================================================
# Settings
# ============================================================================

FAST_PLAYBACK = {
    "restart_grace_ms": 0,
    "skip_settle_ms": 0,
    "jump_settle_ms": 0,
    "autostart_delay_ms": 0,
    "min_play_duration_ms": 5000,
}

FAST_RECOVERY = {
    "retry_backoff_step_ms": 0,
    "retry_backoff_cap_ms": 0,
    "skip_delay_ms": 0,
    "systemic_delay_ms": 0,
}


def build_settings(
    *,
    playback: dict | None = None,
    prefetch: dict | None = None,
    recovery: dict | None = None,
    persistence: dict | None = None,
    cleanup: dict | None = None,
) -> Settings:
    """Settings with every settle delay at zero, overridable per group."""
    return Settings(
        environment="test",
        playback=PlaybackSettings(**{**FAST_PLAYBACK, **(playback or {})}),
        prefetch=PrefetchSettings(**(prefetch or {})),
        recovery=RecoverySettings(**{**FAST_RECOVERY, **(recovery or {})}),
        persistence=PersistenceSettings(
            **{"url": ":memory:", "save_throttle_ms": 0, **(persistence or {})}
        ),
        cleanup=CleanupSettings(**(cleanup or {})),
    )


async def wait_until(predicate: Callable[[], bool], *, rounds: int = 200) -> None:
    """Yield to the loop until ``predicate`` holds."""
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    assert predicate(), "condition not reached"


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def make_track():
    """Factory for distinct tracks: make_track(1), make_track(2, duration_ms=0)..."""

    def factory(n: int, **overrides) -> Track:
        fields = {
            "url": f"https://example.com/watch?v=track{n}",
            "title": f"Song {n}",
            "author": f"Artist {n}",
            "source": TrackSource.YOUTUBE,
            "duration_ms": 180_000,
        }
        fields.update(overrides)
        return Track(**fields)

    return factory


@pytest.fixture
def wait_for():
    return wait_until


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def settings():
    return build_settings()


@pytest_asyncio.fixture
async def session_factory(resolver, transport, clock, event_bus, settings):
    """Build sessions bound to the shared fakes; all are closed on teardown."""
    from continuous_playback.application.services.playback_session import PlaybackSession

    created = []

    def factory(
        *,
        key: str = "channel-1",
        settings: Settings = settings,
        recommender: RecommendationGenerator | None = None,
        snapshot_store=None,
        transport: VoiceTransport = transport,
    ) -> PlaybackSession:
        session = PlaybackSession(
            key,
            resolver=resolver,
            transport=transport,
            settings=settings,
            recommender=recommender,
            snapshot_store=snapshot_store,
            event_bus=event_bus,
            now_ms=clock,
            rng=random.Random(7),
        )
        created.append(session)
        return session

    yield factory

    for session in created:
        await session.close()


@pytest_asyncio.fixture
async def session(session_factory):
    return session_factory()


@pytest_asyncio.fixture
async def in_memory_database():
    """Create an in-memory SQLite database for testing."""
    from continuous_playback.infrastructure.persistence.database import Database

    db = Database(":memory:")
    await db.initialize()
    yield db
    await db.close()
