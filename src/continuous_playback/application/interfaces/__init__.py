"""
Application Interfaces (Ports)

Abstract interfaces that define contracts between the playback session
and the collaborators it drives. These are the "ports" in
hexagonal architecture.
"""

from continuous_playback.application.interfaces.recommendation import (
    RecommendationContext,
    RecommendationGenerator,
)
from continuous_playback.application.interfaces.source_resolver import (
    AudioStream,
    ResolveOptions,
    SourceResolver,
)
from continuous_playback.application.interfaces.voice_transport import (
    TransportListener,
    VoiceTransport,
)

__all__ = [
    "AudioStream",
    "ResolveOptions",
    "SourceResolver",
    "VoiceTransport",
    "TransportListener",
    "RecommendationGenerator",
    "RecommendationContext",
]
