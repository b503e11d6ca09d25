"""
Domain Layer

Contains pure business logic organized by bounded contexts:
- shared/: Cross-cutting types, messages, exceptions and events
- music/: Track, queue, position clock, fingerprinting and recovery policy
"""

from continuous_playback.domain.shared.exceptions import DomainError

__all__ = [
    "DomainError",
]
