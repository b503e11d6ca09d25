"""
Shared Domain Kernel

Contains types, messages and exceptions shared across all bounded contexts.
"""

from continuous_playback.domain.shared.exceptions import (
    DomainError,
    InvalidCommandError,
    InvalidOperationError,
    StreamUnavailableError,
)

__all__ = [
    "DomainError",
    "InvalidCommandError",
    "InvalidOperationError",
    "StreamUnavailableError",
]
