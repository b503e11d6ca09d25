"""Base exception classes for domain-level errors."""

from __future__ import annotations

from ...domain.shared.messages import ErrorMessages


class DomainError(Exception):
    """Base exception for all domain-level errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class InvalidOperationError(DomainError):
    """Raised when an operation is invalid in the current state."""

    def __init__(self, operation: str, current_state: str, message: str | None = None) -> None:
        msg = message or f"Cannot perform '{operation}' in state '{current_state}'"
        super().__init__(msg, code="INVALID_OPERATION")
        self.operation = operation
        self.current_state = current_state


class InvalidCommandError(DomainError):
    """Raised when a command is called with arguments that can never succeed."""

    def __init__(self, command: str, message: str) -> None:
        super().__init__(message, code="INVALID_COMMAND")
        self.command = command


class StreamUnavailableError(DomainError):
    """Raised when the resolver cannot produce a readable stream for a track."""

    def __init__(self, title: str, reason: str) -> None:
        super().__init__(
            ErrorMessages.STREAM_UNAVAILABLE.format(title=title, reason=reason),
            code="STREAM_UNAVAILABLE",
        )
        self.title = title
        self.reason = reason
