"""
Exceptions raised by the outbox.

Per-record errors (TransportError, ServerRejection) drive the retry policy.
AuthenticationError is fatal for a whole cycle. SyncInterrupted is benign.
"""
from __future__ import annotations

from typing import Any, Sequence


class OutboxError(Exception):
    """Base error for the outbox package."""


class TransportError(OutboxError):
    """Network, timeout or protocol failure; no usable response was received."""

    def __init__(self, message: str, *, kind: str = "request_error"):
        super().__init__(message)
        self.kind = kind  # "timeout" | "connect" | "protocol" | "request_error"


class ServerRejection(OutboxError):
    """A response arrived but its status is outside the queue's success set."""

    def __init__(self, status_code: int, body: Any = None):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class AuthenticationError(OutboxError):
    """No usable credential for this cycle."""


class SyncInterrupted(OutboxError):
    """The interactive session became foreground; stop at the next record boundary."""

    def __init__(self, message: str, *, outcomes: Sequence[Any] = ()):
        super().__init__(message)
        self.outcomes = list(outcomes)


class ConfigurationError(OutboxError):
    """Unknown or invalid queue registration."""


class DuplicateEntryError(OutboxError):
    pass


class EntryNotFoundError(OutboxError):
    pass


class QueueAborted(OutboxError):
    """A queue stopped on an unexpected error; carries the outcomes committed before it."""

    def __init__(self, message: str, *, outcomes: Sequence[Any] = ()):
        super().__init__(message)
        self.outcomes = list(outcomes)
