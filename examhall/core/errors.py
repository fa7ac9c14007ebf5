"""
Error taxonomy for the examhall engine.

Remote failures are recoverable (queue and replay later). Malformed local
state never escapes the storage layer. Policy violations (answering with an
option the entry does not have) are not errors at all: the recorder ignores
them.
"""

from __future__ import annotations


class ExamHallError(Exception):
    """Base class for engine errors."""


class RemoteError(ExamHallError):
    """A producer call did not complete."""


class RemoteUnreachableError(RemoteError):
    """Connectivity loss, timeout or 5xx after all retries."""


class RemoteRejectedError(RemoteError):
    """The producer answered with a 4xx status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class SessionNotFoundError(ExamHallError):
    """The producer has no session for an explicit id."""


class UnauthorizedSessionError(ExamHallError):
    """The session belongs to a different identity."""


class MalformedStateError(ExamHallError):
    """A durable record could not be decoded."""
