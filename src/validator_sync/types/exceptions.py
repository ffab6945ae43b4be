"""Exception hierarchy for the validator sync engine."""

from __future__ import annotations

THROTTLING_EXCEPTION_NAMES: frozenset[str] = frozenset({"ThrottlingException", "ThrottlingError"})
"""Exception class names that signal a store rate limit."""

THROTTLING_MESSAGE_MARKERS: tuple[str, ...] = ("Throughput exceeds", "database is locked")
"""Message fragments that signal a store rate limit."""


class SyncError(Exception):
    """
    Base exception for all sync engine errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class StoreError(SyncError):
    """Raised when a record store read or write fails."""


class ThrottlingError(StoreError):
    """Raised when the record store rejects a request because of its write rate limit."""


class SourceError(SyncError):
    """Base class for failures of an upstream data source."""


class ChainReaderError(SourceError):
    """Raised when the on-chain registry cannot be read."""


class TelemetryError(SourceError):
    """Raised when the telemetry endpoint is unreachable or returns a malformed response."""


class PeerCrawlerError(SourceError):
    """Raised when the peer crawler is unreachable or returns a malformed page."""


class StageFailedError(SyncError):
    """
    Raised when a fatal sync stage fails and the orchestration is aborted.

    Attributes:
        stage: Name of the stage that failed.
        cause: The underlying exception.
    """

    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage '{stage}' failed: {cause}")


def is_throttling_error(error: BaseException) -> bool:
    """
    Check whether an exception carries a rate-limit signature.

    Recognizes our own ThrottlingError as well as foreign exceptions raised
    by storage drivers, identified by class name or message text.
    """
    if isinstance(error, ThrottlingError):
        return True
    if type(error).__name__ in THROTTLING_EXCEPTION_NAMES:
        return True
    message = str(error)
    return any(marker in message for marker in THROTTLING_MESSAGE_MARKERS)
