"""Exceptions for litestar-flagsync.

None of these ever escape the evaluation engine; they are raised by the
builder, storage, transport and configuration layers and absorbed into an
:class:`~litestar_flagsync.results.EvaluationResult` at the evaluation
boundary.
"""

from __future__ import annotations

__all__ = [
    "ConfigNotFoundError",
    "ConfigurationError",
    "FlagSyncError",
    "MalformedConditionError",
    "SnapshotBuildError",
    "StaleOrUnreachableError",
    "TransportError",
]


class FlagSyncError(Exception):
    """Base exception for all litestar-flagsync errors."""


class ConfigNotFoundError(FlagSyncError):
    """An unknown flag or environment was requested."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} '{key}' not found")


class StaleOrUnreachableError(FlagSyncError):
    """No snapshot has been synchronised yet."""


class TransportError(FlagSyncError):
    """A snapshot fetch, push stream or telemetry upload failed.

    Args:
        message: Human readable description.
        status_code: HTTP status code, when the failure came from a response.

    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class MalformedConditionError(FlagSyncError):
    """A condition's operand does not fit its operator."""


class SnapshotBuildError(FlagSyncError):
    """Source records cannot be turned into a valid snapshot."""


class ConfigurationError(FlagSyncError, ValueError):
    """Invalid configuration was supplied."""
