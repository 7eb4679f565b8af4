"""Error taxonomy for the minutes pipeline and the request surface.

Pipeline errors are caught at the stage boundary and folded into the
meeting's ``FAILED`` status together with a :class:`FailureKind`. Request
errors carry an HTTP status and propagate to the caller.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    """Why a pipeline stage moved a meeting to FAILED."""

    CONFIGURATION = "configuration"
    REMOTE_ERROR = "remote_error"
    TIMED_OUT = "timed_out"
    PARSE_ERROR = "parse_error"
    UNEXPECTED = "unexpected"


class MinutesError(Exception):
    http_status: int = 500


class ConfigurationError(MinutesError):
    """Credentials or settings for an external service are missing."""

    http_status = 503


class RemoteServiceError(MinutesError):
    """An external service call failed or reported a job-level error."""

    http_status = 502

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TranscriptionTimeoutError(RemoteServiceError):
    """The transcription job did not reach a terminal state in time."""

    http_status = 504


class ResponseParseError(MinutesError):
    """A remote payload could not be turned into the expected shape."""

    http_status = 502


class AuthorizationError(MinutesError):
    http_status = 403


class NotFoundError(MinutesError):
    http_status = 404


class InvalidTransitionError(MinutesError):
    http_status = 409


class ExportError(MinutesError):
    http_status = 500


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an exception raised inside a stage to the failure kind recorded on the meeting."""
    if isinstance(exc, ConfigurationError):
        return FailureKind.CONFIGURATION
    if isinstance(exc, TranscriptionTimeoutError):
        return FailureKind.TIMED_OUT
    if isinstance(exc, RemoteServiceError):
        return FailureKind.REMOTE_ERROR
    if isinstance(exc, ResponseParseError):
        return FailureKind.PARSE_ERROR
    return FailureKind.UNEXPECTED
