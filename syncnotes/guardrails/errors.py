"""Failure taxonomy for the analysis pipeline and meeting lifecycle, plus the mapping onto HTTP errors."""
import structlog
from fastapi import HTTPException

logger = structlog.get_logger(__name__)


class MeetingError(Exception):
    """Base class for every failure the service reports on purpose."""


class TransportFailure(MeetingError):
    """The inference service could not be reached or the call errored; raised after retries are exhausted."""


class TimeoutFailure(MeetingError):
    """A deadline race was lost. Carries the elapsed time so callers can surface it."""

    def __init__(self, message: str, elapsed_seconds: float = 0.0, attempts: int = 1):
        super().__init__(message)
        self.elapsed_seconds = elapsed_seconds
        self.attempts = attempts


class SchemaParseFailure(MeetingError):
    """Model output did not match the requested shape."""


class ProcessingFailure(SchemaParseFailure):
    """Meeting intelligence could not be extracted from the model output. Never retried automatically."""


class NotificationFailure(MeetingError):
    """The reporting collaborator failed after a publish had already committed."""


class ValidationFailure(MeetingError):
    """Input was rejected before any external call was made."""


class MeetingNotFound(MeetingError):
    """No meeting with this id, or the meeting is not reachable through the requested path."""


class InvalidStateTransition(MeetingError):
    """The lifecycle does not allow this operation in the meeting's current state."""


class PermissionDenied(MeetingError):
    """The caller's role may not perform this operation (admin-only actions requested as a member)."""


_STATUS_BY_ERROR = (
    (ValidationFailure, 400),
    (PermissionDenied, 403),
    (MeetingNotFound, 404),
    (InvalidStateTransition, 409),
    (SchemaParseFailure, 422),
    (TransportFailure, 503),
    (TimeoutFailure, 504),
)


def as_http_500(e: Exception) -> HTTPException:
    """Log exception and return a generic 500 HTTPException (no internal details leaked).
    Why available: Centralized error handling so API never leaks stack traces or internal state to clients."""
    logger.error("api.unhandled_error", exc_info=e)
    return HTTPException(status_code=500, detail="Internal server error")


def as_http_error(e: Exception) -> HTTPException:
    """Map a MeetingError onto the matching HTTP status with its message; anything else becomes a generic 500.
    Why available: Routes share one translation so validation, lifecycle and upstream failures read the same everywhere."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(e, error_type):
            return HTTPException(status_code=status_code, detail=str(e))
    return as_http_500(e)
