"""Domain exceptions and error classification.

Classifies collaborator exceptions by category to enable:
- Structured logging (which errors are transient vs permanent)
- Informative user messages (timeout vs auth vs server)
"""

from __future__ import annotations

import asyncio
from enum import Enum

# ── Domain exceptions ────────────────────────────────────


class DocControlError(Exception):
    """Base class for all document control errors."""


class UploadValidationError(DocControlError, ValueError):
    """Upload rejected before any session state changes."""


class UnsupportedFileTypeError(UploadValidationError):
    pass


class FileTooLargeError(UploadValidationError):
    pass


class EmptyUploadError(UploadValidationError):
    pass


class AnalysisError(DocControlError):
    """Session-fatal failure of the analysis phase."""


class MalformedAnalysisResponseError(AnalysisError):
    """The analysis service returned something unparseable."""


class AnalysisTimeoutError(AnalysisError, TimeoutError):
    pass


class DocumentNotFoundError(DocControlError, LookupError):
    pass


class VersionConflictError(DocControlError):
    """Optimistic write lost: the stored version moved underneath us."""

    def __init__(
        self, document_id: str, expected: str, actual: str | None
    ) -> None:
        super().__init__(
            f"Version conflict on {document_id}: "
            f"expected {expected}, found {actual}"
        )
        self.document_id = document_id
        self.expected = expected
        self.actual = actual


class StaleRangeError(DocControlError):
    """Recorded range no longer holds the change's original text."""


class IllegalTransitionError(DocControlError):
    """A review operation attempted a transition the lifecycle forbids."""


class InvalidStepError(DocControlError):
    """A session operation was invoked in the wrong workflow step."""


# ── Classification ───────────────────────────────────────


class ErrorClass(Enum):
    TRANSIENT = "transient"  # 429, network errors
    SERVER = "server"  # 500, 502, 503
    TIMEOUT = "timeout"  # deadline exceeded
    CLIENT = "client"  # 400, 401, 403
    UNKNOWN = "unknown"  # unclassified


def classify_error(error: Exception) -> ErrorClass:
    """Classify an error to determine handling strategy.

    Checks structured attributes first (status_code), falls back
    to string matching for untyped exceptions.
    """
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        if status_code == 429:
            return ErrorClass.TRANSIENT
        if 400 <= status_code < 500:
            return ErrorClass.CLIENT
        if 500 <= status_code < 600:
            return ErrorClass.SERVER

    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ErrorClass.TIMEOUT

    msg = str(error).lower()

    if "timeout" in msg or "timed out" in msg:
        return ErrorClass.TIMEOUT
    if "429" in msg or "rate limit" in msg or "rate_limit" in msg:
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("500", "502", "503", "504")):
        return ErrorClass.SERVER
    if "econnrefused" in msg or "connection" in msg:
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("400", "401", "403", "404")):
        return ErrorClass.CLIENT

    return ErrorClass.UNKNOWN


_USER_MESSAGES: dict[ErrorClass, str] = {
    ErrorClass.TRANSIENT: (
        "The analysis service is busy or unreachable. Please retry."
    ),
    ErrorClass.SERVER: "The analysis service failed. Please retry.",
    ErrorClass.TIMEOUT: "The analysis service timed out. Please retry.",
    ErrorClass.CLIENT: (
        "The analysis service rejected the request. "
        "Check the configured credentials."
    ),
}


def user_message(error: Exception) -> str:
    """Human-readable summary of a session-fatal error."""
    if isinstance(error, MalformedAnalysisResponseError):
        return (
            "The analysis service returned an unreadable response: "
            f"{error}"
        )
    if isinstance(error, UploadValidationError):
        return str(error)
    return _USER_MESSAGES.get(
        classify_error(error), f"Analysis failed: {error}"
    )
