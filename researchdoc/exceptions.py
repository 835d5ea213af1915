"""
Error taxonomy shared by the services, the HTTP layer and the Python client.

Every error carries the HTTP status it maps to and a short human-readable
message.  ``main.py`` registers a handler that renders any
``ResearchDocError`` as ``{"detail": ..., "error": <class name>}``; the client
maps response statuses back onto the same classes (see ``error_for_status``).
"""
from __future__ import annotations

from typing import Dict, Optional, Type


class ResearchDocError(Exception):
    """Base class for all expected, user-facing failures."""

    status_code: int = 500
    default_detail: str = "Unexpected error"

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unauthorized(ResearchDocError):
    status_code = 401
    default_detail = "Missing authorization"


class InvalidInput(ResearchDocError):
    status_code = 400
    default_detail = "Invalid input"


class InvalidFileFormat(InvalidInput):
    default_detail = "File content does not match its declared format."


class FileTooLarge(InvalidInput):
    status_code = 413
    default_detail = "File exceeds the upload size limit."


class ProtectedSectionError(InvalidInput):
    default_detail = "The Problem Statement section cannot be deleted."


class NotFound(ResearchDocError):
    status_code = 404
    default_detail = "Not found"


class UpstreamRateLimited(ResearchDocError):
    status_code = 429
    default_detail = "Rate limit exceeded. Please try again in a moment."


class UpstreamQuotaExhausted(ResearchDocError):
    status_code = 402
    default_detail = "AI credits exhausted. Please add credits to continue."


class UpstreamUnavailable(ResearchDocError):
    status_code = 502
    default_detail = "AI gateway error"


class MissingConfiguration(ResearchDocError):
    status_code = 500
    default_detail = "LLM_API_KEY is not configured"


class PersistenceFailure(ResearchDocError):
    status_code = 500
    default_detail = "Failed to save changes"


class MalformedModelOutput(ResearchDocError):
    """Raised internally when a model reply cannot be parsed; never surfaced."""

    status_code = 500
    default_detail = "Model returned malformed output"


_STATUS_TO_ERROR: Dict[int, Type[ResearchDocError]] = {
    400: InvalidInput,
    401: Unauthorized,
    402: UpstreamQuotaExhausted,
    404: NotFound,
    413: FileTooLarge,
    422: InvalidInput,
    429: UpstreamRateLimited,
    502: UpstreamUnavailable,
}


_NAME_TO_ERROR: Dict[str, Type[ResearchDocError]] = {
    cls.__name__: cls
    for cls in (
        Unauthorized,
        InvalidInput,
        InvalidFileFormat,
        FileTooLarge,
        ProtectedSectionError,
        NotFound,
        UpstreamRateLimited,
        UpstreamQuotaExhausted,
        UpstreamUnavailable,
        MissingConfiguration,
        PersistenceFailure,
    )
}


def error_for_status(
    status_code: int,
    detail: Optional[str] = None,
    error_name: Optional[str] = None,
) -> ResearchDocError:
    """
    Build the taxonomy error matching an HTTP response (client side).

    The ``error`` class name from the response body wins when it is known and
    agrees with the status; otherwise the status alone picks the class.
    """
    error_cls = _NAME_TO_ERROR.get(error_name or "")
    if error_cls is None or error_cls.status_code != status_code:
        error_cls = _STATUS_TO_ERROR.get(status_code, PersistenceFailure)
    return error_cls(detail)
