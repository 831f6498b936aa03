"""Error taxonomy and the mapping from failures to HTTP error responses.

Backend clients raise typed errors, which are classified by type. Errors that
arrive untyped (or as a generic ``BackendError``) fall back to matching on
their message text, which keeps the error tags stable for consumers that
relied on the original message wording.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCategory(StrEnum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFIGURATION = "configuration"
    INITIALIZATION = "initialization"
    INTERNAL = "internal"


class DashboardError(Exception):
    """Base class for errors raised by the dashboard backends."""

    category: ErrorCategory = ErrorCategory.INTERNAL


class ValidationError(DashboardError):
    """Bad request input. Raised before any backend is touched."""

    category = ErrorCategory.VALIDATION

    def __init__(self, error: str, message: str) -> None:
        super().__init__(message)
        self.error = error
        self.message = message


class UnsupportedReducerError(ValidationError):
    def __init__(self, reducer: str, supported: list[str]) -> None:
        super().__init__(
            "Unsupported reducer",
            f"Reducer {reducer!r} is not supported. Use one of: {', '.join(supported)}",
        )
        self.reducer = reducer


class ConfigurationError(DashboardError):
    """Missing or unparsable credentials / key file."""

    category = ErrorCategory.CONFIGURATION


class InitializationError(DashboardError):
    """A backend session could not be established."""

    category = ErrorCategory.INITIALIZATION


class NotFoundError(DashboardError):
    """A requested entity (e.g. a country boundary) does not exist."""

    category = ErrorCategory.NOT_FOUND


class BackendError(DashboardError):
    """Query or transport failure at an initialized backend."""


# Most specific substring first: the key-file message also contains "not found".
_MESSAGE_MARKERS: list[tuple[str, ErrorCategory]] = [
    ("Service account key file not found", ErrorCategory.CONFIGURATION),
    ("not found", ErrorCategory.NOT_FOUND),
    ("initialize", ErrorCategory.INITIALIZATION),
]


def classify_error(exc: BaseException) -> ErrorCategory:
    """Return the response category for an exception."""
    if isinstance(exc, DashboardError) and exc.category is not ErrorCategory.INTERNAL:
        return exc.category
    text = str(exc)
    for marker, category in _MESSAGE_MARKERS:
        if marker in text:
            return category
    return ErrorCategory.INTERNAL


@dataclass(frozen=True)
class _ErrorTemplate:
    status_code: int
    error: str
    message: str


_TEMPLATES: dict[ErrorCategory, _ErrorTemplate] = {
    ErrorCategory.NOT_FOUND: _ErrorTemplate(
        404,
        "Country not found",
        "{subject} was not found in the dataset. Please check the spelling and try again.",
    ),
    ErrorCategory.CONFIGURATION: _ErrorTemplate(
        500,
        "Configuration error",
        "A required service credential is missing or unreadable. Check the Earth Engine "
        "service account key file and the BigQuery environment variables.",
    ),
    ErrorCategory.INITIALIZATION: _ErrorTemplate(
        500,
        "Earth Engine initialization failed",
        "Failed to initialize Google Earth Engine. Please check your service account "
        "credentials.",
    ),
    ErrorCategory.INTERNAL: _ErrorTemplate(
        500,
        "Internal server error",
        "An unexpected error occurred while processing your request.",
    ),
}


def error_response(exc: BaseException, country: str | None = None) -> JSONResponse:
    """Build the JSON error body and status code for an exception."""
    category = classify_error(exc)
    if category is ErrorCategory.VALIDATION and isinstance(exc, ValidationError):
        return JSONResponse(
            status_code=400, content={"error": exc.error, "message": exc.message}
        )

    template = _TEMPLATES.get(category, _TEMPLATES[ErrorCategory.INTERNAL])
    subject = f'The country "{country}"' if country else "The requested country"
    content: dict[str, str] = {
        "error": template.error,
        "message": template.message.format(subject=subject),
        "details": str(exc),
    }
    if category is ErrorCategory.INTERNAL:
        content["timestamp"] = datetime.now(UTC).isoformat()
    return JSONResponse(status_code=template.status_code, content=content)


def _request_country(request: Request) -> str | None:
    # Routes that fall back to a default country record the name they used.
    return getattr(request.state, "country", None) or request.query_params.get("country")


async def dashboard_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for ``DashboardError``."""
    if not isinstance(exc, ValidationError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return error_response(exc, country=_request_country(request))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler so unexpected failures still get a classified JSON body."""
    logger.error(f"{request.method} {request.url.path} failed unexpectedly", exc_info=exc)
    return error_response(exc, country=_request_country(request))
