"""Error responses for the HTTP boundary.

Routes raise APIError subclasses. Domain errors that reach the boundary
unhandled are mapped to a status through DOMAIN_ERROR_STATUS. Anything else
is logged with its traceback and answered with a generic 500.
"""

import logging
from typing import Any, Callable

from fastapi import HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from src.core.exceptions import (
    AttemptNotFoundError,
    MalformedOrderError,
    NoRetryDataError,
    OrderInFlightError,
    OrderNotFoundError,
    PrintRelayError,
    SubmissionError,
)
from src.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Error returned to the client with a status code and error type."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "api_error"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, details: list[dict[str, Any]] | None = None) -> None:
        """Initialize API error.

        Args:
            message: Human-readable error message. Falls back to the class default.
            details: Optional per-field or per-attempt error details.
        """
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class NotFoundError(APIError):
    """Attempt or order does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"
    default_message = "Resource not found"


class BadRequestError(APIError):
    """Request cannot be processed as sent."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "bad_request"
    default_message = "Bad request"


class AuthenticationError(APIError):
    """Missing or wrong shared secret, signature or bearer token."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = "authentication_error"
    default_message = "Unauthorized"


class ConflictError(APIError):
    """Request conflicts with work already in progress."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "conflict"
    default_message = "Conflict"


class SubmissionFailedError(APIError):
    """A synchronous re-print could not be submitted."""

    error_type = "submission_failed"
    default_message = "Print submission failed"


# Domain errors that escape a route unhandled
DOMAIN_ERROR_STATUS: dict[type[PrintRelayError], type[APIError]] = {
    MalformedOrderError: BadRequestError,
    NoRetryDataError: BadRequestError,
    AttemptNotFoundError: NotFoundError,
    OrderNotFoundError: NotFoundError,
    OrderInFlightError: ConflictError,
    SubmissionError: SubmissionFailedError,
}


def to_api_error(exc: PrintRelayError) -> APIError | None:
    """Translate a domain error into its API error, if it has one."""
    for domain_type, api_type in DOMAIN_ERROR_STATUS.items():
        if isinstance(exc, domain_type):
            return api_type(str(exc))
    return None


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Create a standardized JSON error response."""
    body = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Exception handler rendering APIError subclasses."""
    request_id = request.headers.get("X-Request-ID")
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("%s %s -> %d %s: %s", request.method, request.url.path, exc.status_code, exc.error_type, exc.message)
    return create_error_response(exc.error_type, exc.message, exc.status_code, exc.details, request_id)


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Middleware turning exceptions that escape the routes into error responses.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: The route's response or a formatted error response.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        return await call_next(request)

    except APIError as e:
        return await api_error_handler(request, e)

    except PrintRelayError as e:
        api_error = to_api_error(e)
        if api_error is not None:
            return await api_error_handler(request, api_error)
        logger.exception("Unmapped domain error on %s", request.url.path)

    except HTTPException as e:
        logger.warning("HTTP exception on %s: %s - %s", request.url.path, e.status_code, e.detail)
        return create_error_response("http_error", str(e.detail), e.status_code, request_id=request_id)

    except Exception:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return create_error_response(
        error_type="internal_error",
        message="An unexpected error occurred",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        request_id=request_id,
    )
