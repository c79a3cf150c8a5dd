"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- RateLimitAppError → 429 with the same body as the pipeline rate limiter
- Other AppError subclasses → appropriate HTTP status (400, 500, 502)
- Unexpected Exception → generic 500 (safety net)
- All non-429 responses include request_id for distributed tracing
"""

import logging
import math

from fastapi import Request
from fastapi.responses import JSONResponse

from storefront.core.errors import (
    AppError,
    NotificationAppError,
    RateLimitAppError,
    UpstreamAppError,
)
from storefront.core.logging import get_request_id
from storefront.core.rate_limit import rate_limit_response

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, UpstreamAppError):
        return (exc.details or {}).get("http_status", 502)
    if isinstance(exc, NotificationAppError):
        return 500
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Routes domain errors to appropriate HTTP status codes:
    - ValidationAppError → 400 Bad Request (client fault)
    - UpstreamAppError → 502 Bad Gateway, or the status in details
    - NotificationAppError → 500 Internal Server Error

    All responses include:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = _status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }

    # Include details only if present (optional structured context)
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


async def rate_limit_error_handler(request: Request, exc: RateLimitAppError) -> JSONResponse:
    """Render a dependency-level rate limit rejection as a structured 429."""

    retry_after = math.ceil(exc.retry_after_ms / 1000)
    logger.info(
        "rate_limit_error_handled",
        extra={
            "error_code": exc.code,
            "retry_after_s": retry_after,
            "request_path": request.url.path,
        },
    )
    return rate_limit_response(exc.message, retry_after, limit=exc.limit or None)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic
    message. No stack traces reach the client.

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Starlette picks the handler registered for the most specific class in
    the exception's MRO, so RateLimitAppError wins over AppError.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(RateLimitAppError)(rate_limit_error_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
