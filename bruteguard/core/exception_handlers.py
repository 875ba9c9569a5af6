"""Global exception handlers for consistent error responses.

Design:
- RequestThrottledError -> status chosen by the deny policy, with Retry-After
- InvalidCredentialsError -> 401
- StorageError -> 503 (throttle state unavailable)
- ConfigurationError -> 500
- Other AppError -> 400
- Unexpected Exception -> generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from bruteguard.core.errors import (
    AppError,
    ConfigurationError,
    InvalidCredentialsError,
    RequestThrottledError,
    StorageError,
)
from bruteguard.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, RequestThrottledError):
        return exc.status_code
    if isinstance(exc, InvalidCredentialsError):
        return 401
    if isinstance(exc, StorageError):
        return 503
    if isinstance(exc, ConfigurationError):
        return 500
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an ``AppError`` as ``{"error": {...}}``.

    The body carries ``code``, ``message``, ``request_id`` and, when present,
    ``details``. Throttled responses also carry the headers chosen by the
    deny policy, so clients see ``Retry-After``.
    """
    status_code = _status_for(exc)
    request_id = get_request_id()
    log_extra = {
        "error_code": exc.code,
        "status_code": status_code,
        "request_path": request.url.path,
        "request_id": request_id,
    }

    if isinstance(exc, RequestThrottledError):
        logger.info("request_throttled", extra={**log_extra, "retry_after": exc.headers.get("Retry-After")})
    elif isinstance(exc, StorageError):
        cause = type(exc.cause).__name__ if exc.cause else None
        logger.error("throttle_store_unavailable", extra={**log_extra, "cause_type": cause})
    else:
        logger.warning("app_error_handled", extra={**log_extra, "error_message": exc.message})

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": request_id,
    }
    if exc.details:
        error_content["details"] = exc.details

    headers = exc.headers if isinstance(exc, RequestThrottledError) else None
    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers or None,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic message,
    so no stack traces or internals reach the client.
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
    """Register all exception handlers with a FastAPI app."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
