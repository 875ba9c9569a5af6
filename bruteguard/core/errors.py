"""Application-level exception types.

This module defines the errors raised by the throttling engine, its storage
backends and the HTTP layer, enabling consistent error handling, logging, and
API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes consistent across the codebase without
    forcing every error to fill every field.
    """

    code: str
    message: str
    hint: str
    retry_after: int
    next_valid_request_date: str
    min_wait: int
    max_wait: int
    free_retries: int
    lifetime: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ConfigurationError(AppError):
    """Raised when guard options are invalid (checked at construction)."""


@dataclass
class StorageError(AppError):
    """Base error for throttle store failures.

    Attributes:
        cause: The exception raised by the underlying store, if any.
    """

    cause: BaseException | None = None


class StorageReadError(StorageError):
    """Raised when a counter record cannot be read."""


class StorageWriteError(StorageError):
    """Raised when a counter record cannot be written."""


class StorageResetError(StorageError):
    """Raised when a counter record cannot be removed."""


@dataclass
class RequestThrottledError(AppError):
    """Raised by the HTTP adapter when a guard rejects a request.

    Attributes:
        status_code: HTTP status chosen by the deny policy (429 or 403).
        headers: Response headers set by the deny policy (e.g. Retry-After).
    """

    status_code: int = 429
    headers: dict[str, str] = field(default_factory=dict)


class InvalidCredentialsError(AppError):
    """Raised when a login attempt presents unknown credentials."""
