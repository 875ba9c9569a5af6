"""Deny and store-error policies.

Deny policies share the fail-callback signature
``(identity, context, call_next, next_valid_request_at)``. Store-error
policies receive a ``StoreErrorContext`` and decide whether a failed store
call aborts, lets the request through, or rejects it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from bruteguard.core.errors import StorageError
from bruteguard.throttle.context import ThrottleContext

logger = logging.getLogger(__name__)

Continuation = Callable[[], Awaitable[Any]]
FailCallback = Callable[[str | None, ThrottleContext, Continuation, datetime], Any]

TOO_MANY_REQUESTS_TEXT = "Too many requests in this time frame."


@dataclass
class StoreErrorContext:
    """What a store-error handler gets to see.

    Attributes:
        message: Short description of the failed operation.
        error: Typed storage error (read/write/reset).
        cause: Exception raised by the store itself.
        identity: Caller identity, when known.
        key: Derived key of the failed operation.
        sub_key: Caller-supplied sub-key, for direct ``guard.reset`` calls.
        context: Request context, absent for direct ``guard.reset`` calls.
        call_next: Continuation of the aborted request, if any.
    """

    message: str
    error: StorageError
    cause: BaseException | None = None
    identity: str | None = None
    key: str | None = None
    sub_key: str | None = None
    context: ThrottleContext | None = None
    call_next: Continuation | None = None


def retry_after_seconds(next_valid_request_at: datetime, now: datetime | None = None) -> int:
    """Whole seconds until the next request is allowed, rounded up."""

    now = now or datetime.now(timezone.utc)
    delta_ms = round((next_valid_request_at - now).total_seconds() * 1000)
    return math.ceil(delta_ms / 1000)


def _set_retry_after(context: ThrottleContext, next_valid_request_at: datetime) -> None:
    seconds = retry_after_seconds(next_valid_request_at, context.evaluated_at)
    context.headers["Retry-After"] = str(seconds)


def _error_body(next_valid_request_at: datetime) -> dict[str, Any]:
    return {
        "error": {
            "text": TOO_MANY_REQUESTS_TEXT,
            "next_valid_request_date": next_valid_request_at.isoformat(),
        }
    }


async def fail_too_many_requests(
    identity: str | None,
    context: ThrottleContext,
    call_next: Continuation,
    next_valid_request_at: datetime,
) -> None:
    """Reject with 429 Too Many Requests."""
    _set_retry_after(context, next_valid_request_at)
    context.status_code = 429
    context.body = _error_body(next_valid_request_at)


async def fail_forbidden(
    identity: str | None,
    context: ThrottleContext,
    call_next: Continuation,
    next_valid_request_at: datetime,
) -> None:
    """Reject with 403 Forbidden."""
    _set_retry_after(context, next_valid_request_at)
    context.status_code = 403
    context.body = _error_body(next_valid_request_at)


async def fail_mark(
    identity: str | None,
    context: ThrottleContext,
    call_next: Continuation,
    next_valid_request_at: datetime,
) -> None:
    """Flag the request as throttled but let downstream processing run."""
    context.status_code = 429
    _set_retry_after(context, next_valid_request_at)
    context.next_valid_request_at = next_valid_request_at
    await call_next()


FAIL_POLICIES: dict[str, FailCallback] = {
    "too_many_requests": fail_too_many_requests,
    "forbidden": fail_forbidden,
    "mark": fail_mark,
}


def raise_store_error(ctx: StoreErrorContext) -> None:
    """Default policy: abort the request by raising the storage error."""
    raise ctx.error


def _log_store_error(ctx: StoreErrorContext, action: str) -> None:
    logger.error(
        "brute.store_error",
        extra={
            "error_code": ctx.error.code,
            "error_message": ctx.message,
            "cause_type": type(ctx.cause).__name__ if ctx.cause else None,
            "key_hash": ctx.key[:16] if ctx.key else None,
            "action": action,
        },
    )


async def log_and_continue(ctx: StoreErrorContext) -> None:
    """Log the failure and let the request through (fail open)."""
    _log_store_error(ctx, "continue")
    if ctx.call_next is not None:
        await ctx.call_next()


async def log_and_deny(ctx: StoreErrorContext) -> None:
    """Log the failure and reject the request with 503 (fail closed)."""
    _log_store_error(ctx, "deny")
    if ctx.context is not None:
        ctx.context.status_code = 503
        ctx.context.body = {"error": {"text": "Throttle state is unavailable."}}


STORE_ERROR_POLICIES: dict[str, Callable[[StoreErrorContext], Any]] = {
    "raise": raise_store_error,
    "log_and_continue": log_and_continue,
    "log_and_deny": log_and_deny,
}
