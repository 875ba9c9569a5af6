"""Throttling dependencies for FastAPI routes.

This module wires guard entry points into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Swap-friendly: the counter store is chosen by configuration behind the
  ``AbstractThrottleStore`` interface.
- One reset chain per request: every guard a request passes through
  registers itself on ``request.state.throttle``.

Identity is the client IP, or the entry ``proxy_depth`` hops from the end of
``X-Forwarded-For`` when the app runs behind trusted proxies.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from fastapi import Request, Response

from bruteguard.adapters.store.base import AbstractThrottleStore
from bruteguard.adapters.store.factory import create_store
from bruteguard.core.config import settings
from bruteguard.core.errors import RequestThrottledError
from bruteguard.throttle.context import ThrottleContext
from bruteguard.throttle.guard import BruteGuard, EntryPoint, KeySource
from bruteguard.throttle.policies import FAIL_POLICIES, STORE_ERROR_POLICIES, TOO_MANY_REQUESTS_TEXT

logger = logging.getLogger(__name__)


_store: AbstractThrottleStore | None = None
_store_config: tuple[str, str, str] | None = None


def get_guard_store() -> AbstractThrottleStore:
    """Return the process-wide counter store.

    The instance is cached in-module so counters survive across requests.
    If the backend configuration changes (primarily in tests), it is rebuilt.
    """

    global _store, _store_config

    cfg = settings.guard
    config = (cfg.store_backend, cfg.store_prefix, cfg.redis_url)

    if _store is None or _store_config != config:
        _store = create_store(cfg)
        _store_config = config

    return _store


def build_guard(name: str, **overrides: Any) -> BruteGuard:
    """Create a guard from settings, sharing the process-wide store.

    Args:
        name: Stable guard name; keeps keys valid across restarts when the
            store is shared (e.g. Redis).
        **overrides: Keyword arguments passed to ``BruteGuard`` instead of
            the configured values.
    """

    cfg = settings.guard
    options: dict[str, Any] = {
        "free_retries": cfg.free_retries,
        "min_wait": cfg.min_wait_ms,
        "max_wait": cfg.max_wait_ms,
        "lifetime": cfg.lifetime_seconds,
        "refresh_lifetime_on_request": cfg.refresh_lifetime_on_request,
        "attach_reset_to_request": cfg.attach_reset_to_request,
        "fail_callback": FAIL_POLICIES[cfg.fail_policy],
        "handle_store_error": STORE_ERROR_POLICIES[cfg.store_error_policy],
        "name": name,
    }
    options.update(overrides)
    return BruteGuard(get_guard_store(), **options)


_guards: dict[str, tuple[dict[str, Any], BruteGuard]] = {}


def get_guard(name: str) -> BruteGuard:
    """Return the shared guard called ``name``, built from current settings.

    Guards are cached per name and rebuilt when the guard settings or the
    process-wide store change, so routes never hold a stale store.
    """

    config = settings.guard.model_dump()
    store = get_guard_store()
    cached = _guards.get(name)
    if cached is None or cached[0] != config or cached[1].store is not store:
        guard = build_guard(name)
        _guards[name] = (config, guard)
        logger.debug("brute.guard_built", extra={"guard": name})
        return guard
    return cached[1]


def client_identity(request: Request) -> str:
    """Resolve the identity used to scope counters for this request."""

    depth = settings.guard.proxy_depth
    if depth:
        forwarded = request.headers.get("X-Forwarded-For", "")
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        if len(hops) >= depth:
            return hops[-depth]

    return request.client.host if request.client else "unknown"


def get_throttle_context(request: Request) -> ThrottleContext:
    """Return the request's throttle context, creating it on first use."""

    context = getattr(request.state, "throttle", None)
    if context is None:
        context = ThrottleContext(request=request)
        request.state.throttle = context
    return context


def throttled_error(context: ThrottleContext) -> RequestThrottledError:
    """Build the HTTP error describing the verdict stored on ``context``."""

    status_code = context.status_code or 429
    body_error = (context.body or {}).get("error", {})
    retry_after = context.headers.get("Retry-After")
    details: dict[str, Any] = {}
    if retry_after is not None:
        details["retry_after"] = int(retry_after)
    if "next_valid_request_date" in body_error:
        details["next_valid_request_date"] = body_error["next_valid_request_date"]
    elif context.next_valid_request_at is not None:
        details["next_valid_request_date"] = context.next_valid_request_at.isoformat()

    return RequestThrottledError(
        code="too_many_requests" if status_code != 503 else "throttle_unavailable",
        message=body_error.get("text", TOO_MANY_REQUESTS_TEXT),
        details=details or None,
        status_code=status_code,
        headers=dict(context.headers),
    )


def apply_throttle_verdict(context: ThrottleContext, response: Response) -> None:
    """Copy a marked verdict (status and headers) onto the outgoing response."""

    if context.status_code is not None:
        response.status_code = context.status_code
    for name, value in context.headers.items():
        response.headers[name] = value


async def enforce_throttle(
    entry: EntryPoint,
    request: Request,
    response: Response | None = None,
) -> ThrottleContext:
    """Run a guard entry point for ``request``.

    Args:
        entry: Guard entry point.
        request: Incoming request; its throttle context is shared by every
            guard the request passes through.
        response: When given, a request let through under the "mark" policy
            gets the policy's status and headers copied onto it.

    Returns:
        The request's throttle context. With the "mark" policy it carries a
        429 status even though the request was let through.

    Raises:
        RequestThrottledError: If the guard rejected the request.
    """

    context = get_throttle_context(request)
    allowed = False

    async def call_next() -> None:
        nonlocal allowed
        allowed = True

    await entry(client_identity(request), context, call_next)
    if not allowed:
        raise throttled_error(context)

    if context.denied and response is not None:
        apply_throttle_verdict(context, response)
    return context


def throttle_dependency(
    guard_name: str,
    *,
    key: KeySource = None,
    ignore_identity: bool = False,
) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency that runs the named guard.

    The guard is looked up per request through ``get_guard``.

    Usage:
        @router.post("/login", dependencies=[Depends(throttle_dependency("login-ip"))])
    """

    async def dependency(request: Request, response: Response) -> None:
        guard = get_guard(guard_name)
        if key is None and not ignore_identity:
            entry = guard.prevent
        else:
            entry = guard.get_middleware(key=key, ignore_identity=ignore_identity)
        await enforce_throttle(entry, request, response)

    return dependency
