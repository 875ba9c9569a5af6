"""Per-request throttle context.

Entry points receive one ``ThrottleContext`` per request. Deny policies write
their verdict into it, key callables read request data from it, and every
guard that saw the request registers a reset handler on it so a single
``await context.reset()`` clears all of them in order.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

ResetHandler = Callable[[], Awaitable[None]]
ErrorRouter = Callable[[BaseException], Awaitable[None]]
ResetCallback = Callable[[BaseException | None], Any]


async def maybe_await(value: Any) -> Any:
    """Await ``value`` when a callback returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class ThrottleContext:
    """Mutable state shared by the guards handling one request.

    Attributes:
        request: Opaque framework request object, if any.
        values: Free-form data for key callables (e.g. a submitted username).
        status_code: Status chosen by a deny policy.
        headers: Headers chosen by a deny policy (e.g. Retry-After).
        body: Error payload chosen by a deny policy.
        next_valid_request_at: Set by the "mark" policy.
        evaluated_at: Decision time of the most recent guard evaluation.
        reset_handlers: Registered (handler, error_router) pairs.
    """

    request: Any = None
    values: dict[str, Any] = field(default_factory=dict)
    status_code: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None
    next_valid_request_at: datetime | None = None
    evaluated_at: datetime | None = None
    reset_handlers: list[tuple[ResetHandler, ErrorRouter]] = field(default_factory=list)

    @property
    def denied(self) -> bool:
        return self.status_code is not None

    @property
    def can_reset(self) -> bool:
        return bool(self.reset_handlers)

    def add_reset_handler(self, handler: ResetHandler, on_error: ErrorRouter) -> None:
        self.reset_handlers.append((handler, on_error))

    async def reset(self, callback: ResetCallback | None = None) -> None:
        """Reset every guard registered on this request, oldest first.

        Each handler awaits the previous one, and a failure does not stop
        the chain. When ``callback`` is given it receives the first error
        (or None) after every handler has run, and any later errors go to
        their guards' store-error handlers. Without a callback every error
        goes to its guard's handler.
        """
        failures: list[tuple[BaseException, ErrorRouter]] = []
        for handler, on_error in self.reset_handlers:
            try:
                await handler()
            except Exception as exc:
                failures.append((exc, on_error))

        if callback is not None:
            first = failures.pop(0)[0] if failures else None
            await maybe_await(callback(first))

        for exc, on_error in failures:
            await on_error(exc)
