"""Guard instances.

A ``BruteGuard`` binds a store and a set of options, and hands out entry
points with the signature ``async (identity, context, call_next)``. Each
guard salts its keys with its own name, so several guards can share one
store without touching each other's counters.

Typical use::

    store = MemoryStore()
    guard = BruteGuard(store, free_retries=3)

    await guard.prevent(client_ip, context, call_next)
    by_user = guard.get_middleware(key=lambda identity, ctx: ctx.values["username"])
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from bruteguard.adapters.store.base import AbstractThrottleStore
from bruteguard.core.errors import ConfigurationError, StorageError, StorageResetError
from bruteguard.throttle.context import ResetCallback, ThrottleContext, maybe_await
from bruteguard.throttle.engine import ThrottleEngine
from bruteguard.throttle.keys import derive_key
from bruteguard.throttle.policies import (
    Continuation,
    FailCallback,
    StoreErrorContext,
    fail_too_many_requests,
    raise_store_error,
)
from bruteguard.throttle.schedule import build_delays, default_lifetime

logger = logging.getLogger(__name__)

KeySource = str | Callable[[str | None, ThrottleContext], Any] | None
EntryPoint = Callable[[str | None, ThrottleContext, Continuation], Awaitable[None]]
StoreErrorHandler = Callable[[StoreErrorContext], Any]


@dataclass(frozen=True)
class GuardConfig:
    """Options fixed at construction.

    Attributes:
        free_retries: Requests allowed before any delay applies.
        min_wait: First delay, in milliseconds.
        max_wait: Largest delay, in milliseconds.
        lifetime: Seconds a throttle window survives (0 = forever).
        refresh_lifetime_on_request: Restart the lifetime on each allowed
            request instead of counting from the first one.
        attach_reset_to_request: Register a reset handler on every context.
    """

    free_retries: int
    min_wait: int
    max_wait: int
    lifetime: int
    refresh_lifetime_on_request: bool
    attach_reset_to_request: bool


class BruteGuard:
    """Escalating-delay throttle bound to one store.

    Attributes:
        name: Salt mixed into every derived key.
        config: Resolved, immutable options.
        delays: Wait schedule in milliseconds.
        prevent: Entry point keyed by identity alone.
    """

    def __init__(
        self,
        store: AbstractThrottleStore,
        *,
        free_retries: int = 2,
        min_wait: int = 500,
        max_wait: int = 15 * 60 * 1000,
        lifetime: int | None = None,
        refresh_lifetime_on_request: bool = True,
        attach_reset_to_request: bool = True,
        fail_callback: FailCallback = fail_too_many_requests,
        handle_store_error: StoreErrorHandler = raise_store_error,
        name: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Validate options and build the wait schedule.

        Args:
            store: Counter store shared with other guards if desired.
            free_retries: Requests allowed before delays start.
            min_wait: First delay in ms; values below 1 are raised to 1.
            max_wait: Largest delay in ms.
            lifetime: Window lifetime in seconds; derived from the schedule
                when None, 0 disables expiry.
            refresh_lifetime_on_request: See ``GuardConfig``.
            attach_reset_to_request: See ``GuardConfig``.
            fail_callback: Deny policy used unless an entry point overrides it.
            handle_store_error: Receives a ``StoreErrorContext`` whenever the
                store fails; the default re-raises.
            name: Stable guard name; a random one is generated when omitted.
            clock: Time source in UNIX seconds.

        Raises:
            ConfigurationError: If the options are invalid.
        """
        if free_retries < 0:
            raise ConfigurationError(
                code="invalid_free_retries",
                message="free_retries must be >= 0",
                details={"free_retries": free_retries},
            )
        if lifetime is not None and lifetime < 0:
            raise ConfigurationError(
                code="invalid_lifetime",
                message="lifetime must be >= 0",
                details={"lifetime": lifetime},
            )

        min_wait = max(min_wait, 1)
        self.delays = build_delays(min_wait, max_wait)
        if lifetime is None:
            lifetime = default_lifetime(self.delays, free_retries)

        self.name = name or f"brute-{uuid.uuid4().hex}"
        self.config = GuardConfig(
            free_retries=free_retries,
            min_wait=min_wait,
            max_wait=max_wait,
            lifetime=lifetime,
            refresh_lifetime_on_request=refresh_lifetime_on_request,
            attach_reset_to_request=attach_reset_to_request,
        )
        self.store = store
        self._fail_callback = fail_callback
        self._handle_store_error = handle_store_error
        self._engine = ThrottleEngine(
            store,
            delays=self.delays,
            free_retries=free_retries,
            lifetime=lifetime,
            refresh_lifetime_on_request=refresh_lifetime_on_request,
            clock=clock,
        )

        self.prevent = self.get_middleware()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"BruteGuard(name={self.name!r}, config={self.config!r})"

    def get_middleware(
        self,
        *,
        key: KeySource = None,
        ignore_identity: bool = False,
        fail_callback: FailCallback | None = None,
    ) -> EntryPoint:
        """Build an entry point scoped by an optional sub-key.

        Args:
            key: Static sub-key, or a callable ``(identity, context)``
                returning one (sync or async), resolved per request.
            ignore_identity: Scope by guard name and sub-key only, so all
                identities share one counter.
            fail_callback: Deny policy overriding the guard default.

        Returns:
            ``async (identity, context, call_next) -> None``.
        """

        async def entry(identity: str | None, context: ThrottleContext, call_next: Continuation) -> None:
            sub_key = await self._resolve_key(key, identity, context)
            if ignore_identity:
                derived = derive_key([self.name, sub_key])
            else:
                derived = derive_key([identity, self.name, sub_key])

            if self.config.attach_reset_to_request:
                self._attach_reset(context, identity, derived)

            try:
                decision = await self._engine.evaluate(derived)
            except StorageError as exc:
                await self._dispatch_store_error(
                    StoreErrorContext(
                        message=exc.message,
                        error=exc,
                        cause=exc.cause,
                        identity=identity,
                        key=derived,
                        context=context,
                        call_next=call_next,
                    )
                )
                return

            context.evaluated_at = decision.now
            if decision.allowed:
                logger.debug(
                    "brute.allowed",
                    extra={"guard": self.name, "key_hash": derived[:16], "count": decision.count},
                )
                await call_next()
                return

            logger.warning(
                "brute.denied",
                extra={
                    "guard": self.name,
                    "key_hash": derived[:16],
                    "count": decision.count,
                    "next_valid_request_date": decision.next_valid_request_at.isoformat(),
                },
            )
            callback = fail_callback or self._fail_callback
            await maybe_await(callback(identity, context, call_next, decision.next_valid_request_at))

        return entry

    async def reset(
        self,
        identity: str | None,
        key: str | None = None,
        callback: ResetCallback | None = None,
    ) -> None:
        """Forget the counter for ``identity`` (and optional sub-key).

        Failures go to the store-error handler and skip ``callback``; on
        success ``callback(None)`` runs after yielding to the event loop.
        """
        derived = derive_key([identity, self.name, key])
        try:
            await self.store.reset(derived)
        except Exception as exc:
            error = StorageResetError(
                code="store_reset_failed",
                message="Cannot reset request count",
                cause=exc,
            )
            await self._dispatch_store_error(
                StoreErrorContext(
                    message=error.message,
                    error=error,
                    cause=exc,
                    identity=identity,
                    key=derived,
                    sub_key=key,
                )
            )
            return

        logger.info("brute.reset", extra={"guard": self.name, "key_hash": derived[:16]})
        if callback is not None:
            await asyncio.sleep(0)
            await maybe_await(callback(None))

    def _attach_reset(self, context: ThrottleContext, identity: str | None, derived: str) -> None:
        async def reset_handler() -> None:
            try:
                await self.store.reset(derived)
            except Exception as exc:
                raise StorageResetError(
                    code="store_reset_failed",
                    message="Cannot reset request count",
                    cause=exc,
                ) from exc
            logger.info("brute.reset", extra={"guard": self.name, "key_hash": derived[:16]})

        async def on_error(exc: BaseException) -> None:
            error = exc if isinstance(exc, StorageError) else StorageResetError(
                code="store_reset_failed",
                message="Cannot reset request count",
                cause=exc,
            )
            await self._dispatch_store_error(
                StoreErrorContext(
                    message=error.message,
                    error=error,
                    cause=error.cause,
                    identity=identity,
                    key=derived,
                    context=context,
                )
            )

        context.add_reset_handler(reset_handler, on_error)

    async def _dispatch_store_error(self, ctx: StoreErrorContext) -> None:
        await maybe_await(self._handle_store_error(ctx))

    @staticmethod
    async def _resolve_key(key: KeySource, identity: str | None, context: ThrottleContext) -> str | None:
        if callable(key):
            return await maybe_await(key(identity, context))
        return key
