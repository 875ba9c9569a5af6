"""Behavior tests for BruteGuard entry points."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from bruteguard.adapters.store.in_memory import MemoryStore
from bruteguard.core.errors import ConfigurationError
from bruteguard.throttle.context import ThrottleContext
from bruteguard.throttle.guard import BruteGuard
from bruteguard.throttle.keys import derive_key

YEAR_SECONDS = 60 * 60 * 24 * 365


async def hit(entry, call_next, identity: str = "1.2.3.4", context: ThrottleContext | None = None):
    context = context or ThrottleContext()
    await entry(identity, context, call_next)
    return context


def guard_key(guard: BruteGuard, identity: str = "1.2.3.4") -> str:
    return derive_key([identity, guard.name])


@pytest.fixture
def store(clock) -> MemoryStore:
    return MemoryStore(clock=clock.time)


@pytest.fixture
def fail_spy() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def next_spy() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def guard(store, clock, fail_spy) -> BruteGuard:
    return BruteGuard(
        store,
        free_retries=0,
        min_wait=10,
        max_wait=100,
        fail_callback=fail_spy,
        clock=clock.time,
    )


class TestConstruction:
    def test_calculates_delays(self, guard: BruteGuard) -> None:
        assert guard.delays == (10, 10, 20, 30, 50, 80, 100)

    def test_calculates_default_lifetime(self, store, clock) -> None:
        guard = BruteGuard(store, free_retries=1, min_wait=100, max_wait=1000, clock=clock.time)

        assert guard.config.lifetime == 8

    def test_min_wait_below_one_is_raised_to_one(self, store) -> None:
        guard = BruteGuard(store, min_wait=0, max_wait=1)

        assert guard.delays == (1,)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"min_wait": 100, "max_wait": 10},
            {"free_retries": -1},
            {"lifetime": -5},
        ],
    )
    def test_invalid_options_raise_at_construction(self, store, kwargs: dict) -> None:
        with pytest.raises(ConfigurationError):
            BruteGuard(store, **kwargs)

    def test_generated_names_are_unique(self, store) -> None:
        assert BruteGuard(store).name != BruteGuard(store).name

    def test_supplied_name_is_kept(self, store) -> None:
        assert BruteGuard(store, name="login").name == "login"


class TestDecisions:
    @pytest.mark.asyncio
    async def test_calls_next_when_allowed(self, guard, next_spy) -> None:
        await hit(guard.prevent, next_spy)
        assert next_spy.await_count == 1

        await hit(guard.prevent, next_spy)
        assert next_spy.await_count == 1

    @pytest.mark.asyncio
    async def test_respects_free_retries(self, store, clock, fail_spy, next_spy) -> None:
        guard = BruteGuard(
            store, free_retries=1, min_wait=10, max_wait=100, fail_callback=fail_spy, clock=clock.time
        )

        await hit(guard.prevent, next_spy)
        await hit(guard.prevent, next_spy)
        fail_spy.assert_not_called()

        await hit(guard.prevent, next_spy)
        fail_spy.assert_awaited_once()
        assert next_spy.await_count == 2

    @pytest.mark.asyncio
    async def test_denies_requests_that_come_too_quickly(self, guard, fail_spy, next_spy) -> None:
        await hit(guard.prevent, next_spy)
        fail_spy.assert_not_called()

        await hit(guard.prevent, next_spy)
        fail_spy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_allows_requests_after_waiting_long_enough(self, guard, clock, fail_spy, next_spy) -> None:
        await hit(guard.prevent, next_spy)

        clock.advance_ms(guard.delays[0] + 1)
        await hit(guard.prevent, next_spy)

        fail_spy.assert_not_called()
        assert next_spy.await_count == 2

    @pytest.mark.asyncio
    async def test_denial_does_not_mutate_state(self, guard, clock, fail_spy, next_spy) -> None:
        await hit(guard.prevent, next_spy)
        await hit(guard.prevent, next_spy)
        await hit(guard.prevent, next_spy)
        assert fail_spy.await_count == 2

        clock.advance_ms(guard.delays[0] + 1)
        await hit(guard.prevent, next_spy)

        assert next_spy.await_count == 2

    @pytest.mark.asyncio
    async def test_passes_the_next_valid_request_time(self, guard, clock, fail_spy, next_spy) -> None:
        started = datetime.fromtimestamp(clock.time(), tz=timezone.utc)
        await hit(guard.prevent, next_spy)

        clock.advance_ms(1)
        await hit(guard.prevent, next_spy)

        identity, context, call_next, next_valid = fail_spy.call_args.args
        assert identity == "1.2.3.4"
        assert call_next is next_spy
        assert next_valid == started + timedelta(milliseconds=guard.delays[0])

    @pytest.mark.asyncio
    async def test_keeps_working_after_max_wait_is_reached(self, store, clock, fail_spy, next_spy) -> None:
        guard = BruteGuard(
            store, free_retries=0, min_wait=10, max_wait=10, fail_callback=fail_spy, clock=clock.time
        )
        await hit(guard.prevent, next_spy)
        await hit(guard.prevent, next_spy)

        clock.advance_ms(guard.delays[0] + 1)
        allowed_at = datetime.fromtimestamp(clock.time(), tz=timezone.utc)
        await hit(guard.prevent, next_spy)
        await hit(guard.prevent, next_spy)

        assert next_spy.await_count == 2
        assert fail_spy.await_count == 2
        next_valid = fail_spy.call_args.args[3]
        assert next_valid == allowed_at + timedelta(milliseconds=10)

    @pytest.mark.asyncio
    async def test_entry_point_can_override_fail_callback(self, store, clock, fail_spy, next_spy) -> None:
        guard = BruteGuard(
            store, free_retries=0, min_wait=10_000, max_wait=10_000, lifetime=1,
            fail_callback=fail_spy, clock=clock.time,
        )
        other_spy = AsyncMock()
        entry = guard.get_middleware(fail_callback=other_spy)

        await hit(entry, next_spy)
        await hit(entry, next_spy)

        fail_spy.assert_not_called()
        other_spy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sync_fail_callback_is_supported(self, store, clock, next_spy) -> None:
        calls = []
        guard = BruteGuard(
            store, free_retries=0, min_wait=10, max_wait=10,
            fail_callback=lambda *args: calls.append(args), clock=clock.time,
        )

        await hit(guard.prevent, next_spy)
        await hit(guard.prevent, next_spy)

        assert len(calls) == 1


class TestLifetime:
    @pytest.mark.asyncio
    async def test_requests_allowed_after_lifetime_expires(self, store, clock, fail_spy, next_spy) -> None:
        guard = BruteGuard(
            store, free_retries=0, min_wait=10_000, max_wait=10_000, lifetime=1,
            fail_callback=fail_spy, clock=clock.time,
        )
        await hit(guard.prevent, next_spy)
        await hit(guard.prevent, next_spy)
        fail_spy.assert_awaited_once()

        clock.advance_ms(guard.config.lifetime * 1000 + 1)
        await hit(guard.prevent, next_spy)

        fail_spy.assert_awaited_once()
        assert next_spy.await_count == 2

    @pytest.mark.asyncio
    async def test_no_refresh_keeps_original_horizon(self, store, clock, fail_spy, next_spy) -> None:
        guard = BruteGuard(
            store, free_retries=0, min_wait=10_000, max_wait=10_000, lifetime=1,
            refresh_lifetime_on_request=False, fail_callback=fail_spy, clock=clock.time,
        )
        await hit(guard.prevent, next_spy)
        await hit(guard.prevent, next_spy)
        assert fail_spy.await_count == 1

        clock.advance_ms(500)
        await hit(guard.prevent, next_spy)
        assert fail_spy.await_count == 2

        clock.advance_ms(501)
        await hit(guard.prevent, next_spy)
        assert fail_spy.await_count == 2
        assert next_spy.await_count == 2

    @pytest.mark.asyncio
    async def test_no_refresh_expires_even_if_store_lags(self, clock, fake_loop, fail_spy, next_spy) -> None:
        # Store clock frozen, so only the request-time check can expire the window.
        frozen_store = MemoryStore(clock=lambda: 0.0, loop=fake_loop)
        guard = BruteGuard(
            frozen_store, free_retries=0, min_wait=10_000, max_wait=10_000, lifetime=1,
            refresh_lifetime_on_request=False, fail_callback=fail_spy, clock=clock.time,
        )
        await hit(guard.prevent, next_spy)
        await hit(guard.prevent, next_spy)

        clock.advance_ms(1_001)
        await hit(guard.prevent, next_spy)

        assert fail_spy.await_count == 1
        assert next_spy.await_count == 2
        assert (await frozen_store.get(guard_key(guard))).count == 1

    @pytest.mark.asyncio
    async def test_refresh_extends_lifetime(self, store, clock, fail_spy, next_spy) -> None:
        guard = BruteGuard(
            store, free_retries=1, min_wait=10_000, max_wait=10_000, lifetime=1,
            fail_callback=fail_spy, clock=clock.time,
        )
        await hit(guard.prevent, next_spy)

        clock.advance_ms(500)
        await hit(guard.prevent, next_spy)
        fail_spy.assert_not_called()

        clock.advance_ms(501)
        await hit(guard.prevent, next_spy)
        fail_spy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_year_long_lifetime(self, store, clock, fail_spy, next_spy) -> None:
        wait = (YEAR_SECONDS + 100) * 1000
        guard = BruteGuard(
            store, free_retries=0, min_wait=wait, max_wait=wait, lifetime=YEAR_SECONDS,
            fail_callback=fail_spy, clock=clock.time,
        )
        await hit(guard.prevent, next_spy)

        clock.advance_ms((YEAR_SECONDS - 100) * 1000)
        await hit(guard.prevent, next_spy)
        fail_spy.assert_awaited_once()

        clock.advance_ms(101 * 1000)
        await hit(guard.prevent, next_spy)
        fail_spy.assert_awaited_once()
        assert next_spy.await_count == 2


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_allows_requests_again(self, guard, fail_spy, next_spy) -> None:
        await hit(guard.prevent, next_spy)
        callback = AsyncMock()

        await guard.reset("1.2.3.4", None, callback)
        callback.assert_awaited_once_with(None)

        await hit(guard.prevent, next_spy)
        fail_spy.assert_not_called()

    @pytest.mark.asyncio
    async def test_reset_callback_runs_after_yielding(self, guard, next_spy) -> None:
        await hit(guard.prevent, next_spy)
        order = []

        async def background() -> None:
            order.append("background")

        task = asyncio.ensure_future(background())
        await guard.reset("1.2.3.4", callback=lambda error: order.append("callback"))
        await task

        assert order == ["background", "callback"]

    @pytest.mark.asyncio
    async def test_reset_without_callback(self, guard, fail_spy, next_spy) -> None:
        await hit(guard.prevent, next_spy)

        await guard.reset("1.2.3.4")
        await hit(guard.prevent, next_spy)

        fail_spy.assert_not_called()

    @pytest.mark.asyncio
    async def test_reset_is_idempotent(self, guard, store) -> None:
        callback = AsyncMock()

        await guard.reset("9.9.9.9", "never-seen", callback)
        await guard.reset("9.9.9.9", "never-seen", callback)

        assert callback.await_count == 2
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_attaches_reset_shortcut_to_context(self, guard, fail_spy, next_spy) -> None:
        context = await hit(guard.prevent, next_spy)
        assert context.can_reset

        callback = AsyncMock()
        await context.reset(callback)
        callback.assert_awaited_once_with(None)

        await hit(guard.prevent, next_spy)
        fail_spy.assert_not_called()

    @pytest.mark.asyncio
    async def test_respects_attach_reset_to_request(self, store, clock, next_spy) -> None:
        guard = BruteGuard(store, attach_reset_to_request=False, clock=clock.time)

        context = await hit(guard.prevent, next_spy)

        assert next_spy.await_count == 1
        assert not context.can_reset
