"""Throttle decision engine.

For one derived key, reads the counter record, decides whether the request
may proceed, and writes the updated record back when it does. States are
derived from the record rather than stored:

- Fresh: no record (or an expired one).
- Free: ``count <= free_retries``.
- Throttled: past the free retries and the next valid time is in the future.
- Cooled: past the free retries and the next valid time has passed.

The read and the write are two separate store calls. Concurrent requests for
the same key may both be allowed; that undercount is accepted.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from bruteguard.adapters.store.base import AbstractThrottleStore, CounterRecord
from bruteguard.core.errors import StorageReadError, StorageWriteError
from bruteguard.throttle.schedule import delay_for_count


def to_millis(value: datetime) -> int:
    return round(value.timestamp() * 1000)


def from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class ThrottleDecision:
    """Outcome of one evaluation.

    Attributes:
        allowed: Whether the request may proceed.
        count: Recorded requests after this evaluation.
        now: Decision time.
        next_valid_request_at: Earliest time the key may be allowed again
            (already passed when ``allowed`` is true).
        lifetime: TTL written with the record, in seconds (0 = none).
    """

    allowed: bool
    count: int
    now: datetime
    next_valid_request_at: datetime
    lifetime: int


class ThrottleEngine:
    """Apply the escalating-delay state machine against a store."""

    def __init__(
        self,
        store: AbstractThrottleStore,
        *,
        delays: tuple[int, ...],
        free_retries: int,
        lifetime: int,
        refresh_lifetime_on_request: bool,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._delays = delays
        self._free_retries = free_retries
        self._lifetime = lifetime
        self._refresh = refresh_lifetime_on_request
        self._clock = clock

    def _now_millis(self) -> int:
        return round(self._clock() * 1000)

    async def evaluate(self, key: str) -> ThrottleDecision:
        """Decide on one request for ``key`` and record it when allowed.

        Raises:
            StorageReadError: If the record cannot be read.
            StorageWriteError: If an allowed request cannot be recorded.
        """
        try:
            record = await self._store.get(key)
        except Exception as exc:
            raise StorageReadError(
                code="store_read_failed",
                message="Cannot get request count",
                cause=exc,
            ) from exc

        now = self._now_millis()
        count = 0
        delay = 0
        first_request = last_request = now
        if record is not None:
            count = record.count
            first_request = to_millis(record.first_request)
            last_request = to_millis(record.last_request)
            delay = delay_for_count(self._delays, count, self._free_retries)

        next_valid = last_request + delay
        remaining = self._lifetime

        if not self._refresh and self._lifetime > 0:
            # The store may not have deleted the record yet; expire it here.
            remaining = self._lifetime - (now - first_request) // 1000
            if remaining < 1:
                count = 0
                next_valid = first_request = last_request = now
                remaining = self._lifetime

        if next_valid > now and count > self._free_retries:
            return ThrottleDecision(
                allowed=False,
                count=count,
                now=from_millis(now),
                next_valid_request_at=from_millis(next_valid),
                lifetime=remaining,
            )

        updated = CounterRecord(
            count=count + 1,
            first_request=from_millis(first_request),
            last_request=from_millis(now),
        )
        try:
            await self._store.set(key, updated, remaining)
        except Exception as exc:
            raise StorageWriteError(
                code="store_write_failed",
                message="Cannot increment request count",
                cause=exc,
            ) from exc

        return ThrottleDecision(
            allowed=True,
            count=updated.count,
            now=from_millis(now),
            next_valid_request_at=from_millis(next_valid),
            lifetime=remaining,
        )
