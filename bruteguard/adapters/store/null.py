"""Store that remembers nothing.

Every request looks fresh, so a guard backed by it never throttles. Useful
as a contract test double and to switch throttling off by configuration.
"""

from __future__ import annotations

from bruteguard.adapters.store.base import AbstractThrottleStore, CounterRecord


class NullStore(AbstractThrottleStore):
    async def get(self, key: str) -> CounterRecord | None:
        return None

    async def set(self, key: str, record: CounterRecord, lifetime: int) -> None:
        return None

    async def reset(self, key: str) -> None:
        return None
