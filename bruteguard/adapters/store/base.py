"""Throttle store interfaces.

The engine depends on this abstraction (not a concrete implementation) so
counter state can live in process memory, Redis, or any other key-value
store that honours per-key expiry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class CounterRecord:
    """Throttle state for one derived key.

    Attributes:
        count: Requests recorded since the window started (>= 1 once stored).
        first_request: When the current window started (UTC).
        last_request: Most recent recorded request (UTC).
    """

    count: int
    first_request: datetime
    last_request: datetime

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-safe representation."""
        return {
            "count": self.count,
            "first_request": self.first_request.isoformat(),
            "last_request": self.last_request.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CounterRecord":
        """Rebuild a record produced by ``to_dict``."""
        return cls(
            count=int(data["count"]),
            first_request=_as_utc(datetime.fromisoformat(data["first_request"])),
            last_request=_as_utc(datetime.fromisoformat(data["last_request"])),
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AbstractThrottleStore(ABC):
    """Interface for counter stores.

    All operations are coroutines and report failures by raising. Operations
    on different keys never interfere, and a ``set`` followed by a ``get`` for
    the same key returns the record just written. Nothing here serializes a
    read-modify-write across concurrent callers.
    """

    @abstractmethod
    async def get(self, key: str) -> CounterRecord | None:
        """Return the live record for ``key``, or None when absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, record: CounterRecord, lifetime: int) -> None:
        """Store ``record`` under ``key``.

        Args:
            key: Derived key.
            record: Counter state to persist.
            lifetime: Seconds until the record becomes unreachable; 0 keeps
                it forever. Replaces any earlier expiry for the key.
        """
        raise NotImplementedError

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Remove ``key`` and cancel its expiry. Absent keys are a no-op."""
        raise NotImplementedError

    async def increment(self, key: str, lifetime: int) -> CounterRecord | None:
        """Record one more request for ``key``.

        Convenience for callers that only need a counter; built on
        ``get``/``set`` so it is not atomic.

        Returns:
            The record as it was before the increment (None if absent).
        """

        previous = await self.get(key)
        now = datetime.now(timezone.utc)
        await self.set(
            key,
            CounterRecord(
                count=previous.count + 1 if previous else 1,
                first_request=previous.first_request if previous else now,
                last_request=now,
            ),
            lifetime,
        )
        return previous
