"""In-memory counter store.

Notes:
- Per-process only: running multiple workers gives each its own counters.
- Expiry is enforced twice: lazily on ``get`` against the store clock, and
  physically by a ``LongTimeout`` per entry that deletes it at the horizon.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from bruteguard.adapters.store.base import AbstractThrottleStore, CounterRecord
from bruteguard.utils.long_timeout import LongTimeout

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    record: CounterRecord
    expires_at: float | None = None
    timer: LongTimeout | None = None


class MemoryStore(AbstractThrottleStore):
    """Dictionary-backed store with per-entry expiry timers.

    Attributes:
        prefix: String prepended to every key.
    """

    def __init__(
        self,
        *,
        prefix: str = "",
        clock: Callable[[], float] = time.time,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            prefix: Namespace prepended to keys.
            clock: Time source (UNIX seconds) used for lazy expiry checks.
            loop: Loop used for expiry timers; defaults to the running loop
                at the time of each ``set``.
        """
        self.prefix = prefix
        self._clock = clock
        self._loop = loop
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for entry in self._entries.values() if not self._is_expired(entry, now))

    async def get(self, key: str) -> CounterRecord | None:
        full_key = self.prefix + key
        entry = self._entries.get(full_key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            self._drop(full_key)
            return None
        return entry.record

    async def set(self, key: str, record: CounterRecord, lifetime: int) -> None:
        full_key = self.prefix + key
        previous = self._entries.get(full_key)
        if previous is not None and previous.timer is not None:
            previous.timer.cancel()

        entry = _Entry(record=record)
        if lifetime:
            entry.expires_at = self._clock() + lifetime
            entry.timer = LongTimeout(
                lifetime,
                lambda: self._expire(full_key, entry),
                loop=self._loop or asyncio.get_running_loop(),
            )
        self._entries[full_key] = entry

    async def reset(self, key: str) -> None:
        self._drop(self.prefix + key)

    def clear(self) -> None:
        """Remove all entries and cancel their timers."""
        for entry in self._entries.values():
            if entry.timer is not None:
                entry.timer.cancel()
        self._entries.clear()

    def _expire(self, full_key: str, entry: _Entry) -> None:
        # A newer set() may have replaced the entry after this timer fired.
        if self._entries.get(full_key) is entry:
            del self._entries[full_key]
            logger.debug("store.expired", extra={"key_prefix": full_key[:16]})

    def _drop(self, full_key: str) -> None:
        entry = self._entries.pop(full_key, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()

    @staticmethod
    def _is_expired(entry: _Entry, now: float) -> bool:
        return entry.expires_at is not None and now >= entry.expires_at
