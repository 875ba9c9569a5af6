"""One-shot timers for arbitrarily long delays.

Event-loop timers are commonly limited to a signed 32-bit millisecond delay
(about 24.8 days). Counter lifetimes can run for weeks or years, so a
``LongTimeout`` arms the loop in bounded chunks and re-arms until the
deadline is reached.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable


MAX_TIMER_DELAY_SECONDS = (2**31 - 1) / 1000


class LongTimeout:
    """Invoke ``callback`` once, ``delay`` seconds from now.

    Attributes:
        deadline: Loop time at which the callback fires.
        rearm_count: How many intermediate chunks have elapsed.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Any],
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        max_chunk: float = MAX_TIMER_DELAY_SECONDS,
    ) -> None:
        """Schedule the timer.

        Args:
            delay: Seconds until ``callback`` runs (negative values fire asap).
            callback: Zero-argument callable.
            loop: Loop providing ``time()``/``call_later()``; defaults to the
                running loop.
            max_chunk: Longest single delay handed to the loop.

        Raises:
            ValueError: If max_chunk is not positive.
        """
        if max_chunk <= 0:
            raise ValueError("max_chunk must be > 0")

        self._loop = loop or asyncio.get_running_loop()
        self._callback = callback
        self._max_chunk = max_chunk
        self.deadline = self._loop.time() + max(0.0, delay)
        self.rearm_count = 0
        self._handle: asyncio.TimerHandle | None = None
        self._arm()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"LongTimeout(deadline={self.deadline}, active={self.active})"

    @property
    def active(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self) -> None:
        remaining = max(0.0, self.deadline - self._loop.time())
        self._handle = self._loop.call_later(min(remaining, self._max_chunk), self._fire)

    def _fire(self) -> None:
        if self._loop.time() < self.deadline:
            self.rearm_count += 1
            self._arm()
            return
        self._handle = None
        self._callback()
