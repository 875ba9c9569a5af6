"""Escalating wait schedule.

Delays grow like a Fibonacci sequence seeded with ``min_wait`` and are capped
at ``max_wait``; the offense count beyond the free retries indexes into it.
"""

from __future__ import annotations

import math

from bruteguard.core.errors import ConfigurationError


def build_delays(min_wait: int, max_wait: int) -> tuple[int, ...]:
    """Build the wait schedule in milliseconds.

    Args:
        min_wait: First delay (>= 1).
        max_wait: Last delay (>= min_wait).

    Returns:
        Non-decreasing delays starting at ``min_wait`` and ending exactly at
        ``max_wait``.

    Raises:
        ConfigurationError: If the bounds are invalid.

    Examples:
        >>> build_delays(10, 100)
        (10, 10, 20, 30, 50, 80, 100)
        >>> build_delays(10, 10)
        (10,)
    """

    if min_wait < 1:
        raise ConfigurationError(
            code="invalid_min_wait",
            message="min_wait must be >= 1",
            details={"min_wait": min_wait},
        )
    if max_wait < min_wait:
        raise ConfigurationError(
            code="invalid_max_wait",
            message="max_wait must be >= min_wait",
            details={"min_wait": min_wait, "max_wait": max_wait},
        )

    delays = [min_wait]
    while delays[-1] < max_wait:
        second_last = delays[-2] if len(delays) > 1 else 0
        delays.append(delays[-1] + second_last)
    delays[-1] = max_wait
    return tuple(delays)


def delay_for_count(delays: tuple[int, ...], count: int, free_retries: int) -> int:
    """Return the delay owed after ``count`` recorded requests.

    Requests within the free retries owe nothing; past the end of the
    schedule the last (maximum) delay applies.
    """

    index = count - free_retries - 1
    if index < 0:
        return 0
    if index < len(delays):
        return delays[index]
    return delays[-1]


def default_lifetime(delays: tuple[int, ...], free_retries: int) -> int:
    """Seconds needed to walk the whole schedule at the maximum wait."""

    return math.ceil(delays[-1] / 1000 * (len(delays) + free_retries))
