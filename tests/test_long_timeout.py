"""Unit tests for chained long timers."""

from unittest.mock import Mock

import pytest

from bruteguard.utils.long_timeout import MAX_TIMER_DELAY_SECONDS, LongTimeout

YEAR_SECONDS = 60 * 60 * 24 * 365


def test_short_delay_uses_a_single_timer(fake_loop) -> None:
    callback = Mock()
    timer = LongTimeout(5, callback, loop=fake_loop)

    fake_loop.advance(4.9)
    callback.assert_not_called()
    assert timer.active is True

    fake_loop.advance(0.1)
    callback.assert_called_once()
    assert timer.active is False
    assert timer.rearm_count == 0


def test_each_chunk_stays_within_platform_limit(fake_loop) -> None:
    LongTimeout(YEAR_SECONDS, Mock(), loop=fake_loop)
    fake_loop.advance(YEAR_SECONDS)

    assert max(fake_loop.delays) <= MAX_TIMER_DELAY_SECONDS


def test_year_long_delay_fires_exactly_at_deadline(fake_loop) -> None:
    callback = Mock()
    timer = LongTimeout(YEAR_SECONDS, callback, loop=fake_loop)

    fake_loop.advance(YEAR_SECONDS - 1)
    callback.assert_not_called()
    assert timer.rearm_count > 10

    fake_loop.advance(1)
    callback.assert_called_once()
    assert fake_loop.pending == 0


def test_cancel_stops_the_chain(fake_loop) -> None:
    callback = Mock()
    timer = LongTimeout(YEAR_SECONDS, callback, loop=fake_loop)

    fake_loop.advance(MAX_TIMER_DELAY_SECONDS * 2)
    timer.cancel()
    fake_loop.advance(YEAR_SECONDS)

    callback.assert_not_called()
    assert timer.active is False


def test_invalid_chunk(fake_loop) -> None:
    with pytest.raises(ValueError):
        LongTimeout(1, Mock(), loop=fake_loop, max_chunk=0)
