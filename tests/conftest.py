"""Pytest configuration and fixtures shared across all test modules.

This file is loaded by pytest before any test module, so the environment set
here is what the global settings object sees when it is first imported.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("APP_USERS", "alice:wonderland,bob:builder")
os.environ.setdefault("BRUTE_STORE_BACKEND", "memory")
os.environ.setdefault("BRUTE_FREE_RETRIES", "2")
# Long waits keep HTTP tests independent of wall-clock speed.
os.environ.setdefault("BRUTE_MIN_WAIT_MS", "60000")
os.environ.setdefault("BRUTE_MAX_WAIT_MS", "600000")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402


class FakeClock:
    """Deterministic UNIX clock shared by guards and stores under test."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance_ms(self, milliseconds: float) -> None:
        self.current += milliseconds / 1000


class FakeHandle:
    def __init__(self, when: float, callback) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """Minimal event loop stand-in exposing ``time`` and ``call_later``."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.timers: list[FakeHandle] = []
        self.delays: list[float] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback) -> FakeHandle:
        self.delays.append(delay)
        handle = FakeHandle(self.now + delay, callback)
        self.timers.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self.timers if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.timers.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target

    @property
    def pending(self) -> int:
        return sum(1 for h in self.timers if not h.cancelled)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()
