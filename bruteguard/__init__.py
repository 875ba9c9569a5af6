"""BruteGuard: escalating-delay protection against brute-force requests."""

from bruteguard.adapters.store import MemoryStore, NullStore, RedisStore
from bruteguard.throttle import (
    BruteGuard,
    ThrottleContext,
    fail_forbidden,
    fail_mark,
    fail_too_many_requests,
)

__all__ = [
    "BruteGuard",
    "MemoryStore",
    "NullStore",
    "RedisStore",
    "ThrottleContext",
    "fail_forbidden",
    "fail_mark",
    "fail_too_many_requests",
]
