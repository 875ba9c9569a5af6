"""Counter store adapters.

The engine only talks to ``AbstractThrottleStore``; pick the in-memory store
for a single process, Redis to share counters between workers, or the null
store to disable throttling.
"""

from bruteguard.adapters.store.base import AbstractThrottleStore, CounterRecord
from bruteguard.adapters.store.in_memory import MemoryStore
from bruteguard.adapters.store.null import NullStore
from bruteguard.adapters.store.redis_store import RedisStore

__all__ = [
    "AbstractThrottleStore",
    "CounterRecord",
    "MemoryStore",
    "NullStore",
    "RedisStore",
]
