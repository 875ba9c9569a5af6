"""Factory for creating throttle store instances."""

from __future__ import annotations

from bruteguard.adapters.store.base import AbstractThrottleStore
from bruteguard.adapters.store.in_memory import MemoryStore
from bruteguard.adapters.store.null import NullStore
from bruteguard.adapters.store.redis_store import RedisStore
from bruteguard.core.config import GuardSettings, settings
from bruteguard.core.errors import ConfigurationError


def create_store(guard_settings: GuardSettings | None = None) -> AbstractThrottleStore:
    """Instantiate the store backend selected in configuration.

    Args:
        guard_settings: Optional settings; defaults to the global settings.

    Returns:
        AbstractThrottleStore: Configured store.

    Raises:
        ConfigurationError: If the backend name is unknown.
    """
    cfg = guard_settings or settings.guard
    backend = cfg.store_backend.lower()

    if backend == "memory":
        return MemoryStore(prefix=cfg.store_prefix)

    if backend == "redis":
        return RedisStore.from_url(cfg.redis_url, prefix=cfg.store_prefix)

    if backend == "null":
        return NullStore()

    raise ConfigurationError(
        code="unknown_store_backend",
        message=(
            f"Unknown store backend: '{backend}'. Supported backends: memory, redis, null"
        ),
    )
