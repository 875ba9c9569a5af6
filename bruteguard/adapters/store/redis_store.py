"""Redis-backed counter store.

Shares throttle state across processes and hosts. Each record is one JSON
string key; expiry is delegated to Redis (``SET ... EX``), which also
supersedes any previous TTL on every write.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as redis

from bruteguard.adapters.store.base import AbstractThrottleStore, CounterRecord

logger = logging.getLogger(__name__)


class RedisStore(AbstractThrottleStore):
    """Store counter records in Redis.

    Attributes:
        prefix: Prefix applied to every Redis key.
    """

    def __init__(self, client: Any, *, prefix: str = "bruteguard:") -> None:
        """Wrap an existing ``redis.asyncio`` client.

        Args:
            client: Client created with ``decode_responses=True`` (bytes
                responses are decoded too).
            prefix: Namespace for keys.
        """
        self._client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, *, prefix: str = "bruteguard:", **kwargs: Any) -> "RedisStore":
        """Create a store with its own connection pool."""
        client = redis.from_url(url, decode_responses=True, **kwargs)
        logger.info("store.redis_configured", extra={"prefix": prefix})
        return cls(client, prefix=prefix)

    async def get(self, key: str) -> CounterRecord | None:
        raw = await self._client.get(self.prefix + key)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return CounterRecord.from_dict(json.loads(raw))

    async def set(self, key: str, record: CounterRecord, lifetime: int) -> None:
        payload = json.dumps(record.to_dict())
        if lifetime:
            await self._client.set(self.prefix + key, payload, ex=lifetime)
        else:
            await self._client.set(self.prefix + key, payload)

    async def reset(self, key: str) -> None:
        await self._client.delete(self.prefix + key)

    async def close(self) -> None:
        """Release the underlying connection pool."""
        await self._client.aclose()
