"""Key-value caches with per-entry TTL.

Both stores share one async interface so lookup and hierarchy services can
take either: TTLCache keeps entries in process memory with an injectable
clock, RedisTTLCache shares them across workers through Redis.
"""

import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

from pydantic import TypeAdapter

logger = logging.getLogger("tariff.cache")


class CacheStore(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    async def delete(self, key: str) -> None: ...


class TTLCache:
    """In-memory store; expired entries are dropped lazily on read."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 10_000):
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[str, tuple[float, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if len(self._entries) >= self._max_entries and key not in self._entries:
            self._evict()
        self._entries[key] = (self._clock() + ttl_seconds, value)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self._max_entries:
            # Still full: drop the entry closest to expiry
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]


class RedisTTLCache:
    """Redis-backed store. Values round-trip through a pydantic TypeAdapter."""

    def __init__(self, redis_client, namespace: str, value_type: Any = Any):
        self._redis = redis_client
        self._namespace = namespace
        self._adapter = TypeAdapter(value_type)

    def _key(self, key: str) -> str:
        return f"tariff:{self._namespace}:{key}"

    async def get(self, key: str) -> Any | None:
        raw = await self._redis.get(self._key(key))
        if raw is None:
            return None
        return self._adapter.validate_json(raw)

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        await self._redis.set(
            self._key(key),
            self._adapter.dump_json(value),
            ex=max(1, int(ttl_seconds)),
        )

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._key(key))


def build_cache(redis_url: str, namespace: str, value_type: Any = Any) -> CacheStore:
    """Redis cache when a URL is configured, else an in-memory one."""
    if redis_url:
        import redis.asyncio as aioredis

        logger.info("Using Redis cache for %s", namespace)
        return RedisTTLCache(aioredis.from_url(redis_url), namespace, value_type)
    return TTLCache()
