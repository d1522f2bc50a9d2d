"""Time-boxed memoization for flaky upstream lookups.

``RateLimitedCache`` wraps any async fetch (market-data enrichment, price
feeds) behind a TTL. Concurrent misses for the same key share one upstream
call, and fetch failures fall back to the last stored payload (even when
expired) or a documented default. ``get`` never raises a fetch error.

Entries live in a pluggable store: process-local memory by default, or Redis
when several engine processes should share lookups.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REDIS_KEY_PREFIX = "launchpad:cache:"
# Redis entries outlive their TTL so an expired payload can still serve as
# the stale fallback.
DEFAULT_REDIS_RETENTION_SECONDS = 7 * 24 * 3600


@dataclass(frozen=True)
class CacheEntry:
    """A cached payload and the wall-clock time it was fetched."""

    key: str
    payload: Any
    fetched_at: float

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.fetched_at < ttl_seconds

    def to_json(self) -> str:
        return json.dumps(
            {"key": self.key, "payload": self.payload, "fetched_at": self.fetched_at},
            default=str,
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> CacheEntry:
        data = json.loads(raw)
        return cls(key=str(data["key"]), payload=data["payload"], fetched_at=float(data["fetched_at"]))


class CacheStore(Protocol):
    """Backing storage for cache entries."""

    async def load(self, key: str) -> CacheEntry | None: ...

    async def save(self, entry: CacheEntry) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryCacheStore:
    """Process-local store."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    async def load(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    async def save(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheStore:
    """Redis-backed store; payloads must be JSON-serializable."""

    def __init__(
        self,
        redis: Redis,
        *,
        key_prefix: str = DEFAULT_REDIS_KEY_PREFIX,
        retention_seconds: int = DEFAULT_REDIS_RETENTION_SECONDS,
    ) -> None:
        self._redis = redis
        self._key_prefix = key_prefix
        self._retention_seconds = retention_seconds

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def load(self, key: str) -> CacheEntry | None:
        raw = await self._redis.get(self._key(key))
        if raw is None:
            return None
        return CacheEntry.from_json(raw)

    async def save(self, entry: CacheEntry) -> None:
        await self._redis.set(self._key(entry.key), entry.to_json(), ex=self._retention_seconds)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._key(key))


_MISSING: Any = object()


class RateLimitedCache(Generic[T]):
    """TTL cache with single-flight fetches and stale-on-error fallback.

    Example:
        ```python
        prices = RateLimitedCache(ttl_seconds=10, default=577.0, name="price")
        price = await prices.get(mint, lambda: client.get_usd_price(mint))
        ```
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        default: T | None = None,
        store: CacheStore | None = None,
        clock: Callable[[], float] = time.time,
        name: str = "cache",
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: An entry is fresh while ``now - fetched_at < ttl``.
            default: Returned when a fetch fails and nothing was ever cached.
            store: Entry storage; defaults to a process-local dict.
            clock: Wall-clock source (seconds); injectable for tests.
            name: Label used in log messages.
        """
        self._ttl = ttl_seconds
        self._default = default
        self._store: CacheStore = store or MemoryCacheStore()
        self._clock = clock
        self._name = name
        self._inflight: dict[str, asyncio.Task[Any]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    async def get(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        *,
        default: T | None = _MISSING,
    ) -> T:
        """Return the cached payload for ``key``, refreshing it when stale.

        Concurrent callers that miss on the same key await a single fetch and
        receive its result; a per-call ``default`` only applies to the caller
        that started the fetch.
        """
        fallback = self._default if default is _MISSING else default
        entry = await self._load(key)
        if entry is not None and entry.is_fresh(self._clock(), self._ttl):
            return entry.payload  # type: ignore[no-any-return]

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh(key, fetch_fn, entry, fallback))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        # A cancelled waiter must not cancel the shared fetch.
        return await asyncio.shield(task)  # type: ignore[no-any-return]

    async def peek(self, key: str) -> CacheEntry | None:
        """Return the stored entry without fetching, fresh or not."""
        return await self._load(key)

    async def invalidate(self, key: str) -> None:
        try:
            await self._store.delete(key)
        except Exception as e:
            logger.warning("%s cache delete failed for %s: %s", self._name, key, e)

    async def _load(self, key: str) -> CacheEntry | None:
        try:
            return await self._store.load(key)
        except Exception as e:
            logger.warning("%s cache read failed for %s: %s", self._name, key, e)
            return None

    async def _refresh(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        stale: CacheEntry | None,
        fallback: T | None,
    ) -> T | None:
        try:
            payload = await fetch_fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if stale is not None:
                logger.warning("%s fetch failed for %s, serving stale entry: %s", self._name, key, e)
                return stale.payload  # type: ignore[no-any-return]
            logger.warning("%s fetch failed for %s, serving default: %s", self._name, key, e)
            return fallback

        try:
            await self._store.save(CacheEntry(key=key, payload=payload, fetched_at=self._clock()))
        except Exception as e:
            logger.warning("%s cache write failed for %s: %s", self._name, key, e)
        return payload
