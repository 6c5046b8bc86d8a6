"""
Namespaced key-value cache.

Keys follow ``namespace:store_id:resource`` so a whole store or namespace can
be cleared with a ``*`` pattern. ``MemoryCache`` serves a single process;
``RedisCache`` shares entries between the API and RQ workers.
"""

from __future__ import annotations

import asyncio
import fnmatch
import json
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from config import settings

logger = logging.getLogger(__name__)


class CacheNamespace:
    SHOPIFY = "shopify"
    GSC = "gsc"
    AUDIT = "audit"
    DASHBOARD = "dashboard"
    META = "meta"
    ALT = "alt"


MINUTE = 60

CACHE_TTL: Dict[str, int] = {
    "products": 15 * MINUTE,
    "collections": 15 * MINUTE,
    "pages": 30 * MINUTE,
}


def build_cache_key(namespace: str, *parts: Any) -> str:
    return ":".join([namespace, *(str(part) for part in parts)])


@dataclass(frozen=True)
class CacheStats:
    size: int
    max_entries: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class CacheBackend(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def clear(self, pattern: Optional[str] = None) -> int:
        """Remove keys matching a ``*`` glob (all keys when pattern is None)."""
        raise NotImplementedError

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl_seconds: Optional[int] = None,
    ) -> Any:
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await factory()
        if value is not None:
            await self.set(key, value, ttl_seconds)
        return value

    async def close(self) -> None:
        return None


class MemoryCache(CacheBackend):
    """In-process TTL cache with LRU eviction."""

    def __init__(
        self,
        max_entries: Optional[int] = None,
        default_ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max(int(max_entries or settings.CACHE_MAX_ENTRIES), 1)
        self.default_ttl_seconds = int(default_ttl_seconds or settings.CACHE_DEFAULT_TTL_SECONDS)
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[Any, float]]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        async with self._lock:
            self._entries[key] = (value, self._clock() + ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache evicted {evicted}")

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear(self, pattern: Optional[str] = None) -> int:
        async with self._lock:
            if pattern is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            keys = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    async def cleanup(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        async with self._lock:
            expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            max_entries=self.max_entries,
            hits=self._hits,
            misses=self._misses,
        )


class RedisCache(CacheBackend):
    """JSON values in Redis with SETEX expiry. Backend errors degrade to cache misses."""

    def __init__(self, client: Optional[redis.Redis] = None, default_ttl_seconds: Optional[int] = None) -> None:
        self._client = client or redis.from_url(settings.REDIS_URL, decode_responses=True)
        self.default_ttl_seconds = int(default_ttl_seconds or settings.CACHE_DEFAULT_TTL_SECONDS)

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._client.get(key)
        except redis.RedisError as exc:
            logger.warning(f"Cache read failed for {key}: {exc}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        try:
            await self._client.setex(key, max(int(ttl), 1), json.dumps(value, default=str))
        except redis.RedisError as exc:
            logger.warning(f"Cache write failed for {key}: {exc}")

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except redis.RedisError as exc:
            logger.warning(f"Cache delete failed for {key}: {exc}")
            return False

    async def clear(self, pattern: Optional[str] = None) -> int:
        removed = 0
        try:
            batch = []
            async for key in self._client.scan_iter(match=pattern or "*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += await self._client.delete(*batch)
                    batch = []
            if batch:
                removed += await self._client.delete(*batch)
        except redis.RedisError as exc:
            logger.warning(f"Cache clear failed for {pattern}: {exc}")
        return removed

    async def close(self) -> None:
        await self._client.aclose()


def get_cache(backend: Optional[str] = None) -> CacheBackend:
    """Cache backend selected by ``CACHE_BACKEND``."""
    name = (backend or settings.CACHE_BACKEND or "memory").strip().lower()
    if name == "redis":
        return RedisCache()
    if name == "memory":
        return MemoryCache()
    raise ValueError(f"Unknown cache backend: {name}")
