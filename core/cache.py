"""
Caching System for the Feed Client.

This module provides the cache-or-fetch layer used by the feed services. Given
a key and a fetch function, the cache returns the stored payload while it is
younger than its max age and otherwise calls the fetch function and stores the
result. It is memoization with a time-to-live, not an eviction engine.

Key Components:
- CacheEntry: A stored payload plus its fetch timestamp, cache type and ETag.
- CacheBackend (ABC): The storage interface, so the in-memory store can be
  swapped for a shared one without touching callers.
- MemoryCacheBackend: A dictionary guarded by an `asyncio.Lock`. It has no
  capacity bound, no LRU policy and no background expiry sweep; entries live
  until they are overwritten, invalidated or the store is cleared.
- CacheManager: The facade the services talk to. It owns the staleness check
  (`get`), forced refresh, pattern invalidation and statistics.

Architectural Design:
- Explicit Dependency: There is no module-level cache instance. The gateway
  builds one `CacheManager` at startup and hands it to every service, and tests
  construct their own with a fake clock.
- Failure Isolation: If the fetch function raises, the existing entry is left
  exactly as it was and the error propagates. Backend faults, on the other
  hand, are logged and treated as a miss so that a broken store never blocks
  a network fetch.
"""

import asyncio
import fnmatch
import inspect
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from core.config import CACHE_MAX_AGES
from core.logging_config import get_logger

logger = get_logger(__name__)

FetchFn = Callable[[], Union[Any, Awaitable[Any]]]


@dataclass
class CacheEntry:
    """Cache entry with metadata"""

    key: str
    value: Any
    fetched_at: float
    cache_type: str = "default"
    etag: Optional[str] = None

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_fresh(self, now: float, max_age: timedelta) -> bool:
        """Check whether the entry is still within ``max_age``"""
        return self.age(now) <= max_age.total_seconds()


class CacheBackend(ABC):
    """Abstract base class for cache backends"""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """Get cache entry by key"""

    @abstractmethod
    async def set(self, entry: CacheEntry) -> None:
        """Store an entry, replacing any previous entry for the same key"""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete cache entry"""

    @abstractmethod
    async def clear(self) -> None:
        """Clear all cache entries"""

    @abstractmethod
    async def keys(self, pattern: str = "*") -> List[str]:
        """Get cache keys matching pattern"""

    @abstractmethod
    async def stats(self) -> Dict[str, Any]:
        """Get backend statistics"""


class MemoryCacheBackend(CacheBackend):
    """Unbounded in-memory cache backend"""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[CacheEntry]:
        async with self._lock:
            return self._entries.get(key)

    async def set(self, entry: CacheEntry) -> None:
        async with self._lock:
            self._entries[entry.key] = entry

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            logger.info("Cache cleared")

    async def keys(self, pattern: str = "*") -> List[str]:
        async with self._lock:
            if pattern == "*":
                return list(self._entries)
            return [key for key in self._entries if fnmatch.fnmatch(key, pattern)]

    async def stats(self) -> Dict[str, Any]:
        async with self._lock:
            by_type: Dict[str, int] = {}
            for entry in self._entries.values():
                by_type[entry.cache_type] = by_type.get(entry.cache_type, 0) + 1
            return {
                "backend": "memory",
                "entries": len(self._entries),
                "entries_by_type": by_type,
            }


class CacheManager:
    """High-level cache-or-fetch manager"""

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        clock: Callable[[], float] = time.monotonic,
        max_ages: Optional[Mapping[str, timedelta]] = None,
    ):
        self.backend = backend or MemoryCacheBackend()
        self.clock = clock
        self.max_ages = dict(CACHE_MAX_AGES if max_ages is None else max_ages)
        self.hits = 0
        self.misses = 0
        self.refreshes = 0
        self.fetch_errors = 0
        self.logger = get_logger(f"{__name__}.CacheManager")

    def max_age_for(self, cache_type: str) -> timedelta:
        """Return the configured max age for a cache type"""
        return self.max_ages.get(cache_type, self.max_ages.get("default", timedelta(minutes=10)))

    async def get(
        self,
        key: str,
        fetch_fn: FetchFn,
        cache_type: str = "default",
        max_age: Optional[timedelta] = None,
        force_refresh: bool = False,
        etag: Optional[str] = None,
    ) -> Any:
        """Return the cached value for ``key`` or fetch and store a fresh one.

        A stored entry younger than ``max_age`` (the cache type's age when not
        given) is returned without calling ``fetch_fn``. ``force_refresh``
        always fetches. If ``fetch_fn`` raises, the stored entry is untouched
        and the exception propagates.
        """
        max_age = self.max_age_for(cache_type) if max_age is None else max_age

        if force_refresh:
            self.refreshes += 1
            self.logger.debug(f"Forced refresh for key: {key}")
        else:
            entry = await self._read(key)
            if entry is not None and entry.is_fresh(self.clock(), max_age):
                self.hits += 1
                self.logger.debug(f"Cache hit for key: {key}")
                return entry.value
            self.misses += 1
            if entry is None:
                self.logger.debug(f"Cache miss for key: {key}")
            else:
                self.logger.debug(
                    f"Cache stale for key: {key}",
                    extra={"age_seconds": round(entry.age(self.clock()), 3)},
                )

        try:
            value = await self._call(fetch_fn)
        except Exception:
            self.fetch_errors += 1
            self.logger.warning(f"Fetch failed for key {key}, keeping existing entry")
            raise

        await self._write(
            CacheEntry(
                key=key,
                value=value,
                fetched_at=self.clock(),
                cache_type=cache_type,
                etag=getattr(value, "etag", None) or etag,
            )
        )
        return value

    async def peek(
        self, key: str, cache_type: str = "default", allow_stale: bool = False
    ) -> Optional[Any]:
        """Look at a stored value without counting a hit or fetching"""
        entry = await self._read(key)
        if entry is None:
            return None
        if allow_stale or entry.is_fresh(self.clock(), self.max_age_for(cache_type)):
            return entry.value
        return None

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        return await self._read(key)

    async def set(
        self,
        key: str,
        value: Any,
        cache_type: str = "default",
        etag: Optional[str] = None,
    ) -> bool:
        """Store a value directly"""
        return await self._write(
            CacheEntry(
                key=key,
                value=value,
                fetched_at=self.clock(),
                cache_type=cache_type,
                etag=etag,
            )
        )

    async def invalidate(self, key: str) -> bool:
        """Delete value from cache"""
        try:
            return await self.backend.delete(key)
        except Exception as e:
            self.logger.error(f"Cache delete error for key {key}: {e}")
            return False

    async def invalidate_pattern(self, pattern: str) -> int:
        """Invalidate all keys matching pattern"""
        try:
            keys = await self.backend.keys(pattern)
            count = 0
            for key in keys:
                if await self.backend.delete(key):
                    count += 1
            self.logger.info(f"Invalidated {count} keys matching pattern: {pattern}")
            return count
        except Exception as e:
            self.logger.error(f"Cache invalidation error for pattern {pattern}: {e}")
            return 0

    async def clear(self) -> None:
        await self.backend.clear()

    async def stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        lookups = self.hits + self.misses
        backend_stats = await self.backend.stats()
        return {
            **backend_stats,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / lookups if lookups else 0.0,
            "refreshes": self.refreshes,
            "fetch_errors": self.fetch_errors,
        }

    async def health_check(self) -> Dict[str, Any]:
        """Perform cache health check"""
        try:
            test_key = "__health_check__"
            await self.set(test_key, "ok")
            retrieved = await self.peek(test_key)
            await self.invalidate(test_key)
            stats = await self.stats()

            return {
                "status": "healthy" if retrieved == "ok" else "unhealthy",
                "backend_type": stats.get("backend", "unknown"),
                "stats": stats,
            }
        except Exception as e:
            self.logger.error(f"Cache health check failed: {e}")
            return {"status": "unhealthy", "backend_type": "unknown", "error": str(e)}

    async def _read(self, key: str) -> Optional[CacheEntry]:
        try:
            return await self.backend.get(key)
        except Exception as e:
            self.logger.error(f"Cache get error for key {key}: {e}")
            return None

    async def _write(self, entry: CacheEntry) -> bool:
        try:
            await self.backend.set(entry)
            return True
        except Exception as e:
            self.logger.error(f"Cache set error for key {entry.key}: {e}")
            return False

    @staticmethod
    async def _call(fetch_fn: FetchFn) -> Any:
        result = fetch_fn()
        if inspect.isawaitable(result):
            return await result
        return result


def cache_key(*key_parts) -> str:
    """Generate a cache key from parts"""
    return ":".join(str(part) for part in key_parts if part is not None)
