"""
Memory Cache Backend Module

In-process cache backend using an ordered dictionary with LRU eviction and
lazy expiry of stale entries.
"""

import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, Hashable, Optional

from .base import CacheBackend, CacheResult
from .entry import CacheEntry

logger = logging.getLogger(__name__)


class MemoryCacheBackend(CacheBackend[str, Any]):
    """
    In-memory cache backend implementation.

    Features:
    - Thread-safe operations
    - LRU eviction when reaching maximum size
    - Expired entries are dropped on access
    - Hit/miss/eviction statistics
    """

    def __init__(self, max_size: int = 1000, name: str = "memory"):
        """
        Initialize the memory cache backend.

        Args:
            max_size: Maximum number of entries to store
            name: Name for this cache backend
        """
        self._cache: "OrderedDict[Hashable, CacheEntry[Any]]" = OrderedDict()
        self._lock = threading.RLock()
        self._max_size = max_size
        self._name = name

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @property
    def name(self) -> str:
        return self._name

    async def get(self, key: str) -> CacheResult[Any]:
        with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                self._misses += 1
                return CacheResult(success=False, source=self.name, error="Key not found")

            if entry.is_expired():
                del self._cache[key]
                self._expirations += 1
                self._misses += 1
                return CacheResult(success=False, source=self.name, error="Entry expired")

            entry.access()
            self._cache.move_to_end(key)
            self._hits += 1

            return CacheResult(
                success=True,
                value=entry.value,
                hit=True,
                ttl=entry.remaining_ttl(),
                source=self.name
            )

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> CacheResult[Any]:
        with self._lock:
            if key not in self._cache and len(self._cache) >= self._max_size:
                self._evict_entries()

            self._cache[key] = CacheEntry(value, ttl=ttl)
            self._cache.move_to_end(key)

            return CacheResult(success=True, value=value, ttl=ttl, source=self.name)

    async def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def clear_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._cache if str(key).startswith(prefix)]
            for key in doomed:
                del self._cache[key]
            return len(doomed)

    async def clear(self) -> bool:
        with self._lock:
            self._cache.clear()
            return True

    async def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "name": self.name,
                "size": len(self._cache),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_ratio": self._hits / total if total > 0 else 0.0,
                "evictions": self._evictions,
                "expirations": self._expirations
            }

    def _evict_entries(self) -> None:
        """Drop expired entries, then the least recently used one if still full."""
        expired = [key for key, entry in self._cache.items() if entry.is_expired()]
        for key in expired:
            del self._cache[key]
            self._expirations += 1

        while len(self._cache) >= self._max_size:
            evicted_key, _ = self._cache.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Evicted cache entry {evicted_key!r}")
