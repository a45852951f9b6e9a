"""
Base Cache Module

This module defines the core interfaces and result type for the caching
system. Cache contents are never authoritative: every cached value can be
recomputed from the ledger, so a miss or an eviction only costs time.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

K = TypeVar('K')
V = TypeVar('V')


@dataclass
class CacheResult(Generic[V]):
    """
    Result of a cache operation.

    Attributes:
        success: Whether the operation was successful
        value: The value retrieved or stored
        hit: Whether the value was found in cache (for get operations)
        ttl: Time-to-live in seconds
        source: Source of the cached value (e.g., 'memory', 'redis')
        error: Optional error message if the operation failed
    """
    success: bool
    value: Optional[V] = None
    hit: bool = False
    ttl: Optional[float] = None
    source: Optional[str] = None
    error: Optional[str] = None


class CacheBackend(Generic[K, V], ABC):
    """
    Abstract interface for cache backends.

    Concrete implementations handle the specifics of the store (process
    memory, Redis).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the name of this cache backend."""

    @abstractmethod
    async def get(self, key: K) -> CacheResult[V]:
        """
        Retrieve a value from the cache.

        Args:
            key: The cache key

        Returns:
            CacheResult with the value and metadata
        """

    @abstractmethod
    async def set(self, key: K, value: V, ttl: Optional[float] = None) -> CacheResult[V]:
        """
        Store a value in the cache.

        Args:
            key: The cache key
            value: The value to cache
            ttl: Time-to-live in seconds (None means no expiration)

        Returns:
            CacheResult indicating success/failure
        """

    @abstractmethod
    async def delete(self, key: K) -> bool:
        """
        Delete a value from the cache.

        Returns:
            True if the value was deleted, False otherwise
        """

    @abstractmethod
    async def clear_prefix(self, prefix: str) -> int:
        """
        Delete every entry whose key starts with ``prefix``.

        Returns:
            Number of entries removed
        """

    @abstractmethod
    async def clear(self) -> bool:
        """Clear all entries from the cache."""

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the cache."""
