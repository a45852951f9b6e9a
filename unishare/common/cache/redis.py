"""
Redis Cache Backend Module

Distributed cache backend on ``redis.asyncio`` so that several API workers
share one leaderboard/analytics cache. Values are pickled by default because
the cached objects are gamification dataclasses; JSON is available for
plain data.
"""

import json
import logging
import pickle
from enum import Enum
from typing import Any, Dict, Optional

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from unishare.common.exceptions import CacheError
from .base import CacheBackend, CacheResult

logger = logging.getLogger(__name__)


class SerializationFormat(str, Enum):
    """Enum for cache serialization formats."""
    JSON = "json"
    PICKLE = "pickle"


class RedisCacheBackend(CacheBackend[str, Any]):
    """
    Redis cache backend implementation.

    Connectivity failures surface as ``CacheError`` so callers can decide to
    fall through to a recompute.
    """

    def __init__(
        self,
        redis_client: AsyncRedis,
        key_prefix: str = "unishare:",
        serialization: SerializationFormat = SerializationFormat.PICKLE,
        name: str = "redis"
    ):
        """
        Initialize the Redis cache backend.

        Args:
            redis_client: Async Redis client to use
            key_prefix: Prefix for all Redis keys
            serialization: Serialization format (JSON or PICKLE)
            name: Name for this cache backend
        """
        self._redis = redis_client
        self._key_prefix = key_prefix
        self._serialization = serialization
        self._name = name
        self._hits = 0
        self._misses = 0

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisCacheBackend":
        """Build a backend from a ``redis://`` connection string."""
        return cls(AsyncRedis.from_url(url, decode_responses=False), **kwargs)

    @property
    def name(self) -> str:
        return self._name

    def _build_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _serialize(self, value: Any) -> bytes:
        if self._serialization == SerializationFormat.JSON:
            return json.dumps(value).encode("utf-8")
        return pickle.dumps(value)

    def _deserialize(self, data: bytes) -> Any:
        if self._serialization == SerializationFormat.JSON:
            return json.loads(data)
        return pickle.loads(data)

    async def get(self, key: str) -> CacheResult[Any]:
        try:
            data = await self._redis.get(self._build_key(key))
        except RedisError as e:
            raise CacheError(f"get {key!r} failed", e) from e

        if data is None:
            self._misses += 1
            return CacheResult(success=False, source=self.name, error="Key not found")

        self._hits += 1
        return CacheResult(success=True, value=self._deserialize(data), hit=True, source=self.name)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> CacheResult[Any]:
        try:
            if ttl:
                await self._redis.set(self._build_key(key), self._serialize(value), ex=int(ttl))
            else:
                await self._redis.set(self._build_key(key), self._serialize(value))
        except RedisError as e:
            raise CacheError(f"set {key!r} failed", e) from e

        return CacheResult(success=True, value=value, ttl=ttl, source=self.name)

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._redis.delete(self._build_key(key)))
        except RedisError as e:
            raise CacheError(f"delete {key!r} failed", e) from e

    async def clear_prefix(self, prefix: str) -> int:
        removed = 0
        try:
            async for redis_key in self._redis.scan_iter(match=f"{self._build_key(prefix)}*"):
                removed += await self._redis.delete(redis_key)
        except RedisError as e:
            raise CacheError(f"clear_prefix {prefix!r} failed", e) from e
        return removed

    async def clear(self) -> bool:
        return await self.clear_prefix("") >= 0

    async def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            "name": self.name,
            "hits": self._hits,
            "misses": self._misses,
            "hit_ratio": self._hits / total if total > 0 else 0.0
        }
