"""
Caching System

Time-bounded cache backends used for leaderboard and analytics views.
Entries are invalidated whenever points are awarded and always recomputable
from the ledger.
"""

from typing import Optional

from unishare.common.cache.base import CacheBackend, CacheResult
from unishare.common.cache.entry import CacheEntry
from unishare.common.cache.memory import MemoryCacheBackend
from unishare.common.cache.redis import RedisCacheBackend, SerializationFormat
from unishare.common.config import AppConfig, get_config


def create_cache_backend(config: Optional[AppConfig] = None) -> CacheBackend:
    """
    Build the cache backend selected by configuration.

    Args:
        config: Application configuration (defaults to the loaded config)

    Returns:
        A Redis backend when ``cache.use_redis`` is set, else a memory backend
    """
    config = config or get_config()
    if config.cache.use_redis:
        return RedisCacheBackend.from_url(
            config.redis.connection_string,
            key_prefix=config.cache.key_prefix
        )
    return MemoryCacheBackend(max_size=config.cache.memory_max_size)


__all__ = [
    'CacheBackend',
    'CacheResult',
    'CacheEntry',
    'MemoryCacheBackend',
    'RedisCacheBackend',
    'SerializationFormat',
    'create_cache_backend',
]
