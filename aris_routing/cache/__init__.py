"""Result caching: in-process LRU with an optional Redis tier."""

from aris_routing.cache.client import RedisManager
from aris_routing.cache.result_cache import CacheStats, ResultCache

__all__ = [
    "CacheStats",
    "RedisManager",
    "ResultCache",
]
