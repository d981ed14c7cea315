"""
Response cache: bounded memory tier over a persistent tier.
"""

from sitmon.cache.entry import CacheEntry, make_cache_key
from sitmon.cache.memory import MemoryCache
from sitmon.cache.persistent import PersistentCache, PersistentStore
from sitmon.cache.tiered import MISSING, CacheStats, TieredCache

__all__ = [
    'CacheEntry',
    'make_cache_key',
    'MemoryCache',
    'PersistentCache',
    'PersistentStore',
    'MISSING',
    'CacheStats',
    'TieredCache',
]
