"""
Two-tier read-through cache.

Lookups go memory first, then the persistent tier; a persistent hit is
promoted into memory. Writes go to both tiers, and a persistent write
failure only costs that entry its durability.

Statistics (hits, misses, errors) live on the cache instance and are
reset only by clear().
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from sitmon.cache.entry import CacheEntry
from sitmon.cache.memory import MemoryCache
from sitmon.cache.persistent import PersistentCache
from sitmon.config import config
from sitmon.debug import is_debug_mode
from sitmon.errors import CacheWriteFailure

logger = logging.getLogger(__name__)

# Distinguishes "absent" from a cached None/empty payload
MISSING = object()


@dataclass
class CacheStats:
    """Monotonic counters for the lifetime of the cache."""
    hits: int = 0
    misses: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0


class TieredCache:
    """
    Memory + persistent cache with per-entry TTL.

    Thread-safe: counters are guarded by a lock and each tier guards
    its own read-modify-write sequences.
    """

    def __init__(
        self,
        memory: Optional[MemoryCache] = None,
        persistent: Optional[PersistentCache] = None,
        clock: Callable[[], float] = time.time,
        default_ttl_seconds: float = None,
    ):
        if default_ttl_seconds is None:
            default_ttl_seconds = config.cache.ttl_seconds
        self.memory = memory if memory is not None else MemoryCache()
        self.persistent = persistent if persistent is not None else PersistentCache()
        self.clock = clock
        self.default_ttl_seconds = default_ttl_seconds

        self._stats = CacheStats()
        self._stats_lock = threading.Lock()

    @property
    def debug(self) -> bool:
        return is_debug_mode(self.persistent.store)

    def record_hit(self) -> None:
        with self._stats_lock:
            self._stats.hits += 1

    def record_miss(self) -> None:
        with self._stats_lock:
            self._stats.misses += 1

    def record_error(self) -> None:
        with self._stats_lock:
            self._stats.errors += 1

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a live value.

        Returns `default` on a total miss (and counts the miss).
        """
        now = self.clock()
        # Read the flag at most once per lookup
        debug = logger.isEnabledFor(logging.DEBUG) and self.debug

        entry = self.memory.get(key, now)
        if entry is not None:
            self.record_hit()
            if debug:
                logger.debug(f'Memory cache HIT: {key[:50]}...')
            return entry.payload

        entry = self.persistent.get(key, now)
        if entry is not None:
            self.record_hit()
            if debug:
                logger.debug(f'Persistent cache HIT: {key[:50]}...')
            # Promote the stored entry as-is so its TTL keeps counting
            self.memory.set(key, entry)
            return entry.payload

        self.record_miss()
        if debug:
            logger.debug(f'Cache MISS: {key[:50]}...')
        return default

    def set(self, key: str, value: Any, ttl_seconds: float = None) -> None:
        """Write through both tiers. Never raises for persistent failures."""
        if ttl_seconds is None:
            ttl_seconds = self.default_ttl_seconds
        entry = CacheEntry(payload=value, stored_at=self.clock(), ttl_seconds=ttl_seconds)

        self.memory.set(key, entry)
        try:
            self.persistent.set(key, entry)
        except CacheWriteFailure as e:
            logger.warning(f'Persistent cache write failed: {e}')

    def get_stale(self, key: str, default: Any = None) -> Any:
        """Return the persisted value regardless of age."""
        entry = self.persistent.get_any(key)
        if entry is None:
            return default
        return entry.payload

    def clear(self) -> None:
        """Empty memory, drop this namespace from storage, reset counters."""
        self.memory.clear()
        try:
            removed = self.persistent.clear()
            logger.info(f'Cache cleared ({removed} persisted entries removed)')
        except SQLAlchemyError as e:
            logger.error(f'Cache clear error: {e}')
        with self._stats_lock:
            self._stats = CacheStats()

    def prune(self, older_than_seconds: float = None) -> int:
        """Remove persisted entries older than the stale retention window."""
        return self.persistent.prune(older_than_seconds, now=self.clock())

    def stats(self, active_requests: int = 0) -> dict:
        """Snapshot of counters, current size and in-flight requests."""
        with self._stats_lock:
            return {
                'hits': self._stats.hits,
                'misses': self._stats.misses,
                'errors': self._stats.errors,
                'hit_rate': self._stats.hit_rate,
                'current_size': len(self.memory),
                'active_requests': active_requests,
            }
