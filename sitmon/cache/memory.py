"""
Bounded in-process cache tier.

Holds at most `max_entries` entries. When an insert would exceed the
bound, the entry inserted earliest is evicted (FIFO by insertion, not
by access: reading an entry does not protect it from eviction).
"""

import logging
import threading
from collections import OrderedDict
from typing import Optional

from sitmon.cache.entry import CacheEntry
from sitmon.config import config

logger = logging.getLogger(__name__)


class MemoryCache:
    """
    Thread-safe FIFO-bounded mapping of cache key to CacheEntry.

    Expired entries are deleted when a read observes them.
    """

    def __init__(self, max_entries: int = None):
        if max_entries is None:
            max_entries = config.cache.memory_max_entries
        if max_entries < 1:
            raise ValueError(f'max_entries must be at least 1, got {max_entries}')
        self.max_entries = max_entries
        self._entries: 'OrderedDict[str, CacheEntry]' = OrderedDict()
        self._lock = threading.RLock()

    def get(self, key: str, now: float) -> Optional[CacheEntry]:
        """Return a live entry, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        """Insert an entry, evicting the oldest insertion if at capacity."""
        with self._lock:
            # A replaced key counts as a fresh insertion
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f'Evicted oldest memory cache entry: {evicted[:80]}')
            self._entries[key] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self):
        """Snapshot of keys in insertion order."""
        with self._lock:
            return list(self._entries.keys())

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
