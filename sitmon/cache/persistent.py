"""
Persistent cache tier backed by the key/value table.

Survives process restarts. Has no size bound of its own; a failed write
(database full, locked, value not serializable) is reported with
CacheWriteFailure so the tiered cache can degrade to memory-only for
that entry.

Expired rows are deliberately kept on read: the stale fallback of the
proxy racer needs them. They are dropped by clear(), overwritten by
set(), or removed by prune().
"""

import json
import logging
import threading
import time
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from sitmon.cache.entry import CacheEntry
from sitmon.config import config
from sitmon.errors import CacheWriteFailure
from sitmon.models.base import SessionLocal, get_session
from sitmon.models.stored_value import StoredValue

logger = logging.getLogger(__name__)


def _prefix_clause(prefix: str):
    # Exact, case-sensitive prefix match
    return func.substr(StoredValue.key, 1, len(prefix)) == prefix


class PersistentStore:
    """
    Generic JSON key/value store over a SQLAlchemy session factory.

    Shared by the cache tier and by persisted settings.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory or SessionLocal
        self._lock = threading.RLock()

    def get_raw(self, key: str) -> Optional[str]:
        with self._lock, get_session(self.session_factory) as session:
            row = session.get(StoredValue, key)
            return row.value if row else None

    def get(self, key: str, default: Any = None) -> Any:
        raw = self.get_raw(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            return default

    def set_raw(self, key: str, raw: str) -> None:
        with self._lock, get_session(self.session_factory) as session:
            row = session.get(StoredValue, key)
            if row is None:
                session.add(StoredValue(key=key, value=raw))
            else:
                row.value = raw

    def set(self, key: str, value: Any) -> None:
        self.set_raw(key, json.dumps(value))

    def delete(self, key: str) -> None:
        with self._lock, get_session(self.session_factory) as session:
            session.execute(delete(StoredValue).where(StoredValue.key == key))

    def keys_with_prefix(self, prefix: str) -> list:
        with self._lock, get_session(self.session_factory) as session:
            stmt = select(StoredValue.key).where(_prefix_clause(prefix))
            return list(session.scalars(stmt))

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix. Returns rows removed."""
        with self._lock, get_session(self.session_factory) as session:
            stmt = delete(StoredValue).where(_prefix_clause(prefix)).execution_options(
                synchronize_session=False
            )
            result = session.execute(stmt)
            return result.rowcount or 0


class PersistentCache:
    """
    CacheEntry view over a PersistentStore, namespaced by a key prefix.
    """

    def __init__(
        self,
        store: Optional[PersistentStore] = None,
        prefix: str = None,
    ):
        self.store = store if store is not None else PersistentStore()
        self.prefix = prefix if prefix is not None else config.cache.persistent_prefix

    def _storage_key(self, key: str) -> str:
        return f'{self.prefix}{key}'

    def get(self, key: str, now: float) -> Optional[CacheEntry]:
        """Return a live entry, or None if absent, expired or unreadable."""
        entry = self.get_any(key)
        if entry is None or entry.is_expired(now):
            return None
        return entry

    def get_any(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry regardless of age."""
        try:
            raw = self.store.get_raw(self._storage_key(key))
        except SQLAlchemyError as e:
            logger.error(f'Persistent cache read failed: {e}')
            return None
        if raw is None:
            return None
        return CacheEntry.from_json(raw)

    def set(self, key: str, entry: CacheEntry) -> None:
        """Persist an entry. Raises CacheWriteFailure on any storage error."""
        try:
            raw = entry.to_json()
            self.store.set_raw(self._storage_key(key), raw)
        except (TypeError, ValueError, SQLAlchemyError) as e:
            raise CacheWriteFailure(str(e)) from e

    def clear(self) -> int:
        """Remove every entry in this namespace. Other keys are untouched."""
        return self.store.delete_prefix(self.prefix)

    def prune(self, older_than_seconds: float = None, now: float = None) -> int:
        """
        Drop entries stored more than `older_than_seconds` ago.

        Defaults to the configured stale retention window. Returns the
        number of entries removed.
        """
        if older_than_seconds is None:
            older_than_seconds = config.cache.stale_retention_hours * 3600
        now = time.time() if now is None else now

        removed = 0
        for storage_key in self.store.keys_with_prefix(self.prefix):
            raw = self.store.get_raw(storage_key)
            entry = CacheEntry.from_json(raw) if raw is not None else None
            if entry is None or entry.age(now) > older_than_seconds:
                self.store.delete(storage_key)
                removed += 1

        if removed:
            logger.info(f'Pruned {removed} persisted cache entries')
        return removed

    def __len__(self) -> int:
        return len(self.store.keys_with_prefix(self.prefix))
