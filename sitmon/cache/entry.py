"""
Cache entry shape shared by both cache tiers.

Entries are immutable: a refresh writes a new entry rather than
touching the stored one. Expiry is derived from storage time and TTL,
never stored.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class CacheEntry:
    """Cached payload with its own TTL."""
    payload: Any
    stored_at: float
    ttl_seconds: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_expired(self, now: float) -> bool:
        """An entry is valid up to and including its TTL."""
        return self.age(now) > self.ttl_seconds

    def to_json(self) -> str:
        """Serialize for the persistent tier. Raises TypeError/ValueError."""
        return json.dumps({
            'data': self.payload,
            'timestamp': self.stored_at,
            'ttl': self.ttl_seconds,
        })

    @classmethod
    def from_json(cls, raw: str) -> Optional['CacheEntry']:
        """Parse a persisted entry, or None if the row is malformed."""
        try:
            obj = json.loads(raw)
            return cls(
                payload=obj['data'],
                stored_at=float(obj['timestamp']),
                ttl_seconds=float(obj['ttl']),
            )
        except (ValueError, TypeError, KeyError):
            return None


def make_cache_key(url: str, response_shape: str = 'text') -> str:
    """
    Derive the cache key for a request.

    Only options that change the cached payload take part in the key,
    so equal requests always map to the same key.
    """
    options = json.dumps({'parser': response_shape}, sort_keys=True, separators=(',', ':'))
    return f'{url}:{options}'
