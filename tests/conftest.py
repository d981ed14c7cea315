"""
Pytest configuration and fixtures for the request layer tests.
"""

import os

# Keep the module-level engine off the working directory
os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

import pytest

from sitmon.cache import MemoryCache, PersistentCache, PersistentStore, TieredCache
from sitmon.models import create_db_engine, create_session_factory, init_db
from sitmon.net import BatchFetcher, ConcurrencyGate, ProxyRacer, ResilientFetcher


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def session_factory():
    """Isolated in-memory database per test."""
    engine = create_db_engine('sqlite:///:memory:')
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory) -> PersistentStore:
    return PersistentStore(session_factory)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(store, clock) -> TieredCache:
    return TieredCache(
        memory=MemoryCache(max_entries=100),
        persistent=PersistentCache(store),
        clock=clock,
    )


@pytest.fixture
def sleeps() -> list:
    """Collects requested backoff sleeps instead of sleeping."""
    return []


@pytest.fixture
def fetcher(cache, sleeps) -> ResilientFetcher:
    return ResilientFetcher(
        cache=cache,
        gate=ConcurrencyGate(max_concurrent=6),
        sleep=sleeps.append,
        rng=lambda: 0.0,
    )


@pytest.fixture
def racer(fetcher) -> ProxyRacer:
    return ProxyRacer(fetcher, relay_retry_attempts=2)


@pytest.fixture
def batch_fetcher(racer) -> BatchFetcher:
    return BatchFetcher(racer, max_workers=8)
