"""
Resilient request layer.

    timeout.py  Deadline and cancellation signal for one call
    retry.py    Exponential backoff with jitter
    gate.py     FIFO concurrency gate
    fetch.py    Cache + gate + retry + timeout composed into one fetch
    proxy.py    Direct-first fetch with relay racing and stale fallback
    batch.py    Parallel fan-out with per-request failure isolation
"""

from sitmon.net.batch import FAILURE, SUCCESS, BatchFetcher, BatchRequest, Outcome
from sitmon.net.fetch import FetchOptions, ResilientFetcher, log_cache_stats
from sitmon.net.gate import ConcurrencyGate
from sitmon.net.proxy import ProxyRacer, relay_url
from sitmon.net.timeout import CancelSignal, with_timeout

__all__ = [
    'FAILURE',
    'SUCCESS',
    'BatchFetcher',
    'BatchRequest',
    'Outcome',
    'FetchOptions',
    'ResilientFetcher',
    'log_cache_stats',
    'ConcurrencyGate',
    'ProxyRacer',
    'relay_url',
    'CancelSignal',
    'with_timeout',
]
