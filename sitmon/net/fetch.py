"""
Resilient fetch: one reliable GET against an unreliable upstream.

Composition, outermost first:
1. Cache: a live cached copy is returned without touching the network
2. Gate: admission into the bounded set of in-flight requests
3. Retry: exponential backoff with jitter around each attempt
4. Timeout: every attempt runs under its own deadline

A non-2xx status counts as a failure and is retried like a transport
error. Successful payloads are written through both cache tiers. There
is no stale fallback at this layer; see ProxyRacer.
"""

import dataclasses
import functools
import json
import logging
import random
import socket
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import requests
import urllib3

from sitmon.cache import MISSING, TieredCache, make_cache_key
from sitmon.config import config
from sitmon.errors import FetchTimeout, HttpError, ParseFailure, TransportFailure
from sitmon.net.gate import ConcurrencyGate
from sitmon.net.retry import RetryCallback, retry
from sitmon.net.timeout import CancelSignal, OperationCancelled, with_timeout

logger = logging.getLogger(__name__)

RESPONSE_SHAPES = ('text', 'json')

# Cancellation is checked between chunks
CHUNK_SIZE = 1024

# requests rejects a zero timeout
MIN_SOCKET_TIMEOUT = 0.001


@dataclass(frozen=True)
class FetchOptions:
    """
    Per-call overrides. Fields left as None use the configured defaults.
    """
    timeout_seconds: Optional[float] = None
    use_cache: Optional[bool] = None
    cache_ttl_seconds: Optional[float] = None
    retry_attempts: Optional[int] = None
    retry_base_delay_seconds: Optional[float] = None
    response_shape: str = 'text'
    headers: Optional[Dict[str, str]] = None
    relays: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        if self.response_shape not in RESPONSE_SHAPES:
            raise ValueError(f'response_shape must be one of {RESPONSE_SHAPES}')

    def replace(self, **changes) -> 'FetchOptions':
        return dataclasses.replace(self, **changes)

    def resolved(self) -> 'FetchOptions':
        """Copy with every unset field filled from configuration."""
        return self.replace(
            timeout_seconds=(
                self.timeout_seconds if self.timeout_seconds is not None
                else config.network.timeout_seconds
            ),
            use_cache=self.use_cache if self.use_cache is not None else config.cache.enabled,
            cache_ttl_seconds=(
                self.cache_ttl_seconds if self.cache_ttl_seconds is not None
                else config.cache.ttl_seconds
            ),
            retry_attempts=(
                self.retry_attempts if self.retry_attempts is not None
                else config.network.retry_attempts
            ),
            retry_base_delay_seconds=(
                self.retry_base_delay_seconds if self.retry_base_delay_seconds is not None
                else config.network.retry_base_delay_seconds
            ),
            relays=self.relays if self.relays is not None else config.relays.endpoints,
        )

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'FetchOptions':
        """Build options from a JSON body, ignoring unknown keys."""
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise TypeError('options must be an object')
        known = {f.name for f in dataclasses.fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if values.get('relays') is not None:
            values['relays'] = tuple(values['relays'])
        return cls(**values)


def resolve_options(options: Optional[FetchOptions] = None, **overrides) -> FetchOptions:
    """Merge keyword overrides into options and fill defaults."""
    options = options or FetchOptions()
    if overrides:
        options = options.replace(**overrides)
    return options.resolved()


def decode_body(body: bytes, response_shape: str, encoding: Optional[str] = None) -> Any:
    """Decode a response body as text or JSON."""
    try:
        if response_shape == 'json':
            return json.loads(body)
        return body.decode(encoding or 'utf-8', errors='replace')
    except (ValueError, LookupError) as e:
        raise ParseFailure(e) from e


def _is_read_timeout(error: Exception) -> bool:
    """requests reports a streaming read timeout as a ConnectionError."""
    if isinstance(error, (requests.exceptions.Timeout, socket.timeout)):
        return True
    if isinstance(error, requests.exceptions.ConnectionError) and error.args:
        return isinstance(error.args[0], urllib3.exceptions.ReadTimeoutError)
    return False


def _abort_response(response: requests.Response) -> None:
    """Unblock a reader stuck on this response's socket."""
    connection = getattr(response.raw, 'connection', None)
    sock = getattr(connection, 'sock', None)
    if sock is None:
        response.close()
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        logger.debug(f"Socket already closed: {e}")


class ResilientFetcher:
    """
    Owns the cache, the concurrency gate and the HTTP session.

    One instance per process is typical; tests build isolated instances.
    """

    def __init__(
        self,
        cache: Optional[TieredCache] = None,
        gate: Optional[ConcurrencyGate] = None,
        session: Optional[requests.Session] = None,
        on_retry: Optional[RetryCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.cache = cache if cache is not None else TieredCache()
        self.gate = gate if gate is not None else ConcurrencyGate()
        if session is None:
            session = requests.Session()
            session.headers['User-Agent'] = config.network.user_agent
        self.session = session
        self.on_retry = on_retry
        self._sleep = sleep
        self._rng = rng

    def fetch(self, url: str, options: Optional[FetchOptions] = None, **overrides) -> Any:
        """
        Fetch `url` with caching, admission control, retries and timeouts.

        Returns:
            Decoded payload (str for 'text', parsed object for 'json')

        Raises:
            FetchTimeout, TransportFailure, HttpError or ParseFailure from
            the final attempt.
        """
        opts = resolve_options(options, **overrides)
        cache_key = make_cache_key(url, opts.response_shape)

        if opts.use_cache:
            cached = self.cache.get(cache_key, MISSING)
            if cached is not MISSING:
                return cached
        else:
            self.cache.record_miss()

        payload = self.gate.admit(
            lambda: retry(
                lambda: self._fetch_once(url, opts),
                attempts=opts.retry_attempts,
                base_delay_seconds=opts.retry_base_delay_seconds,
                on_retry=self.on_retry,
                sleep=self._sleep,
                rng=self._rng,
            )
        )

        if opts.use_cache:
            self.cache.set(cache_key, payload, opts.cache_ttl_seconds)
        return payload

    def _fetch_once(self, url: str, opts: FetchOptions) -> Any:
        return with_timeout(
            lambda signal: self._request(url, opts, signal),
            opts.timeout_seconds,
        )

    def _request(self, url: str, opts: FetchOptions, signal: CancelSignal) -> Any:
        """Single GET whose body read is aborted once the deadline passes."""
        signal.raise_if_cancelled()
        try:
            response = self.session.get(
                url,
                headers=opts.headers,
                timeout=max(signal.remaining(), MIN_SOCKET_TIMEOUT),
                stream=True,
            )
        except requests.exceptions.Timeout:
            raise
        except requests.exceptions.RequestException as e:
            raise TransportFailure(e) from e

        abort = functools.partial(_abort_response, response)
        signal.on_cancel(abort)
        try:
            with response:
                if not response.ok:
                    raise HttpError(response.status_code, response.reason)

                chunks = []
                try:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        signal.raise_if_cancelled()
                        chunks.append(chunk)
                except OperationCancelled:
                    raise
                except Exception as e:
                    # An aborted socket surfaces as whatever the read hit
                    if signal.cancelled or _is_read_timeout(e):
                        raise FetchTimeout(signal.timeout_seconds) from e
                    if isinstance(e, requests.exceptions.RequestException):
                        raise TransportFailure(e) from e
                    raise
                signal.raise_if_cancelled()

                encoding = response.encoding
        finally:
            signal.discard(abort)

        return decode_body(b''.join(chunks), opts.response_shape, encoding)

    def stats(self) -> dict:
        """Cache statistics plus concurrency state."""
        stats = self.cache.stats(active_requests=self.gate.active_requests)
        stats['max_concurrent'] = self.gate.max_concurrent
        stats['queued'] = self.gate.queued
        return stats

    def clear_cache(self) -> None:
        self.cache.clear()


def log_cache_stats(fetcher: ResilientFetcher) -> None:
    """Write a statistics summary to the log."""
    stats = fetcher.stats()
    logger.info('=== Cache Statistics ===')
    logger.info(f'Hits: {stats["hits"]}')
    logger.info(f'Misses: {stats["misses"]}')
    logger.info(f'Errors: {stats["errors"]}')
    logger.info(f'Hit Rate: {stats["hit_rate"] * 100:.1f}%')
    logger.info(f'Memory Cache Size: {stats["current_size"]} items')
    logger.info(f'Active Requests: {stats["active_requests"]}/{stats["max_concurrent"]}')
