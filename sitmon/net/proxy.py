"""
Route racing for upstreams that are blocked, flaky or rate-limited.

1. Try the target directly with half the timeout and a single attempt
2. On failure, race every relay; the first success wins and the rest
   are abandoned (their results are discarded)
3. If every route fails, serve the persisted copy regardless of age,
   otherwise raise AllRoutesFailed

Stale data is only ever returned from step 3.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, List, Optional, Sequence
from urllib.parse import quote

from sitmon.cache import MISSING, make_cache_key
from sitmon.config import config
from sitmon.errors import AllRoutesFailed, FetchError
from sitmon.net.fetch import FetchOptions, ResilientFetcher, resolve_options

logger = logging.getLogger(__name__)


def relay_url(relay: str, url: str) -> str:
    """Wrap the target URL as an encoded suffix of the relay prefix."""
    return relay + quote(url, safe="!*'()")


class ProxyRacer:
    """
    Direct-first fetch with relay racing and stale fallback.
    """

    def __init__(
        self,
        fetcher: Optional[ResilientFetcher] = None,
        relay_retry_attempts: int = None,
    ):
        if relay_retry_attempts is None:
            relay_retry_attempts = config.network.relay_retry_attempts
        if relay_retry_attempts < 1:
            raise ValueError(f'relay_retry_attempts must be at least 1, got {relay_retry_attempts}')
        self.fetcher = fetcher if fetcher is not None else ResilientFetcher()
        self.relay_retry_attempts = relay_retry_attempts

    def fetch_via_best_route(
        self,
        url: str,
        options: Optional[FetchOptions] = None,
        relays: Optional[Sequence[str]] = None,
        **overrides,
    ) -> Any:
        """
        Fetch `url` by whichever route answers first.

        Args:
            url: Target URL
            options: Per-call options (timeout, cache, TTL, shape, relays)
            relays: Relay prefixes; overrides options.relays when given

        Raises:
            AllRoutesFailed when no route succeeds and nothing is cached.
        """
        if relays is not None:
            overrides['relays'] = tuple(relays)
        opts = resolve_options(options, **overrides)
        cache = self.fetcher.cache
        errors: List[BaseException] = []

        direct_opts = opts.replace(
            timeout_seconds=opts.timeout_seconds / 2,
            retry_attempts=1,
        )
        try:
            return self.fetcher.fetch(url, direct_opts)
        except FetchError as e:
            errors.append(e)
            if cache.debug:
                logger.debug(f'Direct fetch failed, trying relays: {e}')

        if opts.relays:
            payload = self._race(url, opts, errors)
            if payload is not MISSING:
                if opts.use_cache:
                    # Later direct lookups and the stale fallback key on the target URL
                    cache.set(make_cache_key(url, opts.response_shape), payload, opts.cache_ttl_seconds)
                return payload

        if opts.use_cache:
            stale = cache.get_stale(make_cache_key(url, opts.response_shape), MISSING)
            if stale is not MISSING:
                logger.warning(f'Using stale cache for {url} (all fetch attempts failed)')
                return stale

        cache.record_error()
        logger.error(f'All fetch attempts failed for {url} ({len(errors)} routes tried)')
        raise AllRoutesFailed(url, errors)

    def _race(self, url: str, opts: FetchOptions, errors: List[BaseException]) -> Any:
        """Return the first relay payload, or MISSING if every relay failed."""
        relay_opts = opts.replace(retry_attempts=self.relay_retry_attempts)
        executor = ThreadPoolExecutor(
            max_workers=len(opts.relays),
            thread_name_prefix='relay',
        )
        try:
            futures = {
                executor.submit(self.fetcher.fetch, relay_url(relay, url), relay_opts): relay
                for relay in opts.relays
            }
            for future in as_completed(futures):
                try:
                    payload = future.result()
                except FetchError as e:
                    errors.append(e)
                    logger.debug(f'Relay {futures[future]} failed: {e}')
                    continue
                logger.debug(f'Relay {futures[future]} won the race for {url}')
                return payload
        finally:
            # Losers keep running; their results are dropped
            executor.shutdown(wait=False, cancel_futures=True)

        return MISSING
