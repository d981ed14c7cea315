"""
Error taxonomy for the request layer.

Every failure the core can produce derives from FetchError so that
callers (feed adapters, the batch fetcher) can catch one type. Timeouts,
transport failures, HTTP errors and parse failures are all retryable;
AllRoutesFailed is terminal. CacheWriteFailure never escapes the cache.
"""

from typing import List, Optional


class FetchError(Exception):
    """Base class for all request layer failures."""


class FetchTimeout(FetchError):
    """The call did not complete before its deadline."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f'Request timeout after {round(timeout_seconds * 1000)}ms')


class TransportFailure(FetchError):
    """Connection-level failure (DNS, refused, reset, TLS)."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f'Transport failure: {cause}')


class HttpError(FetchError):
    """Upstream answered with a non-2xx status."""

    def __init__(self, status: int, reason: Optional[str] = None):
        self.status = status
        self.reason = reason
        message = f'HTTP {status}: {reason}' if reason else f'HTTP {status}'
        super().__init__(message)


class ParseFailure(FetchError):
    """Response body could not be decoded into the requested shape."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f'Could not parse response: {cause}')


class AllRoutesFailed(FetchError):
    """Direct call and every relay failed, and no stale copy was available."""

    def __init__(self, url: str, errors: Optional[List[BaseException]] = None):
        self.url = url
        self.errors = list(errors or [])
        super().__init__(f'All fetch attempts failed for {url}')


class CacheWriteFailure(Exception):
    """Persistent tier rejected a write (quota, serialization, database)."""
