"""
Exponential backoff with jitter.

Attempts run strictly one after another. Before retry i (0-based) the
caller sleeps base * 2**i plus up to 30% jitter. Only the last
attempt's error is raised, unchanged; earlier errors are reported
through the optional on_retry callback.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from sitmon.config import config

logger = logging.getLogger(__name__)

T = TypeVar('T')

JITTER_RATIO = 0.3

RetryCallback = Callable[[int, int, BaseException, float], None]


@dataclass
class Attempt:
    """Tagged outcome of one invocation."""
    index: int
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_attempt(operation: Callable[[], T], index: int) -> Attempt:
    try:
        return Attempt(index=index, value=operation())
    except Exception as e:
        return Attempt(index=index, error=e)


def backoff_delay(
    index: int,
    base_delay_seconds: float,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay before retry `index`: base * 2**index plus [0, 30%] jitter."""
    delay = base_delay_seconds * (2 ** index)
    jitter = rng() * JITTER_RATIO * delay
    return delay + jitter


def retry(
    operation: Callable[[], T],
    attempts: int = None,
    base_delay_seconds: float = None,
    on_retry: Optional[RetryCallback] = None,
    sleep: Callable[[float], None] = time.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """
    Invoke `operation` up to `attempts` times.

    Args:
        operation: Zero-argument callable; any exception counts as failure
        attempts: Total invocations allowed (>= 1)
        base_delay_seconds: Delay before the first retry
        on_retry: Called as on_retry(index, attempts, error, delay) before
            each sleep, for diagnostics
        sleep, rng: Injected for deterministic tests

    Returns:
        The first successful result.

    Raises:
        The final attempt's exception, unmodified.
    """
    if attempts is None:
        attempts = config.network.retry_attempts
    if base_delay_seconds is None:
        base_delay_seconds = config.network.retry_base_delay_seconds
    if attempts < 1:
        raise ValueError('attempts must be >= 1')

    for index in range(attempts):
        attempt = run_attempt(operation, index)
        if attempt.ok:
            return attempt.value

        if index == attempts - 1:
            raise attempt.error

        delay = backoff_delay(index, base_delay_seconds, rng)
        logger.info(
            f'Retry attempt {index + 1}/{attempts} after {round(delay * 1000)}ms '
            f'({attempt.error})'
        )
        if on_retry:
            on_retry(index, attempts, attempt.error, delay)
        sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError('retry loop exited without result')
