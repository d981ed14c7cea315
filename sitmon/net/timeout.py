"""
Deadline enforcement for a single network call.

The guarded operation receives a CancelSignal. A timer fires the signal
when the deadline passes. The operation passes `signal.remaining()` to
blocking I/O and registers an `on_cancel` hook that aborts any read
still blocked at the deadline. Observing cancellation turns into
FetchTimeout. The timer is always cancelled on exit.
"""

import logging
import threading
import time
from typing import Callable, List, TypeVar

import requests

from sitmon.config import config
from sitmon.errors import FetchTimeout

logger = logging.getLogger(__name__)

T = TypeVar('T')


class OperationCancelled(Exception):
    """Raised by an operation that noticed its signal fired."""


class CancelSignal:
    """One-shot cancellation flag with a known deadline.

    Callbacks registered with `on_cancel` run once, on the thread that
    fires the signal. They are how a blocked read gets interrupted.
    """

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        self.deadline = time.monotonic() + timeout_seconds
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
            for callback in callbacks:
                _run_callback(callback)

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run `callback` when the signal fires (immediately if it already has)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        _run_callback(callback)

    def discard(self, callback: Callable[[], None]) -> None:
        """Unregister a callback that has not run yet."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, seconds: float = None) -> bool:
        """Block until cancelled or `seconds` elapse. Returns cancelled state."""
        return self._event.wait(seconds)

    def remaining(self) -> float:
        """Seconds left before the deadline (never negative)."""
        return max(0.0, self.deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled()


def _run_callback(callback: Callable[[], None]) -> None:
    # Runs on the timer thread
    try:
        callback()
    except Exception as e:
        logger.warning(f"Cancel callback failed: {e}")


def with_timeout(
    operation: Callable[[CancelSignal], T],
    timeout_seconds: float = None,
) -> T:
    """
    Run `operation(signal)` under a hard deadline.

    Raises:
        FetchTimeout if the operation observes cancellation or the
        underlying HTTP client times out.
    """
    if timeout_seconds is None:
        timeout_seconds = config.network.timeout_seconds

    signal = CancelSignal(timeout_seconds)
    timer = threading.Timer(timeout_seconds, signal.cancel)
    timer.daemon = True
    timer.start()

    try:
        return operation(signal)
    except OperationCancelled:
        raise FetchTimeout(timeout_seconds) from None
    except requests.exceptions.Timeout as e:
        raise FetchTimeout(timeout_seconds) from e
    finally:
        timer.cancel()
