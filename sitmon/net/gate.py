"""
Admission control for outbound requests.

At most `max_concurrent` operations run at once. Excess callers wait in
a FIFO queue; a finishing operation hands its slot directly to the head
of the queue, so a newcomer can never overtake a waiter and the active
count never exceeds the cap.
"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, TypeVar

from sitmon.config import config

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ConcurrencyGate:
    """Counting gate with FIFO hand-off."""

    def __init__(self, max_concurrent: int = None):
        if max_concurrent is None:
            max_concurrent = config.network.max_concurrent
        if max_concurrent < 1:
            raise ValueError(f'max_concurrent must be at least 1, got {max_concurrent}')
        self.max_concurrent = max_concurrent

        self._active = 0
        self._waiters: Deque[threading.Event] = deque()
        self._lock = threading.Lock()

    @property
    def active_requests(self) -> int:
        with self._lock:
            return self._active

    @property
    def queued(self) -> int:
        with self._lock:
            return len(self._waiters)

    def _acquire(self) -> None:
        with self._lock:
            if self._active < self.max_concurrent:
                self._active += 1
                return
            waiter = threading.Event()
            self._waiters.append(waiter)
            queued = len(self._waiters)

        logger.debug(f'Concurrency limit reached, queued at position {queued}')
        # The releasing thread transfers its slot before setting the event
        waiter.wait()

    def _release(self) -> None:
        with self._lock:
            if self._waiters:
                # Slot passes to the next waiter; active count unchanged
                self._waiters.popleft().set()
            else:
                self._active -= 1

    def admit(self, operation: Callable[[], T]) -> T:
        """Run `operation` once a slot is available."""
        self._acquire()
        try:
            return operation()
        finally:
            self._release()
