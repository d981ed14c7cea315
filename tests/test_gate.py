"""
Tests for the FIFO concurrency gate.
"""

import threading
import time

import pytest

from sitmon.net.gate import ConcurrencyGate


def wait_until(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError('condition not reached in time')
        time.sleep(0.001)


class TestConcurrencyGate:
    """Tests for ConcurrencyGate."""

    def test_runs_immediately_below_cap(self):
        gate = ConcurrencyGate(max_concurrent=2)
        assert gate.admit(lambda: 42) == 42
        assert gate.active_requests == 0

    def test_active_count_never_exceeds_cap(self):
        gate = ConcurrencyGate(max_concurrent=3)
        lock = threading.Lock()
        running = 0
        peak = 0
        observed = []

        def op():
            nonlocal running, peak
            with lock:
                running += 1
                peak = max(peak, running)
            observed.append(gate.active_requests)
            time.sleep(0.01)
            with lock:
                running -= 1

        threads = [threading.Thread(target=gate.admit, args=(op,)) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert peak <= 3
        assert max(observed) <= 3
        assert gate.active_requests == 0
        assert gate.queued == 0

    def test_waiters_are_admitted_in_arrival_order(self):
        gate = ConcurrencyGate(max_concurrent=1)
        hold = threading.Event()
        order = []

        blocker = threading.Thread(target=gate.admit, args=(hold.wait,))
        blocker.start()
        wait_until(lambda: gate.active_requests == 1)

        waiters = []
        for i in range(5):
            t = threading.Thread(target=gate.admit, args=(lambda i=i: order.append(i),))
            t.start()
            # Ensure arrival order is deterministic
            wait_until(lambda n=i + 1: gate.queued == n)
            waiters.append(t)

        hold.set()
        blocker.join(timeout=5)
        for t in waiters:
            t.join(timeout=5)

        assert order == [0, 1, 2, 3, 4]
        assert gate.active_requests == 0

    def test_failing_operation_releases_slot(self):
        gate = ConcurrencyGate(max_concurrent=1)

        def boom():
            raise RuntimeError('upstream down')

        with pytest.raises(RuntimeError):
            gate.admit(boom)

        assert gate.active_requests == 0
        assert gate.admit(lambda: 'next') == 'next'

    def test_failure_hands_slot_to_waiter(self):
        gate = ConcurrencyGate(max_concurrent=1)
        release = threading.Event()
        result = []

        def failing():
            release.wait()
            raise RuntimeError('fail')

        def run_failing():
            try:
                gate.admit(failing)
            except RuntimeError:
                pass

        first = threading.Thread(target=run_failing)
        first.start()
        wait_until(lambda: gate.active_requests == 1)

        second = threading.Thread(target=lambda: result.append(gate.admit(lambda: 'admitted')))
        second.start()
        wait_until(lambda: gate.queued == 1)

        release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert result == ['admitted']
        assert gate.active_requests == 0

    @pytest.mark.parametrize('cap', [0, -1])
    def test_rejects_invalid_cap(self, cap):
        with pytest.raises(ValueError):
            ConcurrencyGate(max_concurrent=cap)
