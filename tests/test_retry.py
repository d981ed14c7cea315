"""
Tests for exponential backoff with jitter.
"""

import random

import pytest

from sitmon.net.retry import Attempt, backoff_delay, retry, run_attempt


class Flaky:
    """Fails a fixed number of times, then succeeds."""

    def __init__(self, failures: int, result='ok'):
        self.failures = failures
        self.result = result
        self.calls = 0
        self.errors = []

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            error = RuntimeError(f'failure {self.calls}')
            self.errors.append(error)
            raise error
        return self.result


class TestRetry:
    """Tests for retry()."""

    def test_first_success_does_not_sleep(self):
        sleeps = []
        op = Flaky(failures=0)

        assert retry(op, attempts=3, base_delay_seconds=1.0, sleep=sleeps.append) == 'ok'
        assert op.calls == 1
        assert sleeps == []

    def test_recovers_after_failures(self):
        sleeps = []
        op = Flaky(failures=2)

        result = retry(op, attempts=3, base_delay_seconds=1.0, sleep=sleeps.append, rng=lambda: 0.0)

        assert result == 'ok'
        assert op.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_exhaustion_invokes_exactly_attempts_times(self):
        sleeps = []
        op = Flaky(failures=10)

        with pytest.raises(RuntimeError):
            retry(op, attempts=3, base_delay_seconds=1.0, sleep=sleeps.append)

        assert op.calls == 3
        # No sleep after the final attempt
        assert len(sleeps) == 2

    def test_delays_fall_within_jitter_bounds(self):
        sleeps = []
        rng = random.Random(42)

        with pytest.raises(RuntimeError):
            retry(Flaky(failures=10), attempts=3, base_delay_seconds=1.0,
                  sleep=sleeps.append, rng=rng.random)

        for i, delay in enumerate(sleeps):
            assert 1.0 * 2 ** i <= delay <= 1.3 * 2 ** i

    def test_max_jitter(self):
        sleeps = []
        with pytest.raises(RuntimeError):
            retry(Flaky(failures=10), attempts=3, base_delay_seconds=1.0,
                  sleep=sleeps.append, rng=lambda: 1.0)
        assert sleeps == pytest.approx([1.3, 2.6])

    def test_final_error_is_raised_unmodified(self):
        op = Flaky(failures=10)

        with pytest.raises(RuntimeError) as exc_info:
            retry(op, attempts=3, base_delay_seconds=0.01, sleep=lambda s: None)

        assert exc_info.value is op.errors[-1]
        assert str(exc_info.value) == 'failure 3'

    def test_on_retry_reports_each_retry(self):
        events = []
        op = Flaky(failures=10)

        with pytest.raises(RuntimeError):
            retry(
                op,
                attempts=3,
                base_delay_seconds=0.5,
                on_retry=lambda i, n, err, delay: events.append((i, n, str(err), delay)),
                sleep=lambda s: None,
                rng=lambda: 0.0,
            )

        assert events == [
            (0, 3, 'failure 1', 0.5),
            (1, 3, 'failure 2', 1.0),
        ]

    def test_single_attempt_never_sleeps(self):
        sleeps = []
        with pytest.raises(RuntimeError):
            retry(Flaky(failures=1), attempts=1, base_delay_seconds=1.0, sleep=sleeps.append)
        assert sleeps == []

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            retry(lambda: 1, attempts=0)


class TestAttempt:
    """Tests for the tagged per-attempt outcome."""

    def test_success_is_tagged_ok(self):
        attempt = run_attempt(lambda: 5, 0)
        assert attempt == Attempt(index=0, value=5)
        assert attempt.ok

    def test_failure_captures_error(self):
        def boom():
            raise KeyError('x')

        attempt = run_attempt(boom, 2)
        assert not attempt.ok
        assert attempt.index == 2
        assert isinstance(attempt.error, KeyError)


def test_backoff_delay_grows_exponentially():
    assert backoff_delay(0, 1.0, rng=lambda: 0.0) == 1.0
    assert backoff_delay(3, 1.0, rng=lambda: 0.0) == 8.0
    assert backoff_delay(1, 1.0, rng=lambda: 0.5) == pytest.approx(2.3)
