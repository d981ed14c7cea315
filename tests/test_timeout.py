"""
Tests for the per-call deadline guard.
"""

from unittest.mock import patch

import pytest
import requests

from sitmon.errors import FetchTimeout
from sitmon.net.timeout import CancelSignal, OperationCancelled, with_timeout


class TestWithTimeout:
    """Tests for with_timeout."""

    def test_returns_result_of_fast_operation(self):
        assert with_timeout(lambda signal: 'ok', 1.0) == 'ok'

    def test_operation_receives_live_signal(self):
        seen = []
        with_timeout(lambda signal: seen.append(signal.cancelled), 1.0)
        assert seen == [False]

    def test_observed_cancellation_becomes_timeout(self):
        def slow(signal: CancelSignal):
            signal.wait(5.0)
            signal.raise_if_cancelled()
            return 'too late'

        with pytest.raises(FetchTimeout) as exc_info:
            with_timeout(slow, 0.05)

        assert exc_info.value.timeout_seconds == 0.05
        assert '50ms' in str(exc_info.value)

    def test_http_client_timeout_becomes_timeout(self):
        def op(signal):
            raise requests.exceptions.ReadTimeout('read timed out')

        with pytest.raises(FetchTimeout):
            with_timeout(op, 2.0)

    def test_other_errors_propagate_unchanged(self):
        error = ValueError('boom')

        def op(signal):
            raise error

        with pytest.raises(ValueError) as exc_info:
            with_timeout(op, 2.0)
        assert exc_info.value is error

    @pytest.mark.parametrize('outcome', ['success', 'failure', 'cancelled'])
    def test_timer_is_always_cancelled(self, outcome):
        def op(signal):
            if outcome == 'failure':
                raise RuntimeError('fail')
            if outcome == 'cancelled':
                raise OperationCancelled()
            return 1

        with patch('sitmon.net.timeout.threading.Timer') as timer_cls:
            try:
                with_timeout(op, 3.0)
            except (RuntimeError, FetchTimeout):
                pass

        timer_cls.assert_called_once()
        assert timer_cls.call_args[0][0] == 3.0
        timer_cls.return_value.start.assert_called_once()
        timer_cls.return_value.cancel.assert_called_once()


class TestCancelSignal:
    """Tests for CancelSignal."""

    def test_remaining_never_negative(self):
        signal = CancelSignal(0.0)
        assert signal.remaining() == 0.0

    def test_remaining_bounded_by_timeout(self):
        signal = CancelSignal(10.0)
        assert 0 < signal.remaining() <= 10.0

    def test_cancel_sets_flag(self):
        signal = CancelSignal(10.0)
        signal.cancel()
        assert signal.cancelled
        assert signal.wait(0) is True
        with pytest.raises(OperationCancelled):
            signal.raise_if_cancelled()

    def test_on_cancel_runs_callbacks_once(self):
        signal = CancelSignal(10.0)
        calls = []
        signal.on_cancel(lambda: calls.append('abort'))

        signal.cancel()
        signal.cancel()

        assert calls == ['abort']

    def test_on_cancel_after_fire_runs_immediately(self):
        signal = CancelSignal(10.0)
        signal.cancel()
        calls = []

        signal.on_cancel(lambda: calls.append('abort'))

        assert calls == ['abort']

    def test_discarded_callback_never_runs(self):
        signal = CancelSignal(10.0)
        calls = []
        callback = lambda: calls.append('abort')  # noqa: E731
        signal.on_cancel(callback)

        signal.discard(callback)
        signal.cancel()

        assert calls == []

    def test_failing_callback_does_not_block_others(self):
        signal = CancelSignal(10.0)
        calls = []

        def broken():
            raise OSError('socket gone')

        signal.on_cancel(broken)
        signal.on_cancel(lambda: calls.append('abort'))
        signal.cancel()

        assert calls == ['abort']
        assert signal.cancelled

    def test_timer_fires_registered_callback(self):
        fired = []

        def operation(signal):
            signal.on_cancel(lambda: fired.append(True))
            signal.wait(5)
            signal.raise_if_cancelled()

        with pytest.raises(FetchTimeout):
            with_timeout(operation, timeout_seconds=0.05)

        assert fired == [True]
