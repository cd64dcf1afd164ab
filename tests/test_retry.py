"""
Tests for retry logic and circuit breaker.
"""

import pytest
from datetime import datetime, timedelta

from memoresolve.errors import CircuitOpenError
from memoresolve.retry import (
    exponential_backoff,
    CircuitBreaker,
    should_retry_http_status,
    RetryError,
)


def no_sleep(delay):
    pass


class SteppedClock:
    def __init__(self):
        self.now = datetime(2026, 10, 14, 9, 0)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class TestExponentialBackoff:
    """Test exponential backoff decorator."""

    def test_success_on_first_try(self):
        """Function that succeeds immediately should not retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.1, sleep=no_sleep)
        def succeeds():
            call_count[0] += 1
            return "success"

        result = succeeds()
        assert result == "success"
        assert call_count[0] == 1

    def test_retry_then_succeed(self):
        """Function that fails then succeeds should retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01, sleep=no_sleep)
        def fails_twice():
            call_count[0] += 1
            if call_count[0] < 3:
                raise ConnectionError("Temporary failure")
            return "success"

        result = fails_twice()
        assert result == "success"
        assert call_count[0] == 3

    def test_all_retries_exhausted(self):
        """Should raise RetryError after all attempts fail."""
        call_count = [0]

        @exponential_backoff(max_retries=2, base_delay=0.01, sleep=no_sleep)
        def always_fails():
            call_count[0] += 1
            raise ValueError("Always fails")

        with pytest.raises(RetryError):
            always_fails()

        assert call_count[0] == 3  # Initial + 2 retries

    def test_only_catches_specified_exceptions(self):
        """Should only retry on specified exception types."""
        call_count = [0]

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exceptions=(ConnectionError,),
            sleep=no_sleep,
        )
        def raises_value_error():
            call_count[0] += 1
            raise ValueError("Not retryable")

        with pytest.raises(ValueError):
            raises_value_error()

        assert call_count[0] == 1

    def test_exponential_delay(self):
        """Delay should increase exponentially."""
        delays = []
        slept = []

        def on_retry_callback(attempt, exception, delay):
            delays.append(delay)

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exponential_base=2.0,
            on_retry=on_retry_callback,
            sleep=slept.append,
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert delays == [0.01, 0.02, 0.04]
        assert slept == delays

    def test_max_delay_cap(self):
        """Delay should not exceed max_delay."""
        slept = []

        @exponential_backoff(
            max_retries=5,
            base_delay=1.0,
            max_delay=2.0,
            exponential_base=3.0,
            sleep=slept.append,
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert all(d <= 2.0 for d in slept)


class TestCircuitBreaker:
    """Test circuit breaker pattern."""

    def test_closed_state_allows_calls(self):
        """Circuit starts closed and allows calls."""
        breaker = CircuitBreaker("embeddings", failure_threshold=3, recovery_timeout=1)

        result = breaker.call(lambda: "success")
        assert result == "success"
        assert breaker.state == CircuitBreaker.CLOSED

    def test_opens_after_threshold(self):
        """Circuit opens after failure threshold."""
        breaker = CircuitBreaker("embeddings", failure_threshold=3, recovery_timeout=30)

        def failing_func():
            raise ConnectionError("Test failure")

        for _ in range(3):
            with pytest.raises(ConnectionError):
                breaker.call(failing_func)

        assert breaker.state == CircuitBreaker.OPEN

        with pytest.raises(CircuitOpenError, match="circuit breaker is OPEN") as exc_info:
            breaker.call(failing_func)
        assert exc_info.value.service == "embeddings"

    def test_half_open_after_timeout(self):
        """Circuit lets one probe through after the recovery timeout."""
        clock = SteppedClock()
        breaker = CircuitBreaker("embeddings", failure_threshold=2, recovery_timeout=10, clock=clock)
        calls = [0]

        def failing_func():
            calls[0] += 1
            raise ConnectionError("Test")

        for _ in range(2):
            with pytest.raises(ConnectionError):
                breaker.call(failing_func)

        clock.advance(11)
        with pytest.raises(ConnectionError):
            breaker.call(failing_func)

        assert calls[0] == 3
        assert breaker.state == CircuitBreaker.OPEN

    def test_closes_on_success_in_half_open(self):
        """Successful call in half-open state closes circuit."""
        clock = SteppedClock()
        breaker = CircuitBreaker("embeddings", failure_threshold=2, recovery_timeout=10, clock=clock)
        call_count = [0]

        def sometimes_fails():
            call_count[0] += 1
            if call_count[0] <= 2:
                raise ConnectionError("Fail")
            return "success"

        for _ in range(2):
            with pytest.raises(ConnectionError):
                breaker.call(sometimes_fails)

        assert breaker.state == CircuitBreaker.OPEN

        clock.advance(10)
        result = breaker.call(sometimes_fails)

        assert result == "success"
        assert breaker.state == CircuitBreaker.CLOSED

    def test_unexpected_exceptions_do_not_count(self):
        breaker = CircuitBreaker("embeddings", failure_threshold=1, expected_exception=ConnectionError)

        def raises_value_error():
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            breaker.call(raises_value_error)

        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0

    def test_manual_reset(self):
        """Manual reset should close the circuit."""
        breaker = CircuitBreaker("embeddings", failure_threshold=2)

        def failing_func():
            raise ConnectionError("Test")

        for _ in range(2):
            with pytest.raises(ConnectionError):
                breaker.call(failing_func)

        assert breaker.state == CircuitBreaker.OPEN

        breaker.reset()
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0


class TestHttpStatus:

    def test_http_status_retry_logic(self):
        """Should correctly identify retryable HTTP status codes."""
        assert should_retry_http_status(408)  # Timeout
        assert should_retry_http_status(429)  # Rate limit
        assert should_retry_http_status(500)
        assert should_retry_http_status(502)
        assert should_retry_http_status(503)

        assert not should_retry_http_status(200)
        assert not should_retry_http_status(404)
        assert not should_retry_http_status(401)
