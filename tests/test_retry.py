"""
Tests for retry logic and the provider circuit breaker.
"""

import pytest
import time
from unittest.mock import Mock

import requests

from casekeeper.errors import ProviderError
from casekeeper.retry import (
    exponential_backoff,
    CircuitBreaker,
    CircuitOpenError,
    is_transient_error,
    should_retry_http_status,
    RetryError,
)


class TestExponentialBackoff:
    """Test exponential backoff decorator."""

    def test_success_on_first_try(self):
        """Function that succeeds immediately should not retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01)
        def succeeds():
            call_count[0] += 1
            return "success"

        assert succeeds() == "success"
        assert call_count[0] == 1

    def test_retry_then_succeed(self):
        """A transient failure followed by success returns the result."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01, exceptions=(requests.exceptions.Timeout,))
        def fails_twice():
            call_count[0] += 1
            if call_count[0] < 3:
                raise requests.exceptions.Timeout("slow")
            return "success"

        assert fails_twice() == "success"
        assert call_count[0] == 3

    def test_exhausted_retries_raise_provider_error(self):
        """RetryError is a ProviderError, so the provider boundary catches it."""
        call_count = [0]

        @exponential_backoff(max_retries=2, base_delay=0.01)
        def always_fails():
            call_count[0] += 1
            raise ValueError("Always fails")

        with pytest.raises(ProviderError) as exc_info:
            always_fails()

        assert isinstance(exc_info.value, RetryError)
        assert call_count[0] == 3  # Initial + 2 retries

    def test_zero_retries(self):
        """max_retries=0 means a single attempt."""
        call_count = [0]

        @exponential_backoff(max_retries=0, base_delay=0.01)
        def fails():
            call_count[0] += 1
            raise ValueError("no")

        with pytest.raises(RetryError):
            fails()
        assert call_count[0] == 1

    def test_only_catches_specified_exceptions(self):
        """Exceptions outside the list propagate unchanged."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01, exceptions=(ConnectionError,))
        def raises_value_error():
            call_count[0] += 1
            raise ValueError("Not retryable")

        with pytest.raises(ValueError):
            raises_value_error()
        assert call_count[0] == 1

    def test_exponential_delay(self):
        """Delay doubles on every retry."""
        delays = []

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exponential_base=2.0,
            on_retry=lambda attempt, exc, delay: delays.append(delay),
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert delays == [0.01, 0.02, 0.04]

    def test_max_delay_cap(self):
        """Delay never exceeds max_delay."""
        delays = []

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            max_delay=0.02,
            exponential_base=3.0,
            on_retry=lambda attempt, exc, delay: delays.append(delay),
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert all(d <= 0.02 for d in delays)


class TestCircuitBreaker:
    """Test circuit breaker pattern."""

    def test_closed_state_allows_calls(self):
        """Circuit starts closed and allows calls."""
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=1)
        assert breaker.call(lambda: "success") == "success"
        assert breaker.state == CircuitBreaker.CLOSED

    def test_opens_after_threshold(self):
        """Circuit opens after the failure threshold and then blocks."""
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        failing = Mock(side_effect=ProviderError("down"))

        for _ in range(3):
            with pytest.raises(ProviderError):
                breaker.call(failing)

        assert breaker.state == CircuitBreaker.OPEN
        with pytest.raises(CircuitOpenError):
            breaker.call(failing)
        assert failing.call_count == 3

    def test_open_circuit_is_provider_error(self):
        """An open circuit surfaces as a ProviderError."""
        assert issubclass(CircuitOpenError, ProviderError)

    def test_other_exceptions_do_not_count(self):
        """Only provider failures move the breaker."""
        breaker = CircuitBreaker(failure_threshold=1)
        with pytest.raises(KeyError):
            breaker.call(Mock(side_effect=KeyError("x")))
        assert breaker.state == CircuitBreaker.CLOSED

    def test_half_open_failure_reopens(self):
        """A failed probe after the timeout reopens the circuit."""
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=0.1)
        failing = Mock(side_effect=ProviderError("down"))

        for _ in range(2):
            with pytest.raises(ProviderError):
                breaker.call(failing)

        time.sleep(0.15)
        with pytest.raises(ProviderError):
            breaker.call(failing)

        assert failing.call_count == 3
        assert breaker.state == CircuitBreaker.OPEN

    def test_closes_on_success_in_half_open(self):
        """Successful call in half-open state closes circuit."""
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=0.1)
        flaky = Mock(side_effect=[ProviderError("a"), ProviderError("b"), "success"])

        for _ in range(2):
            with pytest.raises(ProviderError):
                breaker.call(flaky)

        time.sleep(0.15)
        assert breaker.call(flaky) == "success"
        assert breaker.state == CircuitBreaker.CLOSED

    def test_manual_reset(self):
        """Manual reset should close the circuit."""
        breaker = CircuitBreaker(failure_threshold=1)
        with pytest.raises(ProviderError):
            breaker.call(Mock(side_effect=ProviderError("down")))
        assert breaker.state == CircuitBreaker.OPEN

        breaker.reset()
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0


class TestTransientErrorDetection:
    """Test transient error detection utilities."""

    def test_transport_errors(self):
        """requests timeouts and connection errors are transient."""
        assert is_transient_error(requests.exceptions.Timeout())
        assert is_transient_error(requests.exceptions.ConnectionError())

    def test_http_errors_by_status(self):
        """HTTP errors are transient only for retryable statuses."""
        for status, expected in ((503, True), (429, True), (404, False), (400, False)):
            response = requests.Response()
            response.status_code = status
            error = requests.exceptions.HTTPError(response=response)
            assert is_transient_error(error) is expected

    def test_message_keywords(self):
        """Generic errors are classified by message."""
        assert is_transient_error(Exception("Connection reset by peer"))
        assert is_transient_error(Exception("request timed out"))
        assert not is_transient_error(ValueError("Invalid data"))

    def test_http_status_retry_logic(self):
        """Should correctly identify retryable HTTP status codes."""
        for code in (408, 429, 500, 502, 503, 504):
            assert should_retry_http_status(code)
        for code in (200, 400, 401, 403, 404):
            assert not should_retry_http_status(code)
