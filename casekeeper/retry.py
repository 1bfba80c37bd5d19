"""
Retry logic with exponential backoff for calls to the relevance provider.

The provider is a single blocking request/response call. A retry always
re-runs the whole call; nothing is resumed.
"""

import time
import functools
from dataclasses import dataclass
from typing import Callable, Iterator, Type, Tuple, Optional

import requests

from .errors import ProviderError


class RetryError(ProviderError):
    """Raised when all retry attempts are exhausted."""
    pass


class CircuitOpenError(ProviderError):
    """Raised instead of calling a provider whose circuit is open."""
    pass


@dataclass(frozen=True)
class BackoffPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    factor: float = 2.0

    def delays(self) -> Iterator[float]:
        """Sleep before each retry, capped at max_delay."""
        delay = self.base_delay
        for _ in range(self.max_retries):
            yield min(delay, self.max_delay)
            delay *= self.factor


def call_with_backoff(
    func: Callable,
    policy: BackoffPolicy,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Call func until it succeeds or the policy runs out of retries.

    Raises:
        RetryError: After max_retries + 1 failed attempts, chained to the
            last failure
    """
    delays = policy.delays()
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except exceptions as e:
            delay = next(delays, None)
            if delay is None:
                raise RetryError(f"Failed after {attempt} attempts: {e}") from e
            if on_retry:
                on_retry(attempt, e, delay)
            time.sleep(delay)


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Decorator form of call_with_backoff.

    Args:
        max_retries: Maximum number of retry attempts (0 = no retries)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential calculation (delay *= base)
        exceptions: Tuple of exceptions to catch and retry
        on_retry: Optional callback function(attempt, exception, delay)

    Example:
        @exponential_backoff(max_retries=2, base_delay=0.5,
                             exceptions=(requests.exceptions.Timeout,))
        def post_rank(url, body):
            return requests.post(url, json=body, timeout=20)
    """
    policy = BackoffPolicy(max_retries, base_delay, max_delay, exponential_base)

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            return call_with_backoff(lambda: func(*args, **kwargs), policy, exceptions, on_retry)

        return wrapper
    return decorator


class CircuitBreaker:
    """
    Stops calling the remote provider after repeated failures.

    closed: calls pass through and failures are counted.
    open: calls fail fast with CircuitOpenError until recovery_timeout
    seconds have passed since the last failure.
    half_open: one probe call is let through; success closes the circuit,
    failure opens it again.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        expected_exception: Type[Exception] = ProviderError,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.reset()

    def reset(self):
        """Close the circuit and forget past failures."""
        self.failure_count = 0
        self.last_failure_at: Optional[float] = None
        self.state = self.CLOSED

    def seconds_until_probe(self) -> float:
        if self.last_failure_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (time.monotonic() - self.last_failure_at))

    def call(self, func: Callable, *args, **kwargs):
        """
        Run func unless the circuit is open.

        Raises:
            CircuitOpenError: If the circuit is open and not yet due a probe
            expected_exception: Re-raised after being counted
        """
        if self.state == self.OPEN:
            wait = self.seconds_until_probe()
            if wait > 0:
                raise CircuitOpenError(f"Provider circuit is open. Retry after {wait:.0f}s")
            self.state = self.HALF_OPEN

        try:
            result = func(*args, **kwargs)
        except self.expected_exception:
            self.failure_count += 1
            self.last_failure_at = time.monotonic()
            if self.state == self.HALF_OPEN or self.failure_count >= self.failure_threshold:
                self.state = self.OPEN
            raise

        self.failure_count = 0
        self.state = self.CLOSED
        return result


TRANSIENT_EXCEPTIONS = (
    requests.exceptions.Timeout,
    requests.exceptions.ConnectionError,
)

RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

_TRANSIENT_MESSAGES = ("timeout", "timed out", "connection reset", "temporary failure", "service unavailable")


def should_retry_http_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUSES


def is_transient_error(exception: Exception) -> bool:
    """
    Determine if a provider failure is likely transient and worth a retry.

    Transport timeouts and connection failures always are; HTTP errors are
    transient only for retryable status codes. Anything else is judged by
    its message.
    """
    if isinstance(exception, TRANSIENT_EXCEPTIONS):
        return True
    if isinstance(exception, requests.exceptions.HTTPError):
        response = exception.response
        return response is not None and should_retry_http_status(response.status_code)

    message = str(exception).lower()
    return any(keyword in message for keyword in _TRANSIENT_MESSAGES)
