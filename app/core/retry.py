"""
Bounded retry with exponential backoff, built on tenacity.

One retry abstraction shared by every outbound call that may fail
transiently: provider status queries made by the pending-order poller and
conversion deliveries to ad platforms.

Usage:
    from core.retry import RetryPolicy, call_with_retry

    policy = RetryPolicy(max_attempts=3, base_delay=1.0)

    response = call_with_retry(
        lambda: client.post(url, json=payload),
        policy,
        on_attempt=record_attempt,
    )

The callable is invoked up to ``max_attempts`` times. Between attempts the
caller sleeps ``base_delay * 2**(attempt - 1)`` seconds (capped at
``max_delay``, plus optional jitter). An exception for which
``policy.retryable(exc)`` is False is re-raised immediately; once attempts
run out RetryExhaustedError is raised carrying the last error.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from collections.abc import Callable

    from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

T = TypeVar("T")


def default_retryable(exc: BaseException) -> bool:
    """Retry errors that declare themselves retryable (ExternalServiceError)."""
    return bool(getattr(exc, "is_retryable", False))


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to try and how long to wait between tries.

    Attributes:
        max_attempts: Total attempts including the first one (>= 1)
        base_delay: Delay before the second attempt, doubled for each later one
        max_delay: Upper bound for the exponential part of a single delay
        jitter: Random extra delay, as a fraction of base_delay
        retryable: Predicate deciding whether an exception is worth retrying
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 0.0
    retryable: Callable[[BaseException], bool] = field(default=default_retryable)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")

    @property
    def wait(self) -> wait_base:
        """tenacity wait strategy for this policy."""
        strategy = wait_exponential(multiplier=self.base_delay, max=self.max_delay)
        if self.jitter:
            strategy = strategy + wait_random(0, self.base_delay * self.jitter)
        return strategy

    def retrying(self, sleep: Callable[[float], None] = time.sleep) -> Retrying:
        """Build a tenacity controller; ``sleep`` is injectable for tests."""
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            retry=retry_if_exception(self.retryable),
            sleep=sleep,
            before_sleep=_log_retry,
        )


class RetryExhaustedError(BaseApplicationError):
    """
    Raised when every attempt allowed by a RetryPolicy failed.

    Attributes:
        attempts: Number of attempts made
        last_error: Exception raised by the final attempt
    """

    default_error_code = "RETRY_EXHAUSTED"

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Gave up after {attempts} attempts: {last_error}",
            details={"attempts": attempts, "last_error": str(last_error)},
        )


def _log_retry(retry_state: RetryCallState) -> None:
    delay = retry_state.next_action.sleep
    logger.warning(
        f"Attempt {retry_state.attempt_number} failed, "
        f"retrying in {delay:.2f}s: {retry_state.outcome.exception()}",
        extra={"attempt": retry_state.attempt_number, "delay": delay},
    )


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    on_attempt: Callable[[int, BaseException | None], None] | None = None,
) -> T:
    """
    Call func until it succeeds, a non-retryable error occurs or attempts run out.

    Args:
        func: Zero-argument callable performing one attempt
        policy: Attempt count, backoff and retryable predicate
        sleep: Injected for tests so no real time passes
        on_attempt: Called after every attempt with (attempt_number, error or None)

    Returns:
        Whatever func returned on the successful attempt

    Raises:
        The original exception when it is not retryable
        RetryExhaustedError: When all attempts failed with retryable errors
    """
    result = None

    try:
        for attempt in policy.retrying(sleep=sleep):
            with attempt:
                result = func()
            if on_attempt is not None:
                outcome = attempt.retry_state.outcome
                on_attempt(
                    attempt.retry_state.attempt_number,
                    outcome.exception() if outcome.failed else None,
                )
    except RetryError as exc:
        last = exc.last_attempt
        raise RetryExhaustedError(last.attempt_number, last.exception()) from last.exception()

    return result
