"""Retry decisions and the bounded retry loop."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from reqpipe.http.constants import HTTP_STATUS_SERVER_ERROR_MAX, HTTP_STATUS_SERVER_ERROR_MIN
from reqpipe.http.errors import HttpClientError, HttpClientErrorCode
from reqpipe.http.metrics import ClientMetrics
from reqpipe.http.models import RetryPolicy


logger = structlog.get_logger()

R = TypeVar("R")

Sleep = Callable[[float], Awaitable[object]]

_RETRYABLE_CODES = frozenset({HttpClientErrorCode.NETWORK, HttpClientErrorCode.TIMEDOUT})


def should_retry(error: Exception, policy: RetryPolicy) -> bool:
    """Determine if a failed attempt should be retried.

    Cancellation by the caller is never retried. Otherwise a custom
    ``retry_condition`` has the final say. Without one, network errors,
    timeouts and retryable statuses are retried: the statuses listed in
    ``retryable_status_codes``, or any 5xx when no list is given.

    Args:
        error: The error that ended the attempt.
        policy: Retry policy of the request.

    Returns:
        True if the request should be retried.
    """
    if isinstance(error, HttpClientError) and error.is_cancellation:
        return False

    if policy.retry_condition is not None:
        return bool(policy.retry_condition(error))

    if not isinstance(error, HttpClientError):
        return False

    if error.code in _RETRYABLE_CODES:
        return True

    status = error.status
    if status == 0:
        return False
    if policy.retryable_status_codes is not None:
        return status in policy.retryable_status_codes
    return HTTP_STATUS_SERVER_ERROR_MIN <= status < HTTP_STATUS_SERVER_ERROR_MAX


def compute_delay_ms(policy: RetryPolicy, attempt: int) -> float:
    """Calculate the delay before the retry that follows ``attempt``.

    Args:
        policy: Retry policy of the request.
        attempt: Index of the attempt that just failed (0-indexed).

    Returns:
        Delay in milliseconds.
    """
    delay_ms = policy.delay_ms
    base = delay_ms(attempt) if callable(delay_ms) else delay_ms
    delay = base * (policy.backoff_multiplier**attempt) if policy.backoff else base
    if policy.max_delay_ms is not None:
        delay = min(delay, policy.max_delay_ms)
    return max(0.0, float(delay))


class RetryController:
    """Wraps an attempt function with a bounded retry loop."""

    def __init__(self, sleep: Sleep = asyncio.sleep) -> None:
        """Initialize the controller.

        Args:
            sleep: Coroutine used to wait between attempts (seconds).
        """
        self._sleep = sleep
        self._metrics = ClientMetrics.get_instance()
        self._log = logger.bind(component="http_client")

    async def run(
        self,
        attempt_fn: Callable[[], Awaitable[R]],
        policy: RetryPolicy | None,
    ) -> R:
        """Run ``attempt_fn`` up to ``policy.attempts + 1`` times.

        Args:
            attempt_fn: Performs one attempt.
            policy: Retry policy; None means a single attempt.

        Returns:
            Result of the first successful attempt.

        Raises:
            Exception: The last error once retrying stops.
        """
        policy = policy or RetryPolicy()
        attempt = 0
        while True:
            try:
                return await attempt_fn()
            except Exception as exc:
                if attempt >= policy.attempts or not should_retry(exc, policy):
                    raise
                delay_ms = compute_delay_ms(policy, attempt)
                self._metrics.record_retry()
                self._log.info(
                    "retry_scheduled",
                    attempt=attempt + 1,
                    max_attempts=policy.total_attempts,
                    delay_ms=delay_ms,
                    error_code=exc.code.value if isinstance(exc, HttpClientError) else None,
                )
            await self._sleep(delay_ms / 1000.0)
            attempt += 1
