"""Exponential backoff with jitter for every external call.

One policy instance is shared by a saga; each call site passes a short
operation name so retries are traceable in the logs.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import requests
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from booking.config import SchedulingConfig
from booking.errors import BookingError

logger = logging.getLogger(__name__)

Classifier = Callable[[BaseException], bool]


def is_retryable(exc: BaseException) -> bool:
    """Return True for transient failures worth another attempt.

    Retryable: connection failures, timeouts, 5xx and 429 responses.
    Validation errors, conflicts and other 4xx responses fail fast.
    """
    if isinstance(exc, BookingError):
        return exc.retryable
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    return False


class RetryPolicy:
    """Run an async operation up to ``max_attempts`` times.

    The delay before attempt n+1 is ``base_delay * 2**(n-1)`` plus up to
    ``base_delay`` of random jitter, capped at ``max_delay``. Each attempt is
    bounded by ``timeout`` seconds; hitting it counts as a retryable failure.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        timeout: Optional[float] = 15.0,
        classifier: Classifier = is_retryable,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self.classifier = classifier
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: SchedulingConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            timeout=config.call_timeout,
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[Any]],
        name: str = "operation",
        classifier: Optional[Classifier] = None,
    ) -> Any:
        """Await ``operation()`` with retries and return its result.

        The last exception is re-raised unchanged once attempts run out or
        the classifier rejects it.
        """
        classify = classifier or self.classifier

        def _log_retry(state: RetryCallState) -> None:
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.2fs: %r",
                name,
                state.attempt_number,
                self.max_attempts,
                state.next_action.sleep if state.next_action else 0.0,
                state.outcome.exception() if state.outcome else None,
            )

        exponential = wait_exponential(multiplier=self.base_delay, max=self.max_delay)
        jitter = wait_random(0, self.base_delay)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=lambda state: min(exponential(state) + jitter(state), self.max_delay),
            retry=retry_if_exception(classify),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if self.timeout is None:
                        return await operation()
                    return await asyncio.wait_for(operation(), timeout=self.timeout)
        except Exception as exc:
            logger.error(
                "%s gave up: %r (retryable=%s)", name, exc, classify(exc)
            )
            raise
