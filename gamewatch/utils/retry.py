"""
Retry with bounded exponential backoff.

Wraps a single async operation (one snapshot fetch) so that transient
network failures are retried a few times before the error is surfaced.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import structlog

from gamewatch.feeds.base import MalformedPayloadError, TransientFetchError

logger = structlog.get_logger()

T = TypeVar("T")


RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    TransientFetchError,
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


def is_retryable_error(error: BaseException, attempt: int = 0) -> bool:
    """
    Check if an error is a network error that should be retried.

    Classification is by exception type: timeouts, aborts and connection
    failures are retryable, malformed payloads and HTTP status errors are not.
    """
    if isinstance(error, asyncio.CancelledError):
        return False
    if isinstance(error, MalformedPayloadError):
        return False
    return isinstance(error, RETRYABLE_ERRORS)


@dataclass
class RetryPolicy:
    """Retry parameters for one call site."""

    max_attempts: int = 3
    initial_delay: float = 1.0    # seconds
    max_delay: float = 30.0       # seconds
    backoff_multiplier: float = 2.0
    should_retry: Callable[[BaseException, int], bool] = field(default=is_retryable_error)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after a failed `attempt` (1-based)."""
        delay = self.initial_delay * (self.backoff_multiplier ** (attempt - 1))
        return min(self.max_delay, delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Execute an async operation with retry logic and exponential backoff.

    Args:
        operation: Zero-argument coroutine factory
        operation_name: Name used in log events
        policy: Retry parameters (defaults to RetryPolicy())
        sleep: Awaitable sleep, injectable for tests

    Returns:
        The operation's result

    Raises:
        The last error once attempts are exhausted or the error is not retryable
    """
    policy = policy or RetryPolicy()
    log = logger.bind(operation=operation_name)

    attempt = 1
    while True:
        try:
            log.debug("Attempting operation", attempt=attempt, max_attempts=policy.max_attempts)
            result = await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(
                "Operation attempt failed",
                attempt=attempt,
                max_attempts=policy.max_attempts,
                error_type=type(e).__name__,
                error=str(e),
            )

            if attempt >= policy.max_attempts or not policy.should_retry(e, attempt):
                log.error(
                    "Operation failed, not retrying",
                    attempts=attempt,
                    error_type=type(e).__name__,
                )
                raise

            delay = policy.delay_for(attempt)
            log.debug("Waiting before retry", delay_seconds=delay, next_attempt=attempt + 1)
            await sleep(delay)
            attempt += 1
            continue

        if attempt > 1:
            log.info("Operation succeeded after retry", attempts=attempt)
        return result
