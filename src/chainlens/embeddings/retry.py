"""Retry policy shared by the embedding call sites.

Rate-limited requests are retried with a linear backoff (5 s, 10 s, 15 s by
default). Every other error propagates immediately.
"""
import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from ..errors import RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_retry(retry_state: RetryCallState, max_attempts: int) -> None:
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        f"Rate limited, waiting {wait:.0f}s before retry "
        f"{retry_state.attempt_number}/{max_attempts - 1}"
    )


def retrying(max_attempts: int = 4, backoff_seconds: float = 5.0) -> AsyncRetrying:
    """Build the retry controller.

    Args:
        max_attempts: Total attempts including the first
        backoff_seconds: Wait before retry n is n * backoff_seconds

    Returns:
        tenacity AsyncRetrying that re-raises the last RateLimitedError
    """
    return AsyncRetrying(
        retry=retry_if_exception_type(RateLimitedError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=backoff_seconds, increment=backoff_seconds),
        before_sleep=lambda state: _log_retry(state, max_attempts),
        reraise=True,
    )


async def call_with_retry(
    fn: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 4,
    backoff_seconds: float = 5.0,
    **kwargs,
) -> T:
    """Await fn(*args, **kwargs), retrying on RateLimitedError."""
    async for attempt in retrying(max_attempts, backoff_seconds):
        with attempt:
            return await fn(*args, **kwargs)
