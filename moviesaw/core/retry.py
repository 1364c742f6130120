"""Retry strategy for outbound calls.

Exponential backoff with jitter for transient errors.

WHY EXPONENTIAL BACKOFF:
- Prevents hammering a struggling dependency on recovery
- Respects upstream rate limits

WHY JITTER:
- Prevents synchronized retries from multiple workers
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

__all__ = ["RetryPolicy", "with_retries"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry bounds for one kind of outbound call.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying).
        base_delay_ms: Delay before the first retry; doubles each attempt.
        max_delay_ms: Upper bound on any single delay.
    """

    max_retries: int
    base_delay_ms: int
    max_delay_ms: int


async def with_retries(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retryable_errors: tuple[type[Exception], ...],
) -> T:
    """Execute function with exponential backoff retry.

    Args:
        func: Async function to execute (no arguments).
        policy: Retry bounds.
        retryable_errors: Error types that should trigger a retry. Anything
            else propagates immediately.

    Returns:
        Result from successful function execution.

    Raises:
        Exception: The last retryable error once retries are exhausted.
        RuntimeError: If retry loop exits unexpectedly without error or result.
    """
    last_error: Exception | None = None

    for attempt in range(policy.max_retries + 1):
        try:
            return await func()
        except retryable_errors as e:
            last_error = e

            if attempt == policy.max_retries:
                break  # No more retries

            base_delay = policy.base_delay_ms * (2**attempt)
            jitter = random.uniform(0, base_delay * 0.1)  # nosec B311
            delay = min(base_delay + jitter, policy.max_delay_ms) / 1000

            logger.warning(
                "Transient error (attempt %d/%d): %s. Retrying in %.2fs",
                attempt + 1,
                policy.max_retries + 1,
                e,
                delay,
            )

            await asyncio.sleep(delay)

    if last_error is not None:
        raise last_error
    raise RuntimeError("Retry loop exited without error or result")
