"""Retry with exponential backoff and a per-attempt timeout."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from clinic_booking.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, float, BaseException], None]


class OperationTimeoutError(TimeoutError):
    """An attempt did not settle before its timeout."""


@dataclass(frozen=True)
class RetryPolicy:
    """Retry options. Times are in seconds."""

    max_attempts: int = 3
    timeout: float = 10.0
    base_delay: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return self.base_delay * 2 ** (attempt - 1)

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        settings = get_settings()
        return cls(
            max_attempts=settings.retry_max_attempts,
            timeout=settings.retry_timeout,
            base_delay=settings.retry_base_delay,
        )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    timeout: float = 10.0,
    base_delay: float = 1.0,
    on_retry: Optional[RetryCallback] = None,
) -> T:
    """Run operation until it succeeds or max_attempts is exhausted.

    Each attempt races the operation against ``timeout``; a late operation
    is cancelled and the attempt fails with OperationTimeoutError. After a
    failure with attempts left, ``on_retry(attempt, delay, error)`` is
    called and the loop sleeps ``base_delay * 2 ** (attempt - 1)``.
    Delays are neither jittered nor capped.

    Only use this for idempotent operations.

    Args:
        operation: Zero-argument callable returning an awaitable
        max_attempts: Total attempts, including the first
        timeout: Seconds allowed per attempt
        base_delay: Seconds to wait after the first failure
        on_retry: Optional callback invoked before each wait

    Returns:
        The operation's result

    Raises:
        The last attempt's error
    """
    policy = RetryPolicy(max_attempts=max_attempts, timeout=timeout, base_delay=base_delay)
    return await retry_with_policy(operation, policy, on_retry=on_retry)


async def retry_with_policy(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    on_retry: Optional[RetryCallback] = None,
) -> T:
    """retry_with_backoff driven by a RetryPolicy."""
    if policy.max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await asyncio.wait_for(operation(), timeout=policy.timeout)
        except asyncio.TimeoutError:
            last_error = OperationTimeoutError(
                f"Request timed out after {policy.timeout}s"
            )
        except Exception as e:
            last_error = e

        if attempt == policy.max_attempts:
            break

        delay = policy.delay_for(attempt)
        logger.debug(
            f"Attempt {attempt}/{policy.max_attempts} failed ({last_error}); "
            f"retrying in {delay}s"
        )

        if on_retry is not None:
            on_retry(attempt, delay, last_error)

        await asyncio.sleep(delay)

    raise last_error
