"""
Retry executor with exponential backoff.

The retry predicate receives a classified ``CrawlError`` and the 1-indexed
attempt number that just failed. Classification happens here, once, so
callers never need to inspect exception subclasses.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from profilecrawl.constants import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_BASE_DELAY_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
)
from profilecrawl.errors import CrawlError, ErrorKind, StorageError, classify_exception

logger = logging.getLogger(__name__)

T = TypeVar("T")


def default_should_retry(error: CrawlError, attempt: int) -> bool:
    """Retry transport and server failures; never blocked, client or content ones."""
    if error.kind == ErrorKind.BLOCKED:
        return False
    return error.kind.retryable


@dataclass
class RetryPolicy:
    """Bounded-attempt retry configuration."""
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    should_retry: Callable[[CrawlError, int], bool] = field(default=default_should_retry)

    def delay_for_attempt(self, attempt: int) -> float:
        """Backoff delay after the given 1-indexed attempt fails."""
        return self.base_delay * (self.backoff_multiplier ** (attempt - 1))

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            backoff_multiplier=config.backoff_multiplier,
        )


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """
    Run an async operation, retrying per policy.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry configuration and predicate
        sleep: Backoff sleep, injectable for tests
        label: Name used in log messages

    Returns:
        The operation's result

    Raises:
        CrawlError: The last classified failure, once the predicate rejects a
            retry or attempts are exhausted
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except (asyncio.CancelledError, StorageError):
            raise
        except Exception as e:
            error = classify_exception(e)
            if error is not e:
                error.__cause__ = e

            if attempt >= policy.max_attempts or not policy.should_retry(error, attempt):
                logger.debug(
                    f"{label} failed on attempt {attempt}/{policy.max_attempts} "
                    f"({error.kind.value}): {error.message}"
                )
                raise error

            delay = policy.delay_for_attempt(attempt)
            logger.info(
                f"{label} attempt {attempt}/{policy.max_attempts} failed "
                f"({error.kind.value}: {error.message}), retrying in {delay:.2f}s"
            )
            await sleep(delay)
