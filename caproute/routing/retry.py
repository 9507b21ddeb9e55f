"""
Retry policy for route attempts.

The route engine retries one route a bounded number of times while the
failure is classified retryable, then falls back to the next route.

Route handlers return envelopes instead of raising, so the policy can
decide on results (``retry_on_result``) as well as on exceptions
(``retry_on``).

Backoff defaults to none: transports own their timeouts, and the engine
only repeats the call.
"""

from __future__ import annotations

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Backoff Strategies
# =============================================================================


class BackoffStrategy(ABC):
    """Delay before the next attempt."""

    @abstractmethod
    def get_delay(self, attempt: int) -> float:
        """
        Args:
            attempt: The attempt that just failed (1-indexed)

        Returns:
            Delay in seconds before the next attempt
        """
        ...


@dataclass
class NoBackoff(BackoffStrategy):
    """Retry immediately."""

    def get_delay(self, attempt: int) -> float:
        return 0.0


@dataclass
class ConstantBackoff(BackoffStrategy):
    delay: float = 0.5

    def get_delay(self, attempt: int) -> float:
        return self.delay


@dataclass
class ExponentialBackoff(BackoffStrategy):
    """
    delay = base * (multiplier ^ (attempt - 1)), capped, with optional jitter.

    Example:
        backoff = ExponentialBackoff(base=0.5, multiplier=2.0, max_delay=5.0)
        # Attempt 1: 0.5s, Attempt 2: 1s, Attempt 3: 2s, ...
    """

    base: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: bool = False
    jitter_factor: float = 0.25

    def get_delay(self, attempt: int) -> float:
        delay = min(self.base * (self.multiplier ** (attempt - 1)), self.max_delay)
        if self.jitter:
            spread = delay * self.jitter_factor
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay


# =============================================================================
# Retry Policy
# =============================================================================


@dataclass
class RetryPolicy:
    """
    How many times to attempt an operation and what counts as retryable.

    Example:
        policy = RetryPolicy(
            max_attempts=2,
            retry_on_result=lambda envelope: not envelope.ok and envelope.error.retryable,
        )
    """

    max_attempts: int = 2
    backoff: BackoffStrategy = field(default_factory=NoBackoff)
    retry_on: tuple[type[BaseException], ...] = ()
    retry_on_result: Callable[[Any], bool] | None = None

    def should_retry_error(self, attempt: int, error: BaseException) -> bool:
        return attempt < self.max_attempts and isinstance(error, self.retry_on)

    def should_retry_result(self, attempt: int, result: Any) -> bool:
        return (
            attempt < self.max_attempts
            and self.retry_on_result is not None
            and self.retry_on_result(result)
        )


@dataclass
class RetryResult(Generic[T]):
    """Outcome of a retried operation: the last result and how many attempts it took."""

    result: T | None
    attempts: int
    total_delay: float = 0.0
    results: list[T] = field(default_factory=list)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation_name: str = "operation",
) -> RetryResult[T]:
    """
    Run an async operation under a retry policy.

    Exceptions not matched by ``policy.retry_on`` propagate. Every
    returned value is kept in ``results`` in attempt order.

    Example:
        outcome = await with_retry(call_route, policy, operation_name="graphql")
        envelope = outcome.result
    """
    results: list[T] = []
    total_delay = 0.0
    attempt = 0

    while True:
        attempt += 1
        try:
            result = await operation()
        except Exception as e:
            if not policy.should_retry_error(attempt, e):
                raise
            delay = policy.backoff.get_delay(attempt)
            logger.warning(
                f"{operation_name}: attempt {attempt}/{policy.max_attempts} raised "
                f"{type(e).__name__}: {e}, retrying in {delay:.2f}s"
            )
        else:
            results.append(result)
            if not policy.should_retry_result(attempt, result):
                return RetryResult(result=result, attempts=attempt, total_delay=total_delay, results=results)
            delay = policy.backoff.get_delay(attempt)
            logger.info(
                f"{operation_name}: attempt {attempt}/{policy.max_attempts} returned a retryable "
                f"result, retrying in {delay:.2f}s"
            )

        if delay > 0:
            total_delay += delay
            await asyncio.sleep(delay)
