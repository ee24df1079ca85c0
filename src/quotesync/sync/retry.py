"""Bounded retry policies for remote calls.

Only transport-level failures are worth repeating: a request that reached the
remote store and got an answer (any HTTP status) is never retried. Strategies
decide *whether* and *how long*; :class:`RetryContext` runs the loop.

Example:
    >>> import httpx
    >>> from quotesync.sync.retry import ConstantBackoff, with_retry
    >>>
    >>> @with_retry(ConstantBackoff(max_retries=2, delay=1.0,
    ...                             retryable_errors=(httpx.TransportError,)))
    ... async def fetch():
    ...     ...
"""

from __future__ import annotations

import asyncio
import functools
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from quotesync.core.timestamps import utc_now

T = TypeVar("T")

OnRetry = Callable[[int, Exception, float], None]


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay before next retry attempt.

        Args:
            attempt: Zero-based attempt number (0 = first retry)

        Returns:
            Delay in seconds before next attempt
        """
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        """Determine if another retry should be attempted.

        Args:
            attempt: Number of attempts made so far
            error: The exception that caused the failure
        """
        ...


@dataclass
class ConstantBackoff(RetryStrategy):
    """Fixed delay between retries.

    Attributes:
        max_retries: Retries after the first attempt
        delay: Seconds to wait between attempts
        retryable_errors: Exception types worth retrying (None = all);
            subclasses match
    """

    max_retries: int = 2
    delay: float = 1.0
    retryable_errors: tuple[type[Exception], ...] | None = None

    def next_delay(self, attempt: int) -> float:
        return self.delay

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        if attempt > self.max_retries:
            return False
        if error is not None and self.retryable_errors is not None:
            return isinstance(error, self.retryable_errors)
        return True


@dataclass
class RetryContext:
    """Retry state for one logical call.

    Example:
        >>> ctx = RetryContext(ConstantBackoff(max_retries=2))
        >>> result = await ctx.run_async(client.get, "/health")
        >>> ctx.attempts
        1
    """

    strategy: RetryStrategy
    on_retry: OnRetry | None = None
    attempt: int = field(default=0, init=False)
    last_error: Exception | None = field(default=None, init=False)
    errors: list[tuple[int, Exception, datetime]] = field(default_factory=list, init=False)

    @property
    def attempts(self) -> int:
        """Number of attempts made."""
        return self.attempt

    async def run_async(
        self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Execute async function with retry logic.

        Raises:
            Last exception if all retries exhausted or the error is not retryable
        """
        while True:
            self.attempt += 1
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                self.last_error = e
                self.errors.append((self.attempt, e, utc_now()))

                # attempt counts the first call, so retries used = attempt - 1
                if not self.strategy.should_retry(self.attempt, e):
                    raise

                delay = self.strategy.next_delay(self.attempt - 1)

                if self.on_retry:
                    self.on_retry(self.attempt, e, delay)

                await asyncio.sleep(delay)


def with_retry(
    strategy: RetryStrategy | None = None,
    on_retry: OnRetry | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator factory adding retry logic to a coroutine function.

    Args:
        strategy: Retry strategy (default: ``ConstantBackoff()``)
        on_retry: Callback called before each retry (attempt, error, delay)
    """
    if strategy is None:
        strategy = ConstantBackoff()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            ctx = RetryContext(strategy=strategy, on_retry=on_retry)
            return await ctx.run_async(func, *args, **kwargs)

        return wrapper

    return decorator


__all__ = [
    "RetryStrategy",
    "ConstantBackoff",
    "RetryContext",
    "with_retry",
]
