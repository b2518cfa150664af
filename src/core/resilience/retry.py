"""
Retry utilities with classifier-driven decisions.

Each sink supplies an ErrorClassifier that decides whether a failure is
worth another attempt:
- Transient errors: retry with exponential backoff
- Anything else: fail immediately (no retry)

Backoff is deterministic by default: the delay before retry n is
base_delay * exponential_base ** n, so the defaults wait 2s then 4s.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, TypeVar

from core.errors.exceptions import classify_exception
from core.types import ErrorCategory, ErrorClassifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    # Equal jitter on top of the exponential delay (off: deterministic delays)
    jitter: bool = False

    # Categories that earn another attempt
    retryable_categories: frozenset[ErrorCategory] = field(
        default_factory=lambda: frozenset({ErrorCategory.TRANSIENT})
    )

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)
        # bool('false') would be True, so strings need explicit handling
        if isinstance(self.jitter, str):
            self.jitter = self.jitter.strip().lower() in ("1", "true", "yes")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def get_delay(self, retry_number: int) -> float:
        """
        Delay before the given retry.

        Args:
            retry_number: 1-indexed retry (1 is the first retry after the
                initial attempt failed)

        Returns:
            Delay in seconds
        """
        delay = self.base_delay * (self.exponential_base**retry_number)

        if self.jitter:
            # Equal jitter: half fixed, half random
            delay = (delay / 2) + random.uniform(0, delay / 2)

        return min(delay, self.max_delay)

    def is_retryable(self, category: ErrorCategory) -> bool:
        return category in self.retryable_categories


DEFAULT_RETRY = RetryConfig()


@dataclass
class RetryStats:
    """Statistics from a retry operation."""

    attempts: int = 0
    delays: list[float] = field(default_factory=list)
    final_error: Exception | None = None
    category: ErrorCategory | None = None
    success: bool = False

    @property
    def total_delay(self) -> float:
        return sum(self.delays)

    @property
    def retried(self) -> bool:
        """Whether any retries occurred."""
        return self.attempts > 1

    @property
    def exhausted(self) -> bool:
        """Failed on a retryable error after using every attempt."""
        return (
            not self.success
            and self.category == ErrorCategory.TRANSIENT
            and self.final_error is not None
        )


class _DefaultClassifier:
    """Falls back to marker-based classification for unknown callers."""

    def classify_error(self, error: Exception) -> ErrorCategory:
        return classify_exception(error)

    def is_transient(self, error: Exception) -> bool:
        return self.classify_error(error) == ErrorCategory.TRANSIENT


class RetryExecutor:
    """
    Bounded exponential-backoff wrapper around a fallible async operation.

    asyncio.CancelledError is never caught: cancellation during an attempt
    or during the backoff sleep propagates immediately.

    Example:
        executor = RetryExecutor(EventHubErrorClassifier(), name="bus")
        stats = RetryStats()
        await executor.run(lambda: bus.send(message, "security-events"), stats)
    """

    def __init__(
        self,
        classifier: ErrorClassifier | None = None,
        config: RetryConfig | None = None,
        name: str = "operation",
        sleep: SleepFunc | None = None,
    ):
        self.classifier = classifier or _DefaultClassifier()
        self.config = config or DEFAULT_RETRY
        self.name = name
        self._sleep = sleep or asyncio.sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        stats: RetryStats | None = None,
    ) -> T:
        """
        Run operation until it succeeds, fails fatally, or attempts run out.

        The last error is re-raised unchanged; stats (when given) records
        attempts, delays and the final classification.
        """
        stats = stats if stats is not None else RetryStats()
        config = self.config

        for attempt in range(1, config.max_attempts + 1):
            stats.attempts = attempt
            try:
                result = await operation()
            except Exception as e:
                category = self.classifier.classify_error(e)
                stats.final_error = e
                stats.category = category

                if not config.is_retryable(category):
                    logger.warning(
                        "Permanent error for %s, not retrying: %s",
                        self.name,
                        str(e)[:200],
                        extra={
                            "operation": self.name,
                            "attempt": attempt,
                            "error_category": category.value,
                            "error_type": type(e).__name__,
                            "error_message": str(e)[:200],
                        },
                    )
                    raise

                if attempt >= config.max_attempts:
                    logger.error(
                        "Max retries exhausted for %s: %s",
                        self.name,
                        str(e)[:200],
                        extra={
                            "operation": self.name,
                            "attempt": attempt,
                            "max_attempts": config.max_attempts,
                            "error_category": category.value,
                            "error_type": type(e).__name__,
                            "error_message": str(e)[:200],
                        },
                    )
                    raise

                delay = config.get_delay(attempt)
                stats.delays.append(delay)
                logger.warning(
                    "Retryable error for %s, will retry",
                    self.name,
                    extra={
                        "operation": self.name,
                        "attempt": attempt,
                        "max_attempts": config.max_attempts,
                        "error_category": category.value,
                        "delay_seconds": round(delay, 2),
                        "error_message": str(e)[:200],
                    },
                )
                await self._sleep(delay)
                continue

            stats.success = True
            stats.final_error = None
            stats.category = None
            if attempt > 1:
                logger.info(
                    "Retry succeeded for %s after %d attempts",
                    self.name,
                    attempt,
                    extra={
                        "operation": self.name,
                        "attempt": attempt,
                        "total_attempts": config.max_attempts,
                    },
                )
            return result

        # max_attempts >= 1 guarantees the loop returns or raises
        raise RuntimeError(f"Retry loop for {self.name} ended without a result")


def with_retry_async(
    classifier: ErrorClassifier | None = None,
    config: RetryConfig | None = None,
    sleep: SleepFunc | None = None,
):
    """
    Decorator for retrying async functions with exponential backoff.

    Usage:
        @with_retry_async(classifier=KustoErrorClassifier())
        async def ingest():
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]):
        executor = RetryExecutor(
            classifier=classifier, config=config, name=func.__name__, sleep=sleep
        )

        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await executor.run(lambda: func(*args, **kwargs))

        return wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "RetryStats",
    "RetryExecutor",
    "with_retry_async",
    "DEFAULT_RETRY",
]
