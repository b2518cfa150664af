"""
Resilience patterns module.

Components:
    - RetryConfig: Exponential backoff configuration
    - RetryExecutor: Classifier-driven bounded retry around async operations
    - @with_retry_async decorator: decorator form of RetryExecutor
"""

from .retry import (
    DEFAULT_RETRY,
    RetryConfig,
    RetryExecutor,
    RetryStats,
    with_retry_async,
)

__all__ = [
    "RetryConfig",
    "RetryExecutor",
    "RetryStats",
    "with_retry_async",
    "DEFAULT_RETRY",
]
