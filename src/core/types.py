"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the core library to ensure consistency and type safety.
"""

from enum import Enum
from typing import Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    This enum is used throughout the pipeline to classify errors and determine
    appropriate retry/recovery strategies.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., server busy, timeouts, lost connections)
        AUTH: Authentication failures requiring credential refresh
              (e.g., 401 errors, expired tokens)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., validation errors, bad queries, oversized messages)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class ErrorClassifier(Protocol):
    """
    Protocol for error classification implementations.

    Each sink (Event Hub, Kusto) implements this protocol to classify its
    own exceptions into standard categories for the retry executor.
    """

    def classify_error(self, error: Exception) -> ErrorCategory:
        """
        Classify an exception into an error category.

        Args:
            error: Exception to classify

        Returns:
            ErrorCategory indicating how to handle this error
        """
        ...

    def is_transient(self, error: Exception) -> bool:
        """
        Check if error is transient (retriable).

        Args:
            error: Exception to check

        Returns:
            True if error may succeed on retry
        """
        ...


__all__ = [
    "ErrorCategory",
    "ErrorClassifier",
]
