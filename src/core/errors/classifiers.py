"""
Centralized error classification for sink operations.

Provides consistent retry decisions for the two publishing sinks:
- Event Hub (message bus): transport errors flagged transient
- Kusto (analytical store): service and ingestion failures

Classification is done by exception type name so the core library does not
need the Azure SDKs importable to classify their errors.
"""

from typing import Optional

from core.errors.exceptions import (
    AuthError,
    KustoError,
    KustoQueryError,
    PipelineError,
    ThrottlingError,
    TimeoutError,
    TransientError,
    classify_exception,
)
from core.types import ErrorCategory

# Azure Event Hub error classifications based on azure-eventhub SDK exceptions
EVENTHUB_ERROR_MAPPINGS = {
    # Transient errors (retry recommended)
    "transient": [
        "ConnectionLostError",
        "ConnectError",
        "OperationTimeoutError",
        "AMQPConnectionError",
        "ServerBusyError",
    ],
    # Auth errors (not retried by the publisher)
    "auth": [
        "AuthenticationError",
        "ClientAuthenticationError",
    ],
    # Permanent errors (don't retry)
    "permanent": [
        "EventDataSendError",
        "EventDataError",
        "SchemaError",
        "ClientClosedError",
    ],
}

# Message markers the transport uses for busy / timeout / lock-lost conditions
EVENTHUB_TRANSIENT_MARKERS = (
    "server busy",
    "serverbusy",
    "server-busy",
    "timeout",
    "timed out",
    "lock lost",
    "locklost",
    "lock-lost",
)

KUSTO_SERVICE_ERROR_TYPES = ("KustoServiceError", "KustoApiError")
KUSTO_QUERY_ERROR_MARKERS = ("semantic error", "syntax error")


def _type_names(error: Exception) -> set[str]:
    return {cls.__name__ for cls in type(error).__mro__}


def classify_eventhub_error_type(error_type_name: str) -> Optional[str]:
    """
    Classify error by azure-eventhub exception type name.

    Returns:
        Error category: "transient", "auth", "permanent", or None
    """
    for category, error_types in EVENTHUB_ERROR_MAPPINGS.items():
        if error_type_name in error_types:
            return category
    return None


class EventHubErrorClassifier:
    """
    Retry classification for the message bus.

    Retryable: transport errors the SDK flags as transient (server busy,
    timeouts, lost connections or locks) and anything already wrapped as a
    TransientError. Everything else is fatal.
    """

    def classify_error(self, error: Exception) -> ErrorCategory:
        if isinstance(error, PipelineError):
            return error.category

        # Most specific class first: AuthenticationError derives from ConnectError
        category = None
        for cls in type(error).__mro__:
            category = classify_eventhub_error_type(cls.__name__)
            if category is not None:
                break

        if category == "auth":
            return ErrorCategory.AUTH
        if category == "transient":
            return ErrorCategory.TRANSIENT

        # Any EventHubError, including the permanent send errors, is transient
        # when the transport flags it as such
        if "EventHubError" in _type_names(error):
            error_str = str(error).lower()
            if any(marker in error_str for marker in EVENTHUB_TRANSIENT_MARKERS):
                return ErrorCategory.TRANSIENT

        if getattr(error, "is_transient", False) is True:
            return ErrorCategory.TRANSIENT

        return ErrorCategory.PERMANENT

    def is_transient(self, error: Exception) -> bool:
        return self.classify_error(error) == ErrorCategory.TRANSIENT


class KustoErrorClassifier:
    """
    Retry classification for the analytical store.

    Retryable: Kusto service errors and pipeline KustoError (ingestion
    failures). Query/command syntax errors and everything else are fatal.
    """

    def classify_error(self, error: Exception) -> ErrorCategory:
        if isinstance(error, KustoQueryError):
            return ErrorCategory.PERMANENT
        if isinstance(error, (KustoError, TransientError)):
            return ErrorCategory.TRANSIENT
        if isinstance(error, PipelineError):
            return error.category

        if _type_names(error) & set(KUSTO_SERVICE_ERROR_TYPES):
            error_str = str(error).lower()
            if any(marker in error_str for marker in KUSTO_QUERY_ERROR_MARKERS):
                return ErrorCategory.PERMANENT
            return ErrorCategory.TRANSIENT

        return ErrorCategory.PERMANENT

    def is_transient(self, error: Exception) -> bool:
        return self.classify_error(error) == ErrorCategory.TRANSIENT


class StorageErrorClassifier:
    """
    Wraps raw Kusto exceptions into the typed PipelineError hierarchy.
    """

    @staticmethod
    def classify_kusto_error(
        error: Exception, context: Optional[dict] = None
    ) -> PipelineError:
        """
        Classify a Kusto error into appropriate exception type.

        Args:
            error: Original exception
            context: Additional context (merged with default {"service": "kusto"})

        Returns:
            Classified PipelineError subclass
        """
        if isinstance(error, PipelineError):
            return error

        error_str = str(error).lower()
        ctx = {"service": "kusto"}
        if context:
            ctx.update(context)

        # Auth errors
        if (
            "401" in error_str
            or "unauthorized" in error_str
            or "access rights" in error_str
        ):
            return AuthError(
                f"Kusto authentication failed: {error}",
                cause=error,
                context=ctx,
            )

        # Query errors (permanent - bad command)
        if any(marker in error_str for marker in KUSTO_QUERY_ERROR_MARKERS):
            return KustoQueryError(
                f"Kusto query error: {error}",
                cause=error,
                context=ctx,
            )

        # Throttling
        if (
            "429" in error_str
            or "throttl" in error_str
            or "too many requests" in error_str
        ):
            return ThrottlingError(
                f"Kusto throttled: {error}",
                cause=error,
                context=ctx,
            )

        if "timeout" in error_str:
            return TimeoutError(
                f"Kusto timeout: {error}",
                cause=error,
                context=ctx,
            )

        if classify_exception(error) == ErrorCategory.TRANSIENT or (
            _type_names(error) & set(KUSTO_SERVICE_ERROR_TYPES)
        ):
            return KustoError(
                f"Kusto error: {error}",
                cause=error,
                context=ctx,
            )

        return KustoQueryError(
            f"Kusto client error: {error}",
            cause=error,
            context=ctx,
        )


def is_already_exists_error(error: BaseException) -> bool:
    """True when a create command failed because the entity already exists."""
    current: BaseException | None = error
    seen: set[int] = set()
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        error_str = str(current).lower()
        if (
            "already exists" in error_str
            or "entitynamealreadyexists" in error_str
            or "entityalreadyexists" in error_str
        ):
            return True
        current = current.__cause__ or getattr(current, "cause", None)
    return False


__all__ = [
    "EVENTHUB_ERROR_MAPPINGS",
    "EventHubErrorClassifier",
    "KustoErrorClassifier",
    "StorageErrorClassifier",
    "classify_eventhub_error_type",
    "is_already_exists_error",
]
