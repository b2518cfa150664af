"""
Unified exception hierarchy for secpipe.

Provides typed exceptions with retry classification to enable
intelligent error handling across the dimension cache and the
event publishing pipeline.
"""


# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from core.types import ErrorCategory


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
        )

    @property
    def should_refresh_auth(self) -> bool:
        return self.category == ErrorCategory.AUTH

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthError(PipelineError):
    """Base class for authentication errors."""

    category = ErrorCategory.AUTH


# =============================================================================
# Network/Connection Errors (Transient)
# =============================================================================


class TransientError(PipelineError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class ThrottlingError(TransientError):
    """Rate limited or server busy - should back off."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.retry_after = retry_after  # Seconds to wait if provided


# =============================================================================
# Permanent Errors (Don't Retry)
# =============================================================================


class PermanentError(PipelineError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Sink-Specific Errors
# =============================================================================


class EventHubError(TransientError):
    """Error from Event Hub send operations explicitly marked transient."""

    pass


class KustoError(TransientError):
    """Error from Kusto/Eventhouse ingestion or management commands."""

    pass


class KustoQueryError(PermanentError):
    """KQL query or command syntax/semantic error (non-retryable)."""

    pass


class TimeoutError(TransientError):
    """Operation timeout error (transient, retryable)."""

    pass


class ConnectionError(TransientError):
    """Connection error (transient, retryable)."""

    pass


# =============================================================================
# Dimension Errors
# =============================================================================


class LoadError(PipelineError):
    """A dimension loader failed to produce its reference data."""

    category = ErrorCategory.TRANSIENT

    def __init__(
        self,
        dimension: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(
            f"Failed to load dimension '{dimension}'",
            cause=cause,
            context={"dimension": dimension, **(context or {})},
        )
        self.dimension = dimension


# =============================================================================
# Publishing Errors
# =============================================================================


class PublishError(PipelineError):
    """
    Base class for failures surfaced by the event publisher.

    Attributes:
        stage: Which stage failed ("validation", "bus" or "store")
        attempts: Number of attempts made against the failing sink
        outcomes: Per-sink outcomes gathered before the failure
    """

    def __init__(
        self,
        message: str,
        stage: str,
        attempts: int = 0,
        outcomes: list | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(
            message,
            cause=cause,
            context={"stage": stage, "attempts": attempts, **(context or {})},
        )
        self.stage = stage
        self.attempts = attempts
        self.outcomes = list(outcomes or [])


class ValidationError(PublishError):
    """Event failed structural validation; no sink was touched."""

    category = ErrorCategory.PERMANENT

    def __init__(self, errors: list[str], context: dict | None = None):
        super().__init__(
            f"Security event validation failed: {', '.join(errors)}",
            stage="validation",
            context=context,
        )
        self.errors = list(errors)


class SinkError(PublishError):
    """A sink write failed after the retry executor gave up."""

    def __init__(
        self,
        sink: str,
        attempts: int,
        last_error: Exception | None = None,
        outcomes: list | None = None,
        context: dict | None = None,
    ):
        super().__init__(
            f"Write to {sink} failed after {attempts} attempt(s)",
            stage=sink,
            attempts=attempts,
            outcomes=outcomes,
            cause=last_error,
            context={"sink": sink, **(context or {})},
        )
        self.sink = sink
        self.last_error = last_error


class TransientSinkError(SinkError):
    """Retryable sink failure that exhausted its attempts."""

    category = ErrorCategory.TRANSIENT


class PermanentSinkError(SinkError):
    """Fatal sink failure; not retried."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Error Classification Utilities
# =============================================================================

# Markers for string-based detection (fallback for non-PipelineError exceptions)
TRANSIENT_ERROR_MARKERS = (
    "timeout",
    "timed out",
    "connection reset",
    "connection refused",
    "connection aborted",
    "server busy",
    "serverbusy",
    "throttl",
    "429",
    "502",
    "503",
    "504",
    "service unavailable",
    "temporarily unavailable",
)

AUTH_ERROR_MARKERS = (
    "401",
    "unauthorized",
    "authentication",
    "token expired",
    "invalid token",
)


def classify_exception(exc: Exception) -> ErrorCategory:
    """Classify an exception into error category."""
    # Already classified
    if isinstance(exc, PipelineError):
        return exc.category

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    if "timeout" in exc_type or "connectionerror" in exc_type:
        return ErrorCategory.TRANSIENT

    if any(m in exc_str for m in AUTH_ERROR_MARKERS):
        return ErrorCategory.AUTH

    if any(m in exc_str for m in TRANSIENT_ERROR_MARKERS):
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN
