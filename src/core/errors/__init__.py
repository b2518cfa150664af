"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- PipelineError hierarchy for typed exceptions
- Publishing errors (validation, transient/permanent sink failures)
- Sink error classifiers for Event Hub and Kusto
"""

from core.errors.classifiers import (
    EventHubErrorClassifier,
    KustoErrorClassifier,
    StorageErrorClassifier,
    is_already_exists_error,
)
from core.errors.exceptions import (
    AuthError,
    ErrorCategory,
    EventHubError,
    KustoError,
    KustoQueryError,
    LoadError,
    PermanentError,
    PermanentSinkError,
    PipelineError,
    PublishError,
    SinkError,
    ThrottlingError,
    TransientError,
    TransientSinkError,
    ValidationError,
    classify_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "PipelineError",
    "AuthError",
    "TransientError",
    "PermanentError",
    "ThrottlingError",
    # Sink errors
    "EventHubError",
    "KustoError",
    "KustoQueryError",
    # Dimension errors
    "LoadError",
    # Publishing errors
    "PublishError",
    "ValidationError",
    "SinkError",
    "TransientSinkError",
    "PermanentSinkError",
    # Classification
    "classify_exception",
    "is_already_exists_error",
    "EventHubErrorClassifier",
    "KustoErrorClassifier",
    "StorageErrorClassifier",
]
