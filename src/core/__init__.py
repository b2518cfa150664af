"""
Core library: Reusable, infrastructure-agnostic components.

Modules:
    resilience  - Retry with exponential backoff
    logging     - Structured JSON logging with context propagation
    errors      - Error classification and exception hierarchy
    utils       - JSON serialization helpers

Nothing in here knows about dimensions or security events; the
``secpipe`` package builds on these pieces.
"""

from .types import ErrorCategory, ErrorClassifier

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "ErrorClassifier",
]
