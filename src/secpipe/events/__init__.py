"""Security event model and validation."""

from secpipe.events.models import SecurityEvent, Severity
from secpipe.events.validation import ValidationResult, ensure_valid, validate_event

__all__ = [
    "SecurityEvent",
    "Severity",
    "ValidationResult",
    "ensure_valid",
    "validate_event",
]
