"""Structural checks run on every event before any sink is touched."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from core.errors.exceptions import ValidationError
from secpipe.events.models import SecurityEvent


@dataclass
class ValidationResult:
    ok: bool
    errors: List[str] = field(default_factory=list)


def _is_zero_datetime(value: datetime | None) -> bool:
    return value is None or value.replace(tzinfo=None) == datetime.min


def validate_event(event: SecurityEvent) -> ValidationResult:
    """
    Check every rule and collect all violations (no short-circuit).

    Rules: non-empty event_id, non-empty event_type, detected_at set to a
    real time, non-empty resource_id.
    """
    errors = []
    if not event.event_id:
        errors.append("EventId is required")
    if not event.event_type:
        errors.append("EventType is required")
    if _is_zero_datetime(event.detected_at):
        errors.append("DetectedAt is required")
    if not event.resource_id:
        errors.append("ResourceId is required")
    return ValidationResult(ok=not errors, errors=errors)


def ensure_valid(event: SecurityEvent) -> None:
    """
    Raises:
        ValidationError: listing every violated rule
    """
    result = validate_event(event)
    if not result.ok:
        raise ValidationError(
            result.errors,
            context={"event_id": event.event_id, "event_type": event.event_type},
        )


__all__ = ["ValidationResult", "ensure_valid", "validate_event"]
