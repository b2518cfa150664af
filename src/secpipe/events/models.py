"""
Security event models.

SecurityEvent is the base of every event the publisher accepts. Subclasses
add domain fields that serialize alongside the standard ones:

    class AlertEvent(SecurityEvent):
        rule_name: str
        score: float = 0.0

    AlertEvent(rule_name="impossible-travel", resource_id="vm-1", owner_id="Contoso")

Serialized form is camelCase JSON with null fields omitted; event_type
defaults to the concrete class name.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


def _new_event_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SecurityEvent(BaseModel):
    """
    A detected security-relevant occurrence.

    Attributes:
        event_id: Idempotency key shared by the bus message and the store record
        event_type: Routing / retention discriminator (defaults to class name)
        detected_at: When the condition was detected (UTC)
        owner_id: Tenant scoping; selects the store database
        severity: Low / Medium / High / Critical
        resource_id: Affected resource (required)
        correlation_id: Optional; falls back to event_id on the wire
        metadata: Free-form string pairs
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    event_id: str = Field(default_factory=_new_event_id)
    event_type: Optional[str] = None
    detected_at: Optional[datetime] = Field(default_factory=_utc_now)
    owner_id: Optional[str] = None
    severity: Severity = Severity.LOW
    resource_id: Optional[str] = None
    correlation_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def default_event_type(self) -> "SecurityEvent":
        if self.event_type is None:
            self.event_type = type(self).__name__
        return self

    @property
    def effective_correlation_id(self) -> str:
        return self.correlation_id or self.event_id

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible dict in wire form (camelCase, nulls omitted)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        """Compact camelCase JSON with null fields omitted."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_store_record(self) -> Dict[str, Any]:
        """Row as the store's JSON ingestion mapping produces it."""
        # Imported here: publishing depends on events, not the other way round
        from secpipe.publishing.schema import apply_json_mapping

        return apply_json_mapping(self.to_dict())


__all__ = ["SecurityEvent", "Severity"]
