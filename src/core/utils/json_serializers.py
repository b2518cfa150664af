"""Shared JSON serialization helpers for log records and store payloads."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any


def _serialize_known_type(obj: Any) -> tuple[bool, Any]:
    """Try to serialize by known type. Returns (handled, result)."""
    if isinstance(obj, (datetime, date)):
        return True, obj.isoformat()
    if isinstance(obj, Enum):
        return True, obj.name if isinstance(obj.value, int) else obj.value
    if isinstance(obj, Decimal):
        return True, float(obj)
    if isinstance(obj, Path):
        return True, str(obj)
    if isinstance(obj, (set, frozenset)):
        return True, sorted(obj, key=str)
    return False, None


def json_serializer(obj: Any) -> Any:
    """
    Type-safe ``default=`` hook for ``json.dumps``.

    Keeps Kusto columns typed instead of stringifying everything:
    - datetime/date -> ISO 8601 string
    - int-valued Enum -> member name, other Enum -> value
    - Decimal -> float
    - Path -> string
    - set/frozenset -> sorted list
    - pydantic models -> ``model_dump(by_alias=True)``
    - Everything else -> string (fallback)
    """
    handled, result = _serialize_known_type(obj)
    if handled:
        return result
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json", by_alias=True, exclude_none=True)
    if hasattr(obj, "__dict__"):
        return obj.__dict__
    return str(obj)


__all__ = ["json_serializer"]
