"""
Serializable filter descriptors for dimension lookups.

Filters are data, not callables: each condition is a (field, operator, value)
triple, so a filter has a canonical JSON form that is stable across
processes and can be used directly as a cache key.

Usage:
    flt = Filter.where("region", "eq", "eastus").and_("tier", "in", ["gold", "silver"])
    flt.canonical_key()  # '[{"field":"region","op":"eq","value":"eastus"},...]'
    [c for c in clusters if flt.matches(c)]
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple

from core.utils.json_serializers import json_serializer

_MISSING = object()


def _compare(fn: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    """Ordering comparisons are false when either side is missing or incomparable."""

    def op(actual: Any, expected: Any) -> bool:
        if actual is None or actual is _MISSING:
            return False
        try:
            return fn(actual, expected)
        except TypeError:
            return False

    return op


def _text(fn: Callable[[str, str], bool]) -> Callable[[Any, Any], bool]:
    def op(actual: Any, expected: Any) -> bool:
        if not isinstance(actual, str):
            return False
        return fn(actual, str(expected))

    return op


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return str(expected) in actual
    if isinstance(actual, (list, tuple, set, frozenset)):
        return expected in actual
    return False


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": lambda actual, expected: actual == expected,
    "ne": lambda actual, expected: actual != expected,
    "in": lambda actual, expected: actual in expected,
    "not_in": lambda actual, expected: actual not in expected,
    "contains": _contains,
    "startswith": _text(str.startswith),
    "endswith": _text(str.endswith),
    "gt": _compare(lambda a, b: a > b),
    "ge": _compare(lambda a, b: a >= b),
    "lt": _compare(lambda a, b: a < b),
    "le": _compare(lambda a, b: a <= b),
}

# Operators whose value is a collection; normalized to a sorted tuple
_COLLECTION_OPERATORS = frozenset({"in", "not_in"})


def read_field(item: Any, field: str) -> Any:
    """Read a field from a mapping or an object attribute; _MISSING if absent."""
    if isinstance(item, Mapping):
        return item.get(field, _MISSING)
    return getattr(item, field, _MISSING)


def _normalize_value(operator: str, value: Any) -> Any:
    if operator in _COLLECTION_OPERATORS:
        if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
            raise ValueError(
                f"Operator '{operator}' needs a collection value, got {type(value).__name__}"
            )
        return tuple(sorted(value, key=lambda v: json.dumps(v, default=json_serializer)))
    return value


@dataclass(frozen=True)
class FilterDescriptor:
    """A single field condition."""

    field: str
    operator: str
    value: Any = None

    def __post_init__(self):
        if not self.field:
            raise ValueError("Filter field must not be empty")
        if self.operator not in OPERATORS:
            raise ValueError(
                f"Unknown filter operator '{self.operator}'. "
                f"Expected one of: {', '.join(sorted(OPERATORS))}"
            )
        object.__setattr__(self, "value", _normalize_value(self.operator, self.value))

    def matches(self, item: Any) -> bool:
        actual = read_field(item, self.field)
        if actual is _MISSING:
            # Absent fields only satisfy negative conditions
            return self.operator in ("ne", "not_in")
        return OPERATORS[self.operator](actual, self.value)

    def to_dict(self) -> Dict[str, Any]:
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return {"field": self.field, "op": self.operator, "value": value}


@dataclass(frozen=True)
class Filter:
    """Conjunction of FilterDescriptors; an empty filter matches everything."""

    conditions: Tuple[FilterDescriptor, ...] = ()

    @classmethod
    def where(cls, field: str, operator: str, value: Any = None) -> "Filter":
        return cls((FilterDescriptor(field, operator, value),))

    def and_(self, field: str, operator: str, value: Any = None) -> "Filter":
        return Filter(self.conditions + (FilterDescriptor(field, operator, value),))

    def matches(self, item: Any) -> bool:
        return all(condition.matches(item) for condition in self.conditions)

    def canonical_key(self) -> str:
        """
        Deterministic JSON form of the filter.

        Conjunct order does not matter: the same conditions in any order
        produce the same key.
        """
        items = sorted(
            (
                json.dumps(
                    c.to_dict(),
                    sort_keys=True,
                    separators=(",", ":"),
                    default=json_serializer,
                )
                for c in self.conditions
            )
        )
        return "[" + ",".join(items) + "]"

    def __len__(self) -> int:
        return len(self.conditions)


__all__ = [
    "OPERATORS",
    "Filter",
    "FilterDescriptor",
    "read_field",
]
