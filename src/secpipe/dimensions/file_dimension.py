"""
Dimension backed by a JSON file on disk.

Accepted file shapes:

    [ {...}, {...} ]

    {
      "version": "2024-06-01",
      "lastUpdated": "2024-06-01T12:00:00Z",
      "items": [ {...}, {...} ]
    }

Container keys are matched case-insensitively. When a pydantic model is
given, item field names are matched against the model's field names and
aliases ignoring case and underscores, so camelCase files load into
snake_case models.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from core.errors.exceptions import LoadError
from core.logging import get_logger
from secpipe.dimensions.cache import DEFAULT_TTL_SECONDS
from secpipe.dimensions.dimension import Dimension, KeySelector

logger = get_logger(__name__)


def _lower_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {str(k).lower(): v for k, v in data.items()}


def _normalize_field(name: str) -> str:
    # subscriptionId, SubscriptionID and subscription_id all match
    return name.replace("_", "").lower()


def _model_field_lookup(model: Type[BaseModel]) -> Dict[str, str]:
    """Map normalized field names and aliases to the key validation expects."""
    lookup: Dict[str, str] = {}
    for name, info in model.model_fields.items():
        target = info.alias or name
        lookup[_normalize_field(name)] = target
        if info.alias:
            lookup[_normalize_field(info.alias)] = target
    return lookup


class FileDimension(Dimension):
    """
    Dimension whose loader reads a JSON file.

    A missing file loads as an empty dimension (with a warning). Malformed
    JSON, an unexpected document shape, or items failing model validation
    raise LoadError from the loader.

    Args:
        path: JSON file to read on every load
        key_selector: Callable or field name giving each item's key
        model: Optional pydantic model to validate items into; plain dicts otherwise
        ttl_seconds: Cache entry lifetime
        name: Dimension name; defaults to the model name or the file stem
    """

    def __init__(
        self,
        path: Path | str,
        key_selector: KeySelector,
        model: Optional[Type[BaseModel]] = None,
        ttl_seconds: Optional[float] = DEFAULT_TTL_SECONDS,
        name: Optional[str] = None,
        **kwargs: Any,
    ):
        self.path = Path(path)
        self.model = model
        self.version: Optional[str] = None
        self.file_last_updated: Optional[str] = None
        self._field_lookup = _model_field_lookup(model) if model is not None else {}
        super().__init__(
            loader=self._read_items,
            key_selector=key_selector,
            ttl_seconds=ttl_seconds,
            name=name or (model.__name__ if model is not None else self.path.stem),
            **kwargs,
        )

    async def _read_items(self) -> List[Any]:
        if not self.path.exists():
            logger.warning(
                "Dimension file not found, loading empty dimension",
                extra={"dimension": self.name, "file_path": str(self.path)},
            )
            return []

        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, self.path.read_text, "utf-8")
        return self._parse(text)

    def _parse(self, text: str) -> List[Any]:
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise LoadError(
                self.name,
                cause=e,
                context={"file_path": str(self.path), "line": e.lineno},
            ) from e

        if isinstance(document, dict):
            container = _lower_keys(document)
            self.version = container.get("version")
            self.file_last_updated = container.get("lastupdated")
            raw_items = container.get("items")
            if raw_items is None:
                raw_items = []
        else:
            raw_items = document

        if not isinstance(raw_items, list):
            raise LoadError(
                self.name,
                cause=ValueError(
                    f"Expected a JSON array of items, got {type(raw_items).__name__}"
                ),
                context={"file_path": str(self.path)},
            )

        if self.model is None:
            return raw_items

        items = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                raise LoadError(
                    self.name,
                    cause=ValueError(f"Item {index} is not a JSON object"),
                    context={"file_path": str(self.path)},
                )
            try:
                items.append(self.model.model_validate(self._match_fields(raw)))
            except ModelValidationError as e:
                raise LoadError(
                    self.name,
                    cause=e,
                    context={"file_path": str(self.path), "item_index": index},
                ) from e
        return items

    def _match_fields(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        matched = {}
        for key, value in raw.items():
            field_name = self._field_lookup.get(_normalize_field(str(key)))
            matched[field_name or key] = value
        return matched


__all__ = ["FileDimension"]
