"""
Reference-data dimensions.

Provides:
- Filter / FilterDescriptor: serializable lookup conditions
- DimensionCache / CacheKey: lazily-expiring TTL cache
- Dimension: read-through repository over an async loader
- FileDimension: Dimension loaded from a JSON file
- DimensionRefresher / DimensionRegistry: owned background refresh
"""

from secpipe.dimensions.cache import CacheKey, DimensionCache
from secpipe.dimensions.dimension import Dimension, DimensionStatus
from secpipe.dimensions.file_dimension import FileDimension
from secpipe.dimensions.filters import Filter, FilterDescriptor
from secpipe.dimensions.registry import DimensionRegistry
from secpipe.dimensions.scheduler import DimensionRefresher

__all__ = [
    "CacheKey",
    "Dimension",
    "DimensionCache",
    "DimensionRefresher",
    "DimensionRegistry",
    "DimensionStatus",
    "FileDimension",
    "Filter",
    "FilterDescriptor",
]
