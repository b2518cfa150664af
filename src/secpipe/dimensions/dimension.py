"""
Read-through reference-data dimension.

A Dimension answers "give me the current reference data of type T" from a
TTL cache, falling through to an async loader on miss or expiry. Three
lookup shapes are cached independently: everything (All), a filtered view
(Find:<canonical filter>) and a single item by key (Key:<k>).

Read paths degrade to "no data" when the loader fails; the failure stays
visible through ``status`` and ``last_error``. An explicit ``refresh()``
propagates the failure instead.
"""

import asyncio
import time
from datetime import UTC, datetime
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Generic,
    Iterable,
    List,
    Optional,
    TypeVar,
    Union,
)

from core.errors.exceptions import LoadError
from core.logging import get_logger
from secpipe.dimensions.cache import DEFAULT_TTL_SECONDS, CacheKey, DimensionCache
from secpipe.dimensions.filters import Filter, FilterDescriptor, read_field

logger = get_logger(__name__)

T = TypeVar("T")

Loader = Callable[[], Awaitable[Iterable[T]]]
KeySelector = Union[Callable[[T], str], str]


class DimensionStatus(Enum):
    """Outcome of the most recent load."""

    UNLOADED = "unloaded"
    FRESH = "fresh"  # loaded, at least one item
    EMPTY = "empty"  # loaded, legitimately no items
    UNAVAILABLE = "unavailable"  # last load failed


def _field_selector(field: str) -> Callable[[Any], str]:
    def select(item: Any) -> str:
        value = read_field(item, field)
        return "" if value is None or not isinstance(value, (str, int)) else str(value)

    return select


class Dimension(Generic[T]):
    """
    Cached, refreshable reference-data repository for one entity type.

    Args:
        loader: Async callable returning every item of the dimension
        key_selector: Callable returning an item's unique key, or the name
            of the field holding it
        ttl_seconds: Cache entry lifetime (default 15 minutes)
        name: Dimension name used in logs; defaults to the loader's name
        clock: Monotonic time source for the cache, injectable for tests

    Usage:
        clusters = Dimension(load_clusters, key_selector="cluster_id", ttl_seconds=300)
        everything = await clusters.get_all()
        gold = await clusters.find(Filter.where("tier", "eq", "gold"))
        one = await clusters.find_by_key("aks-prod-01")
    """

    def __init__(
        self,
        loader: Loader,
        key_selector: KeySelector,
        ttl_seconds: Optional[float] = None,
        name: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._key_selector = (
            _field_selector(key_selector) if isinstance(key_selector, str) else key_selector
        )
        self.name = name or getattr(loader, "__name__", None) or "dimension"
        self._cache = DimensionCache(
            ttl_seconds if ttl_seconds is not None else DEFAULT_TTL_SECONDS,
            clock=clock,
        )
        self._last_refreshed: Optional[datetime] = None
        self._last_error: Optional[LoadError] = None
        self._status = DimensionStatus.UNLOADED
        self._load_count = 0

    @property
    def ttl_seconds(self) -> float:
        return self._cache.ttl_seconds

    @property
    def last_refreshed(self) -> Optional[datetime]:
        """UTC time of the last successful load, never moves backwards."""
        return self._last_refreshed

    @property
    def last_error(self) -> Optional[LoadError]:
        """Failure from the most recent load, cleared by the next success."""
        return self._last_error

    @property
    def status(self) -> DimensionStatus:
        return self._status

    @property
    def load_count(self) -> int:
        """Number of loader invocations, successful or not."""
        return self._load_count

    @property
    def cache(self) -> DimensionCache:
        return self._cache

    async def get_all(self) -> List[T]:
        """
        Every item, from cache when the All entry is still valid.

        A loader failure is logged and yields an empty list; check
        ``status`` to tell it apart from a legitimately empty dimension.
        """
        hit, items = self._cache.get(CacheKey.all())
        if hit:
            return list(items)

        try:
            items = await self._load()
        except LoadError as e:
            logger.warning(
                "Dimension load failed, returning no data",
                extra={
                    "dimension": self.name,
                    "error": str(e)[:200],
                    "error_type": type(e.cause or e).__name__,
                },
            )
            return []
        return list(items)

    async def find(self, flt: Union[Filter, FilterDescriptor]) -> List[T]:
        """Items matching every condition of the filter."""
        if isinstance(flt, FilterDescriptor):
            flt = Filter((flt,))

        key = CacheKey.find(flt)
        hit, items = self._cache.get(key)
        if hit:
            return list(items)

        everything = await self.get_all()
        matched = [item for item in everything if flt.matches(item)]
        # Don't pin an empty view built from a failed load
        if self._status is not DimensionStatus.UNAVAILABLE:
            self._cache.set(key, matched)
        return list(matched)

    async def find_by_key(self, key: Optional[str]) -> Optional[T]:
        """
        Item whose key_selector value equals key, or None.

        Empty keys return None without touching the loader. Misses are not
        cached; only found items get a Key entry.
        """
        if not key:
            return None

        cache_key = CacheKey.key(key)
        hit, item = self._cache.get(cache_key)
        if hit:
            return item

        for candidate in await self.get_all():
            if self._key_selector(candidate) == key:
                self._cache.set(cache_key, candidate)
                return candidate
        return None

    async def contains(self, flt: Union[Filter, FilterDescriptor]) -> bool:
        return len(await self.find(flt)) > 0

    async def refresh(self) -> List[T]:
        """
        Drop every cached entry and reload All, regardless of TTL.

        Raises:
            LoadError: The loader failed; the cache is left empty
        """
        self._cache.clear()
        items = await self._load()
        logger.info(
            "Dimension refreshed",
            extra={"dimension": self.name, "item_count": len(items)},
        )
        return list(items)

    async def _load(self) -> List[T]:
        self._load_count += 1
        started = time.perf_counter()
        try:
            items = list(await self._loader())
        except asyncio.CancelledError:
            raise
        except LoadError as e:
            self._record_failure(e)
            raise
        except Exception as e:
            error = LoadError(self.name, cause=e)
            self._record_failure(error)
            raise error from e

        self._cache.set(CacheKey.all(), items)
        now = datetime.now(UTC)
        if self._last_refreshed is None or now > self._last_refreshed:
            self._last_refreshed = now
        self._last_error = None
        self._status = DimensionStatus.FRESH if items else DimensionStatus.EMPTY

        logger.debug(
            "Dimension loaded",
            extra={
                "dimension": self.name,
                "item_count": len(items),
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return items

    def _record_failure(self, error: LoadError) -> None:
        self._last_error = error
        self._status = DimensionStatus.UNAVAILABLE

    def get_stats(self) -> dict:
        return {
            "dimension": self.name,
            "status": self._status.value,
            "load_count": self._load_count,
            "last_refreshed": (
                self._last_refreshed.isoformat() if self._last_refreshed else None
            ),
            **self._cache.get_stats(),
        }

    def __repr__(self) -> str:
        return f"Dimension(name={self.name!r}, ttl_seconds={self.ttl_seconds}, status={self._status.value})"


__all__ = [
    "Dimension",
    "DimensionStatus",
    "KeySelector",
    "Loader",
]
