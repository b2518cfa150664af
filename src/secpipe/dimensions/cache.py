"""
TTL cache backing a single dimension.

Entries are stored with the monotonic time they were inserted and are only
checked for expiry when read (lazy expiration, no sweeper task). Each
Dimension owns exactly one DimensionCache; nothing is shared across
dimensions.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from core.logging import get_logger
from secpipe.dimensions.filters import Filter

logger = get_logger(__name__)

# Default TTL of 15 minutes
DEFAULT_TTL_SECONDS = 900


@dataclass(frozen=True)
class CacheKey:
    """Cache key for one of the three lookup shapes: All, Find:<filter>, Key:<k>."""

    kind: str
    signature: str = ""

    @classmethod
    def all(cls) -> "CacheKey":
        return cls("All")

    @classmethod
    def find(cls, flt: Filter) -> "CacheKey":
        return cls("Find", flt.canonical_key())

    @classmethod
    def key(cls, key: str) -> "CacheKey":
        return cls("Key", key)

    def __str__(self) -> str:
        if self.kind == "All":
            return "All"
        return f"{self.kind}:{self.signature}"


class DimensionCache:
    """
    In-memory TTL cache keyed by CacheKey strings.

    An entry is valid while its age is at most ttl_seconds. Expired entries
    are removed when they are read.

    Usage:
        cache = DimensionCache(ttl_seconds=900)
        hit, value = cache.get(CacheKey.all())
        if not hit:
            value = await load()
            cache.set(CacheKey.all(), value)
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: Time-to-live in seconds. If None, uses DEFAULT_TTL_SECONDS.
            clock: Monotonic time source, injectable for tests.
        """
        self._ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else DEFAULT_TTL_SECONDS
        )
        if self._ttl_seconds < 0:
            raise ValueError("ttl_seconds must not be negative")
        self._clock = clock
        # Maps cache key -> (value, inserted_at)
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._hits = 0
        self._misses = 0
        self._expirations = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def get(self, key: CacheKey) -> Tuple[bool, Any]:
        """
        Look up a key.

        Returns:
            (True, value) for a valid entry, (False, None) on miss or expiry
        """
        skey = str(key)
        entry = self._entries.get(skey)
        if entry is None:
            self._misses += 1
            return False, None

        value, inserted_at = entry
        if self._clock() - inserted_at > self._ttl_seconds:
            # A concurrent clear() may already have dropped it
            self._entries.pop(skey, None)
            self._expirations += 1
            self._misses += 1
            logger.debug(
                "Dimension cache entry expired",
                extra={"cache_key": skey, "ttl_seconds": self._ttl_seconds},
            )
            return False, None

        self._hits += 1
        return True, value

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries[str(key)] = (value, self._clock())

    def clear(self) -> None:
        """Drop every entry; readers holding the old dict are unaffected."""
        count = len(self._entries)
        self._entries = {}
        logger.debug("Cleared dimension cache", extra={"item_count": count})

    def size(self) -> int:
        """Get current cache size (includes potentially expired entries)."""
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with hits, misses, expirations, size and hit rate
        """
        return {
            "hits": self._hits,
            "misses": self._misses,
            "expirations": self._expirations,
            "size": len(self._entries),
            "hit_rate_pct": (
                round(self._hits / (self._hits + self._misses) * 100, 1)
                if (self._hits + self._misses) > 0
                else 0.0
            ),
        }

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0
        self._expirations = 0


__all__ = [
    "CacheKey",
    "DimensionCache",
    "DEFAULT_TTL_SECONDS",
]
