"""
Registry owning a process's dimensions and their background refreshers.

Refresh tasks belong to the registry that started them, not to module-level
state, so tests and embedding applications control their lifetime
explicitly.
"""

from typing import Dict, List, Optional

from core.logging import get_logger
from secpipe.config import DimensionSettings
from secpipe.dimensions.dimension import Dimension
from secpipe.dimensions.scheduler import DimensionRefresher, SleepFunc

logger = get_logger(__name__)


class DimensionRegistry:
    """
    Named dimensions plus one refresher per dimension with an interval.

    Usage:
        registry = DimensionRegistry(settings.dimensions)
        registry.register(clusters)                        # interval from settings
        registry.register(allowlist, refresh_interval_seconds=60)
        async with registry:
            gold = await registry.get("clusters").find(flt)
    """

    def __init__(
        self,
        settings: Optional[DimensionSettings] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        self.settings = settings
        self._sleep = sleep
        self._dimensions: Dict[str, Dimension] = {}
        self._intervals: Dict[str, Optional[float]] = {}
        self._refreshers: Dict[str, DimensionRefresher] = {}
        self._started = False

    def register(
        self,
        dimension: Dimension,
        refresh_interval_seconds: Optional[float] = None,
    ) -> Dimension:
        """
        Add a dimension. Without an explicit interval, the settings decide
        (None or 0 means no background refresh).

        Raises:
            ValueError: A dimension with the same name is already registered
        """
        if dimension.name in self._dimensions:
            raise ValueError(f"Dimension '{dimension.name}' is already registered")

        interval = refresh_interval_seconds
        if interval is None and self.settings is not None:
            interval = self.settings.refresh_interval_for(dimension.name)
        if interval is not None and interval <= 0:
            interval = None

        self._dimensions[dimension.name] = dimension
        self._intervals[dimension.name] = interval

        if self._started and interval is not None:
            self._start_refresher(dimension, interval)

        logger.debug(
            "Registered dimension",
            extra={
                "dimension": dimension.name,
                "ttl_seconds": dimension.ttl_seconds,
                "interval_seconds": interval,
            },
        )
        return dimension

    def get(self, name: str) -> Dimension:
        try:
            return self._dimensions[name]
        except KeyError:
            raise KeyError(f"Unknown dimension '{name}'") from None

    def names(self) -> List[str]:
        return list(self._dimensions)

    def refresher(self, name: str) -> Optional[DimensionRefresher]:
        return self._refreshers.get(name)

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start a refresher for every dimension that has an interval."""
        if self._started:
            return
        self._started = True
        for name, dimension in self._dimensions.items():
            interval = self._intervals[name]
            if interval is not None:
                self._start_refresher(dimension, interval)
        logger.info(
            "Dimension registry started",
            extra={"item_count": len(self._refreshers)},
        )

    async def stop(self) -> None:
        """Stop every refresher this registry started."""
        refreshers = list(self._refreshers.values())
        self._refreshers = {}
        self._started = False
        for refresher in refreshers:
            await refresher.stop()
        if refreshers:
            logger.info(
                "Dimension registry stopped",
                extra={"item_count": len(refreshers)},
            )

    def _start_refresher(self, dimension: Dimension, interval: float) -> None:
        refresher = DimensionRefresher(dimension, interval, sleep=self._sleep)
        self._refreshers[dimension.name] = refresher
        refresher.start()

    async def __aenter__(self) -> "DimensionRegistry":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def get_stats(self) -> Dict[str, dict]:
        stats = {}
        for name, dimension in self._dimensions.items():
            entry = dimension.get_stats()
            refresher = self._refreshers.get(name)
            if refresher is not None:
                entry["refresh_count"] = refresher.refresh_count
                entry["failure_count"] = refresher.failure_count
            stats[name] = entry
        return stats


__all__ = ["DimensionRegistry"]
