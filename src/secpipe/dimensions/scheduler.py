"""Background refresh for a single dimension."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from core.logging import LogContext, get_logger
from secpipe.dimensions.dimension import Dimension

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class DimensionRefresher:
    """
    Owns the task that periodically refreshes one dimension.

    Refreshes immediately on start, then every interval_seconds. A failed
    refresh is logged and counted; the next tick still fires. The loop only
    ends when the task is cancelled through stop().

    Usage:
        refresher = DimensionRefresher(clusters, interval_seconds=900)
        refresher.start()
        ...
        await refresher.stop()
    """

    def __init__(
        self,
        dimension: Dimension,
        interval_seconds: float,
        sleep: Optional[SleepFunc] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.dimension = dimension
        self.interval_seconds = interval_seconds
        self._sleep = sleep or asyncio.sleep
        self._task: Optional[asyncio.Task] = None
        self._refresh_count = 0
        self._failure_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def refresh_count(self) -> int:
        """Successful refreshes since start."""
        return self._refresh_count

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def start(self) -> None:
        """Start the refresh task on the running loop."""
        if self._task is not None:
            logger.warning(
                "Dimension refresher already running",
                extra={"dimension": self.dimension.name},
            )
            return

        self._task = asyncio.create_task(
            self._run(), name=f"refresh-{self.dimension.name}"
        )
        logger.info(
            "Started dimension refresher",
            extra={
                "dimension": self.dimension.name,
                "interval_seconds": self.interval_seconds,
            },
        )

    async def stop(self) -> None:
        """Cancel the refresh task and wait for it to finish."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        logger.info(
            "Stopped dimension refresher",
            extra={
                "dimension": self.dimension.name,
                "refresh_count": self._refresh_count,
                "failure_count": self._failure_count,
            },
        )

    async def refresh_once(self) -> bool:
        """Run a single guarded refresh. Returns True on success."""
        try:
            await self.dimension.refresh()
        except Exception as e:
            self._failure_count += 1
            logger.warning(
                "Scheduled dimension refresh failed",
                extra={
                    "dimension": self.dimension.name,
                    "failure_count": self._failure_count,
                    "error": str(e)[:200],
                    "error_type": type(e).__name__,
                },
            )
            return False

        self._refresh_count += 1
        return True

    async def _run(self) -> None:
        with LogContext(stage="refresh", dimension=self.dimension.name):
            try:
                while True:
                    await self.refresh_once()
                    await self._sleep(self.interval_seconds)
            except asyncio.CancelledError:
                logger.debug(
                    "Dimension refresher task cancelled",
                    extra={"dimension": self.dimension.name},
                )
                raise


__all__ = ["DimensionRefresher"]
