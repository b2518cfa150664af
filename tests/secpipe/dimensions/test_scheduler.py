"""Tests for the background dimension refresher."""

import asyncio

import pytest

from secpipe.dimensions.dimension import Dimension
from secpipe.dimensions.scheduler import DimensionRefresher


class GatedSleep:
    """Sleep replacement that blocks until the test releases it."""

    def __init__(self):
        self.delays = []
        self._calls = asyncio.Queue()
        self._releases = asyncio.Queue()

    async def __call__(self, delay):
        self.delays.append(delay)
        self._calls.put_nowait(delay)
        await self._releases.get()

    async def wait_for_call(self):
        return await asyncio.wait_for(self._calls.get(), timeout=1)

    def release(self):
        self._releases.put_nowait(None)


class FlakyLoader:
    def __init__(self):
        self.calls = 0
        self.fail = False

    async def __call__(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("source down")
        return [{"id": str(self.calls)}]


@pytest.fixture
def loader():
    return FlakyLoader()


@pytest.fixture
def dimension(loader):
    return Dimension(loader, key_selector="id", name="allowlist")


class TestDimensionRefresher:

    def test_rejects_non_positive_interval(self, dimension):
        with pytest.raises(ValueError):
            DimensionRefresher(dimension, interval_seconds=0)

    @pytest.mark.asyncio
    async def test_refreshes_immediately_then_every_interval(self, dimension, loader):
        sleep = GatedSleep()
        refresher = DimensionRefresher(dimension, interval_seconds=30, sleep=sleep)

        refresher.start()
        assert await sleep.wait_for_call() == 30
        assert loader.calls == 1
        assert refresher.is_running

        sleep.release()
        await sleep.wait_for_call()
        assert loader.calls == 2
        assert refresher.refresh_count == 2

        await refresher.stop()
        assert not refresher.is_running

    @pytest.mark.asyncio
    async def test_refresh_bypasses_ttl(self, dimension, loader):
        sleep = GatedSleep()
        refresher = DimensionRefresher(dimension, interval_seconds=30, sleep=sleep)

        refresher.start()
        await sleep.wait_for_call()
        sleep.release()
        await sleep.wait_for_call()

        assert await dimension.get_all() == [{"id": "2"}]
        await refresher.stop()

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_loop(self, dimension, loader):
        sleep = GatedSleep()
        refresher = DimensionRefresher(dimension, interval_seconds=5, sleep=sleep)
        loader.fail = True

        refresher.start()
        await sleep.wait_for_call()
        assert refresher.failure_count == 1

        loader.fail = False
        sleep.release()
        await sleep.wait_for_call()

        assert refresher.failure_count == 1
        assert refresher.refresh_count == 1
        assert refresher.is_running
        await refresher.stop()

    @pytest.mark.asyncio
    async def test_start_twice_keeps_single_task(self, dimension):
        sleep = GatedSleep()
        refresher = DimensionRefresher(dimension, interval_seconds=5, sleep=sleep)

        refresher.start()
        refresher.start()
        await sleep.wait_for_call()

        assert len(sleep.delays) == 1
        await refresher.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, dimension):
        refresher = DimensionRefresher(dimension, interval_seconds=5)

        await refresher.stop()

        assert not refresher.is_running

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_refresh(self):
        started = asyncio.Event()

        async def slow_loader():
            started.set()
            await asyncio.sleep(10)
            return []

        dimension = Dimension(slow_loader, key_selector="id")
        refresher = DimensionRefresher(dimension, interval_seconds=5)
        refresher.start()
        await started.wait()

        await refresher.stop()

        assert refresher.refresh_count == 0
        assert refresher.failure_count == 0

    @pytest.mark.asyncio
    async def test_refresh_once(self, dimension, loader):
        refresher = DimensionRefresher(dimension, interval_seconds=5)

        assert await refresher.refresh_once() is True
        loader.fail = True
        assert await refresher.refresh_once() is False
        assert refresher.refresh_count == 1
        assert refresher.failure_count == 1
