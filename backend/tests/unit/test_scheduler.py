"""Unit tests for the periodic background scheduler."""

import asyncio
import logging

import pytest

from paycore.services.scheduler import BackgroundScheduler, PeriodicJob


class Counter:
    def __init__(self, fail: bool = False) -> None:
        self.calls = 0
        self.fail = fail

    async def __call__(self) -> int:
        self.calls += 1
        if self.fail:
            raise RuntimeError("tick failed")
        return self.calls


class TestBackgroundScheduler:
    @pytest.mark.asyncio
    async def test_runs_immediately_and_periodically(self) -> None:
        counter = Counter()
        scheduler = BackgroundScheduler(
            [PeriodicJob(name="sweep", interval_seconds=0.01, func=counter, run_immediately=True)]
        )

        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert counter.calls >= 2

    @pytest.mark.asyncio
    async def test_waits_one_interval_by_default(self) -> None:
        counter = Counter()
        scheduler = BackgroundScheduler([PeriodicJob(name="slow", interval_seconds=60, func=counter)])

        scheduler.start()
        await asyncio.sleep(0.01)
        await scheduler.stop()

        assert counter.calls == 0

    @pytest.mark.asyncio
    async def test_failing_tick_keeps_loop_alive(self, caplog: pytest.LogCaptureFixture) -> None:
        counter = Counter(fail=True)
        scheduler = BackgroundScheduler(
            [PeriodicJob(name="flaky", interval_seconds=0.01, func=counter, run_immediately=True)]
        )

        with caplog.at_level(logging.ERROR, logger="paycore.services.scheduler"):
            scheduler.start()
            await asyncio.sleep(0.05)
            assert scheduler.running is True
            await scheduler.stop()

        assert counter.calls >= 2
        assert "Background job flaky failed" in caplog.text

    @pytest.mark.asyncio
    async def test_stop_cancels_and_start_is_idempotent(self) -> None:
        scheduler = BackgroundScheduler(
            [PeriodicJob(name="a", interval_seconds=60, func=Counter())]
        )

        scheduler.start()
        scheduler.start()
        assert scheduler.running is True

        await scheduler.stop()

        assert scheduler.running is False
        await scheduler.stop()
