"""Cancellable periodic background tasks.

Each job runs on its own asyncio task. A failing tick is logged and the
loop keeps going; stop() cancels every task and waits for them to end.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict

from paycore.utils.logging import get_logger

logger = get_logger(__name__)


class PeriodicJob(BaseModel):
    """A coroutine function to run every interval_seconds."""

    model_config = ConfigDict(frozen=True)

    name: str
    interval_seconds: float
    func: Callable[[], Awaitable[Any]]
    run_immediately: bool = False


class BackgroundScheduler:
    """Owns the periodic jobs of the running application."""

    def __init__(self, jobs: list[PeriodicJob]) -> None:
        self._jobs = list(jobs)
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        """Start every job; calling start() twice is a no-op."""
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._run(job), name=f"periodic:{job.name}") for job in self._jobs
        ]
        logger.info("Background jobs started: %s", ", ".join(job.name for job in self._jobs))

    async def stop(self) -> None:
        """Cancel every job and wait until all have finished."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("Background jobs stopped")

    async def _run(self, job: PeriodicJob) -> None:
        if job.run_immediately:
            await self._tick(job)
        while True:
            await asyncio.sleep(job.interval_seconds)
            await self._tick(job)

    @staticmethod
    async def _tick(job: PeriodicJob) -> None:
        try:
            result = await job.func()
        except Exception:
            logger.exception("Background job %s failed", job.name)
            return
        logger.debug("Background job %s finished: %s", job.name, result)
