"""Fixed-interval background jobs.

Each job runs in its own asyncio task: sleep for the interval, run, repeat.
A job that raises is logged with its traceback and keeps its schedule.
stop() cancels every task and waits for them to finish.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class Job:
    name: str
    interval: float
    func: Callable[[], Awaitable[Any]]
    runs: int = 0
    failures: int = 0


class BackgroundJobs:
    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def add(self, name: str, interval: float, func: Callable[[], Awaitable[Any]]) -> Job:
        if name in self._jobs:
            raise ValueError(f"Job {name!r} already registered")
        job = Job(name, interval, func)
        self._jobs[name] = job
        return job

    @property
    def jobs(self) -> dict[str, Job]:
        return dict(self._jobs)

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def _loop(self, job: Job) -> None:
        while True:
            await asyncio.sleep(job.interval)
            try:
                await job.func()
            except Exception:
                job.failures += 1
                logger.exception("Background job %s failed", job.name)
            finally:
                job.runs += 1

    def start(self) -> None:
        for name, job in self._jobs.items():
            if name not in self._tasks:
                self._tasks[name] = asyncio.create_task(self._loop(job), name=f"job:{name}")
                logger.debug("Started job %s every %ss", name, job.interval)

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self) -> BackgroundJobs:
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
