"""
Named periodic jobs on the asyncio event loop.

Each job is a coroutine function called once per interval. A tick that
raises is logged with its traceback and the job keeps running; the next
interval is the retry.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


JobFunc = Callable[[], Awaitable[object]]


class JobRegistry:
    """Registry of periodic jobs keyed by name."""

    def __init__(self):
        self._jobs: dict[str, asyncio.Task] = {}
        self._intervals: dict[str, float] = {}

    def has_job(self, name: str) -> bool:
        return name in self._jobs

    def interval(self, name: str) -> Optional[float]:
        """Configured interval of a scheduled job, if any."""
        return self._intervals.get(name)

    @property
    def job_names(self) -> list[str]:
        return sorted(self._jobs)

    def schedule(
        self,
        name: str,
        interval_seconds: float,
        func: JobFunc,
        run_immediately: bool = True,
    ) -> asyncio.Task:
        """
        Schedule ``func`` to run every ``interval_seconds``.

        Scheduling a name that already exists replaces the old job, so
        repeated setup never leaves two copies running.

        Args:
            name: Unique job name
            interval_seconds: Seconds between tick starts
            func: Coroutine function to call each tick
            run_immediately: Run the first tick now instead of after one interval

        Returns:
            The asyncio task driving the job
        """
        if interval_seconds <= 0:
            raise ValueError(f"Interval for job {name} must be positive")

        if self.has_job(name):
            logger.info(f"Replacing existing job {name}")
            self.unschedule(name)

        task = asyncio.create_task(
            self._run(name, interval_seconds, func, run_immediately),
            name=f"job-{name}",
        )
        self._jobs[name] = task
        self._intervals[name] = interval_seconds
        logger.info(f"Scheduled job {name} every {interval_seconds:g}s")
        return task

    def unschedule(self, name: str) -> bool:
        """Cancel a job. Returns False if no job has that name."""
        task = self._jobs.pop(name, None)
        self._intervals.pop(name, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def stop(self) -> None:
        """Cancel every job and wait for the tasks to finish."""
        tasks = list(self._jobs.values())
        for name in list(self._jobs):
            self.unschedule(name)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def wait(self) -> None:
        """Block until every job has stopped."""
        tasks = list(self._jobs.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(
        self,
        name: str,
        interval_seconds: float,
        func: JobFunc,
        run_immediately: bool,
    ) -> None:
        loop = asyncio.get_running_loop()
        if not run_immediately:
            await asyncio.sleep(interval_seconds)

        while True:
            started = loop.time()
            try:
                await func()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Job {name} tick failed")

            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, interval_seconds - elapsed))
