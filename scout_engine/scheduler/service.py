"""
Scheduler process.

Runs the dispatcher and the reaper as named periodic jobs. Settings are
read once at startup and passed to every component.
"""

import asyncio
import logging
import signal
from typing import Optional

from scout_engine.config import Settings
from scout_engine.scheduler.dispatcher import (
    DISPATCH_JOB_NAME,
    ExecutionLauncher,
    HttpTriggerLauncher,
    InProcessLauncher,
    ScoutDispatcher,
)
from scout_engine.scheduler.periodic import JobRegistry
from scout_engine.scheduler.reaper import CLEANUP_JOB_NAME, ExecutionReaper
from scout_engine.store.base import ExecutionStore
from scout_engine.store.sqlite import SQLiteExecutionStore
from scout_engine.utils.logging import setup_logging


logger = logging.getLogger(__name__)


class SchedulerService:
    """Owns the store, dispatcher, reaper and their periodic jobs."""

    def __init__(
        self,
        settings: Settings,
        store: Optional[ExecutionStore] = None,
        launcher: Optional[ExecutionLauncher] = None,
    ):
        """
        Args:
            settings: Settings read at process start
            store: Optional store override
            launcher: Optional launcher override (defaults by dispatch mode)
        """
        self.settings = settings
        self.store = store or SQLiteExecutionStore(settings.database_path)
        self.launcher = launcher or self._build_launcher()
        self.dispatcher = ScoutDispatcher(self.store, self.launcher, settings.scheduler)
        self.reaper = ExecutionReaper(self.store, settings.scheduler)
        self.jobs = JobRegistry()

    def _build_launcher(self) -> ExecutionLauncher:
        config = self.settings.scheduler
        if config.dispatch_mode == "http":
            if not config.worker_url:
                raise ValueError("SCOUT_WORKER_URL is required when SCOUT_DISPATCH_MODE=http")
            return HttpTriggerLauncher(
                config.worker_url,
                token=config.worker_token,
                timeout=config.handoff_timeout_seconds,
            )

        from scout_engine.worker.trigger import build_trigger

        return InProcessLauncher(build_trigger(self.settings, store=self.store))

    def start(self) -> None:
        """Schedule the dispatcher and reaper jobs."""
        config = self.settings.scheduler
        self.jobs.schedule(DISPATCH_JOB_NAME, config.dispatch_interval_seconds, self.dispatcher.tick)
        self.jobs.schedule(CLEANUP_JOB_NAME, config.reap_interval_seconds, self.reaper.tick)

    async def stop(self) -> None:
        """Stop the jobs and let in-process executions finish."""
        await self.jobs.stop()
        if isinstance(self.launcher, InProcessLauncher):
            await self.launcher.drain()

    async def run_forever(self) -> None:
        """Run until SIGINT/SIGTERM."""
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # Windows event loops have no signal handlers
                pass

        self.start()
        logger.info("Scheduler started")
        await stop_event.wait()
        logger.info("Scheduler stopping")
        await self.stop()


def main():
    """Console entry point: run the scheduler process."""
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_file)
    asyncio.run(SchedulerService(settings).run_forever())


if __name__ == "__main__":
    main()
