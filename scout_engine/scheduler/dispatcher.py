"""
Due-Scout Dispatcher.

Each tick selects due scouts, claims each one through the store's
compare-and-set, and hands the new execution to a worker. Claiming and
hand-off are separate: a claim only proves this tick owns the run, and a
failed hand-off fails the claimed execution rather than leaving it to
time out.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Protocol

import httpx

from scout_engine.config import SchedulerConfig
from scout_engine.models.execution import ScoutExecution
from scout_engine.models.scheduler import DispatchReport, JobRun
from scout_engine.models.scout import utcnow
from scout_engine.scheduler.due import select_due_scouts
from scout_engine.store.base import ExecutionStore, StoreError


logger = logging.getLogger(__name__)


DISPATCH_JOB_NAME = "dispatch-scouts"


class DispatchError(Exception):
    """An execution could not be handed to a worker."""


class ExecutionLauncher(Protocol):
    """Hands a claimed execution to whatever runs it."""

    async def launch(self, execution: ScoutExecution) -> None:
        ...


# =============================================================================
# LAUNCHERS
# =============================================================================


class InProcessLauncher:
    """Runs executions as asyncio tasks in the scheduler process."""

    def __init__(self, trigger):
        """
        Args:
            trigger: ExecutionTrigger whose handle() runs an execution
        """
        self.trigger = trigger
        self._tasks: set[asyncio.Task] = set()

    async def launch(self, execution: ScoutExecution) -> None:
        task = asyncio.create_task(
            self.trigger.handle(execution.id),
            name=f"execution-{execution.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{task.get_name()} raised: {error!r}")

    @property
    def active(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight execution task to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class HttpTriggerLauncher:
    """Hands executions to a worker service over HTTP."""

    def __init__(self, worker_url: str, token: Optional[str] = None, timeout: float = 10.0):
        """
        Args:
            worker_url: Base URL of the worker API
            token: Bearer token expected by the worker
            timeout: Request timeout in seconds
        """
        self.worker_url = worker_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    async def launch(self, execution: ScoutExecution) -> None:
        url = f"{self.worker_url}/api/executions/{execution.id}/run"
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, headers=headers, json={"scout_id": execution.scout_id})
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DispatchError(f"worker unreachable: {e}") from e

        if response.status_code >= 300:
            raise DispatchError(f"worker returned {response.status_code}")


# =============================================================================
# DISPATCHER
# =============================================================================


class ScoutDispatcher:
    """Periodic actor that starts executions for due scouts."""

    def __init__(
        self,
        store: ExecutionStore,
        launcher: ExecutionLauncher,
        config: Optional[SchedulerConfig] = None,
    ):
        self.store = store
        self.launcher = launcher
        self.config = config or SchedulerConfig()

    async def tick(self, now: Optional[datetime] = None) -> DispatchReport:
        """
        Run one dispatch cycle.

        Args:
            now: Evaluation time (defaults to the current time)

        Returns:
            DispatchReport for the cycle

        Raises:
            StoreError: If the store is unavailable; the next tick retries
        """
        now = now or utcnow()
        scouts = self.store.list_scouts(active_only=True)
        due = select_due_scouts(scouts, now, self.config.batch_size)

        report = DispatchReport(evaluated=len(scouts), due=len(due))

        for scout in due:
            execution = self.store.claim_scout(
                scout.id,
                now=now,
                expected_last_run_at=scout.last_run_at,
            )
            if execution is None:
                report.conflicts += 1
                logger.info(f"Scout {scout.id} claimed elsewhere or already running; skipping")
                continue

            report.claimed += 1
            report.execution_ids.append(execution.id)

            if await self._hand_off(execution, now):
                report.dispatched += 1
            else:
                report.handoff_failures += 1

        logger.info(f"Dispatch tick: {report.describe()}")
        self.store.record_job_run(JobRun(
            job_name=DISPATCH_JOB_NAME,
            started_at=now,
            finished_at=utcnow(),
            succeeded=report.handoff_failures == 0,
            detail=report.describe(),
        ))
        return report

    async def run_now(self, scout_id: str, now: Optional[datetime] = None) -> Optional[ScoutExecution]:
        """
        Start a scout immediately, regardless of its schedule.

        Still refused while another execution of the scout is running.

        Returns:
            The started execution, or None if it could not be claimed
        """
        now = now or utcnow()
        execution = self.store.claim_scout(scout_id, now=now, expected_last_run_at=None, force=True)
        if execution is None:
            logger.info(f"Manual run of scout {scout_id} refused")
            return None

        await self._hand_off(execution, now)
        return self.store.get_execution(execution.id)

    async def _hand_off(self, execution: ScoutExecution, now: datetime) -> bool:
        """Launch a claimed execution; a launch failure fails the execution."""
        try:
            await self.launcher.launch(execution)
        except StoreError:
            raise
        except Exception as e:
            reason = str(e) or e.__class__.__name__
            logger.error(f"Hand-off of execution {execution.id} failed: {reason}")
            self.store.fail_execution(execution.id, f"Dispatch failed: {reason}", now)
            return False
        return True
