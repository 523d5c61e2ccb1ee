"""
Stuck-Execution Reaper.

Force-fails executions that have been running longer than the timeout
and prunes the housekeeping job log.
"""

import logging
from datetime import datetime
from typing import Optional

from scout_engine.config import SchedulerConfig
from scout_engine.models.scheduler import JobRun, ReapReport
from scout_engine.models.scout import utcnow
from scout_engine.store.base import ExecutionStore


logger = logging.getLogger(__name__)


CLEANUP_JOB_NAME = "cleanup-scouts"


def timeout_message(timeout_seconds: float) -> str:
    """Error message recorded on reaped executions."""
    minutes = timeout_seconds / 60
    if minutes == int(minutes):
        unit = "minute" if minutes == 1 else "minutes"
        return f"Execution timed out after {int(minutes)} {unit}"
    return f"Execution timed out after {timeout_seconds:g} seconds"


class ExecutionReaper:
    """Periodic actor that recovers executions whose worker died or hung."""

    def __init__(self, store: ExecutionStore, config: Optional[SchedulerConfig] = None):
        self.store = store
        self.config = config or SchedulerConfig()

    async def tick(self, now: Optional[datetime] = None) -> ReapReport:
        """
        Run one cleanup cycle.

        Executions started strictly before ``now - timeout`` are failed
        in one atomic store update. Job log rows older than the retention
        window are deleted.

        Returns:
            ReapReport for the cycle
        """
        now = now or utcnow()
        cutoff = now - self.config.execution_timeout
        message = timeout_message(self.config.execution_timeout_seconds)

        reaped = self.store.reap_stuck_executions(cutoff=cutoff, now=now, message=message)
        for execution_id in reaped:
            logger.warning(f"Reaped stuck execution {execution_id}")

        pruned = self.store.prune_job_runs(now - self.config.job_log_retention)

        report = ReapReport(reaped_execution_ids=reaped, pruned_job_runs=pruned)
        logger.info(f"Cleanup tick: {report.describe()}")
        self.store.record_job_run(JobRun(
            job_name=CLEANUP_JOB_NAME,
            started_at=now,
            finished_at=utcnow(),
            detail=report.describe(),
        ))
        return report
