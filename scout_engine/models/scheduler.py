"""
Scout Engine - Scheduler Schemas

Reports produced by dispatcher and reaper ticks, and the housekeeping
job log they write.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from scout_engine.models.scout import utcnow


class JobRun(BaseModel):
    """One recorded tick of a periodic job."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    job_name: str
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    succeeded: bool = True
    detail: str = ""


class DispatchReport(BaseModel):
    """Outcome of one dispatch cycle."""

    evaluated: int = 0
    due: int = 0
    claimed: int = 0
    conflicts: int = 0
    dispatched: int = 0
    handoff_failures: int = 0
    execution_ids: list[str] = Field(default_factory=list)

    def describe(self) -> str:
        return (
            f"evaluated={self.evaluated} due={self.due} claimed={self.claimed} "
            f"conflicts={self.conflicts} dispatched={self.dispatched} "
            f"handoff_failures={self.handoff_failures}"
        )


class ReapReport(BaseModel):
    """Outcome of one reaper cycle."""

    reaped_execution_ids: list[str] = Field(default_factory=list)
    pruned_job_runs: int = 0

    def describe(self) -> str:
        return f"reaped={len(self.reaped_execution_ids)} pruned_job_runs={self.pruned_job_runs}"
