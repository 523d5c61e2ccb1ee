"""
Execution Store interface.

The store is the only shared mutable resource between the dispatcher,
the agent loop engines and the reaper. Every cross-actor transition is a
single compare-and-set operation here; callers never read a status and
then write it back unguarded.
"""

from datetime import datetime
from typing import Any, Optional, Protocol, Sequence

from scout_engine.models.enums import StepKind
from scout_engine.models.execution import ExecutionStep, RankedExecution, ScoutExecution
from scout_engine.models.preferences import UserPreferences
from scout_engine.models.scheduler import JobRun
from scout_engine.models.scout import Scout


class StoreError(Exception):
    """The store was unavailable or a write could not be completed."""


class ExecutionNotFoundError(StoreError):
    """No execution exists with the given id."""

    def __init__(self, execution_id: str):
        super().__init__(f"Execution not found: {execution_id}")
        self.execution_id = execution_id


class ExecutionNotRunningError(StoreError):
    """A step was appended to an execution that is no longer running."""

    def __init__(self, execution_id: str, status: str):
        super().__init__(f"Execution {execution_id} is {status}, not running")
        self.execution_id = execution_id
        self.status = status


class ExecutionStore(Protocol):
    """Persistence boundary for scouts, executions and steps."""

    # Scouts

    def save_scout(self, scout: Scout) -> Scout:
        ...

    def get_scout(self, scout_id: str) -> Optional[Scout]:
        ...

    def list_scouts(self, active_only: bool = False) -> list[Scout]:
        ...

    def delete_scout(self, scout_id: str) -> bool:
        """Delete a scout and, by cascade, its executions and steps."""
        ...

    # Preferences

    def get_preferences(self, owner_id: str) -> Optional[UserPreferences]:
        ...

    def save_preferences(self, preferences: UserPreferences) -> UserPreferences:
        ...

    # Execution transitions

    def claim_scout(
        self,
        scout_id: str,
        now: datetime,
        expected_last_run_at: Optional[datetime],
        force: bool = False,
    ) -> Optional[ScoutExecution]:
        """
        Atomically claim a scout for a run.

        Creates a RUNNING execution with a configuration snapshot and
        stamps last_run_at, only if no execution of the scout is running
        and (unless ``force``) last_run_at still equals
        ``expected_last_run_at``.

        Returns:
            The new execution, or None on a claim conflict
        """
        ...

    def acquire_execution(
        self,
        execution_id: str,
        worker_id: str,
        now: datetime,
    ) -> Optional[ScoutExecution]:
        """
        Hand an execution to a worker exactly once.

        A RUNNING execution without a worker gets this one; any other
        state means a duplicate or late delivery.

        Returns:
            The acquired execution, or None if it is not running or is
            already held by a worker

        Raises:
            ExecutionNotFoundError: If the execution does not exist
        """
        ...

    def append_step(
        self,
        execution_id: str,
        kind: StepKind,
        payload: dict[str, Any],
        now: datetime,
    ) -> ExecutionStep:
        """
        Append the next step of a running execution.

        Raises:
            ExecutionNotFoundError: If the execution does not exist
            ExecutionNotRunningError: If the execution is no longer running
        """
        ...

    def complete_execution(
        self,
        execution_id: str,
        summary: str,
        embedding: Optional[list[float]],
        embedding_model: Optional[str],
        duration_ms: int,
        now: datetime,
    ) -> bool:
        """RUNNING -> COMPLETED. False if the execution was not running."""
        ...

    def fail_execution(self, execution_id: str, error: str, now: datetime) -> bool:
        """PENDING/RUNNING -> FAILED. False if the execution was already terminal."""
        ...

    def reap_stuck_executions(
        self,
        cutoff: datetime,
        now: datetime,
        message: str,
    ) -> list[str]:
        """Fail every RUNNING execution started strictly before ``cutoff``."""
        ...

    # Reads

    def get_execution(self, execution_id: str) -> Optional[ScoutExecution]:
        ...

    def list_executions(self, scout_id: str) -> list[ScoutExecution]:
        """Executions of a scout, most recent first."""
        ...

    def list_steps(self, execution_id: str) -> list[ExecutionStep]:
        """Steps of an execution in sequence order."""
        ...

    def list_ranking_candidates(
        self,
        owner_id: Optional[str] = None,
        scout_id: Optional[str] = None,
    ) -> list[ScoutExecution]:
        """Completed executions with a summary embedding."""
        ...

    def rank_similar(
        self,
        query: Sequence[float],
        top_k: int = 5,
        owner_id: Optional[str] = None,
        scout_id: Optional[str] = None,
    ) -> list[RankedExecution]:
        ...

    # Housekeeping log

    def record_job_run(self, run: JobRun) -> None:
        ...

    def list_job_runs(self, job_name: Optional[str] = None) -> list[JobRun]:
        ...

    def prune_job_runs(self, older_than: datetime) -> int:
        ...
