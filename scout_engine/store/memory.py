"""
In-memory Execution Store with optional JSON file persistence.

Every operation runs under a single lock, so each transition is atomic
with respect to concurrent dispatcher, engine and reaper threads within
one process. Suitable for development, tests and single-process
deployments; use the SQLite store when several processes share state.
"""

import copy
import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator, Optional, Sequence

from scout_engine.models.enums import ExecutionStatus, StepKind
from scout_engine.models.execution import ExecutionStep, RankedExecution, ScoutExecution
from scout_engine.models.preferences import UserPreferences
from scout_engine.models.scheduler import JobRun
from scout_engine.models.scout import Scout
from scout_engine.ranking.similarity import rank_by_similarity
from scout_engine.store.base import (
    ExecutionNotFoundError,
    ExecutionNotRunningError,
    StoreError,
)


logger = logging.getLogger(__name__)


class InMemoryExecutionStore:
    """Lock-guarded dict store implementing the ExecutionStore protocol."""

    def __init__(self, storage_path: Optional[Path] = None):
        """
        Initialize the store.

        Args:
            storage_path: Path to JSON file for persistence (optional)
        """
        self.storage_path = storage_path
        self._lock = threading.RLock()
        self._scouts: dict[str, Scout] = {}
        self._executions: dict[str, ScoutExecution] = {}
        self._steps: dict[str, list[ExecutionStep]] = {}
        self._preferences: dict[str, UserPreferences] = {}
        self._job_runs: list[JobRun] = []

        if storage_path and storage_path.exists():
            self._load_from_storage()

    # ------------------------------------------------------------------
    # Scouts
    # ------------------------------------------------------------------

    def save_scout(self, scout: Scout) -> Scout:
        with self._persisted():
            self._scouts[scout.id] = scout.model_copy(deep=True)
        return scout.model_copy(deep=True)

    def get_scout(self, scout_id: str) -> Optional[Scout]:
        with self._lock:
            scout = self._scouts.get(scout_id)
            return scout.model_copy(deep=True) if scout else None

    def list_scouts(self, active_only: bool = False) -> list[Scout]:
        with self._lock:
            return [
                s.model_copy(deep=True)
                for s in self._scouts.values()
                if s.is_active or not active_only
            ]

    def delete_scout(self, scout_id: str) -> bool:
        with self._lock:
            if scout_id not in self._scouts:
                return False
            with self._persisted():
                del self._scouts[scout_id]
                for execution_id in [
                    e.id for e in self._executions.values() if e.scout_id == scout_id
                ]:
                    del self._executions[execution_id]
                    self._steps.pop(execution_id, None)
        logger.info(f"Deleted scout {scout_id} and its executions")
        return True

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def get_preferences(self, owner_id: str) -> Optional[UserPreferences]:
        with self._lock:
            prefs = self._preferences.get(owner_id)
            return prefs.model_copy() if prefs else None

    def save_preferences(self, preferences: UserPreferences) -> UserPreferences:
        with self._persisted():
            self._preferences[preferences.owner_id] = preferences.model_copy()
        return preferences

    # ------------------------------------------------------------------
    # Execution transitions
    # ------------------------------------------------------------------

    def _running_execution_for(self, scout_id: str) -> Optional[ScoutExecution]:
        for execution in self._executions.values():
            if execution.scout_id == scout_id and execution.status == ExecutionStatus.RUNNING:
                return execution
        return None

    def _require_execution(self, execution_id: str) -> ScoutExecution:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution

    def claim_scout(
        self,
        scout_id: str,
        now: datetime,
        expected_last_run_at: Optional[datetime],
        force: bool = False,
    ) -> Optional[ScoutExecution]:
        with self._lock:
            scout = self._scouts.get(scout_id)
            if scout is None:
                return None
            if not force and scout.last_run_at != expected_last_run_at:
                return None
            if self._running_execution_for(scout_id) is not None:
                return None

            execution = ScoutExecution(
                scout_id=scout_id,
                status=ExecutionStatus.RUNNING,
                started_at=now,
                scout_snapshot=scout.snapshot(),
            )
            with self._persisted():
                scout.last_run_at = now
                self._executions[execution.id] = execution
                self._steps[execution.id] = []
            return execution.model_copy(deep=True)

    def acquire_execution(
        self,
        execution_id: str,
        worker_id: str,
        now: datetime,
    ) -> Optional[ScoutExecution]:
        with self._lock:
            execution = self._require_execution(execution_id)
            if execution.status != ExecutionStatus.RUNNING or execution.worker_id is not None:
                return None

            with self._persisted():
                execution.worker_id = worker_id
            return execution.model_copy(deep=True)

    def append_step(
        self,
        execution_id: str,
        kind: StepKind,
        payload: dict[str, Any],
        now: datetime,
    ) -> ExecutionStep:
        with self._lock:
            execution = self._require_execution(execution_id)
            if execution.status != ExecutionStatus.RUNNING:
                raise ExecutionNotRunningError(execution_id, execution.status.value)

            steps = self._steps.setdefault(execution_id, [])
            step = ExecutionStep(
                execution_id=execution_id,
                sequence=len(steps) + 1,
                kind=kind,
                payload=payload,
                created_at=now,
            )
            with self._persisted():
                steps.append(step)
            return step.model_copy(deep=True)

    def complete_execution(
        self,
        execution_id: str,
        summary: str,
        embedding: Optional[list[float]],
        embedding_model: Optional[str],
        duration_ms: int,
        now: datetime,
    ) -> bool:
        with self._lock:
            execution = self._require_execution(execution_id)
            if execution.status != ExecutionStatus.RUNNING:
                return False
            with self._persisted():
                execution.status = ExecutionStatus.COMPLETED
                execution.summary = summary
                execution.summary_embedding = list(embedding) if embedding is not None else None
                execution.embedding_model = embedding_model
                execution.duration_ms = duration_ms
                execution.completed_at = now
            return True

    def fail_execution(self, execution_id: str, error: str, now: datetime) -> bool:
        with self._lock:
            execution = self._require_execution(execution_id)
            if execution.status.is_terminal:
                return False
            with self._persisted():
                execution.status = ExecutionStatus.FAILED
                execution.error_message = error
                execution.completed_at = now
            return True

    def reap_stuck_executions(
        self,
        cutoff: datetime,
        now: datetime,
        message: str,
    ) -> list[str]:
        with self._lock:
            stuck = [
                e for e in self._executions.values()
                if e.status == ExecutionStatus.RUNNING and e.started_at < cutoff
            ]
            if not stuck:
                return []
            with self._persisted():
                for execution in stuck:
                    execution.status = ExecutionStatus.FAILED
                    execution.error_message = message
                    execution.completed_at = now
            return [e.id for e in stuck]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_execution(self, execution_id: str) -> Optional[ScoutExecution]:
        with self._lock:
            execution = self._executions.get(execution_id)
            return execution.model_copy(deep=True) if execution else None

    def list_executions(self, scout_id: str) -> list[ScoutExecution]:
        with self._lock:
            executions = [
                e.model_copy(deep=True)
                for e in self._executions.values()
                if e.scout_id == scout_id
            ]
        executions.sort(key=lambda e: e.started_at, reverse=True)
        return executions

    def list_steps(self, execution_id: str) -> list[ExecutionStep]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._steps.get(execution_id, [])]

    def list_ranking_candidates(
        self,
        owner_id: Optional[str] = None,
        scout_id: Optional[str] = None,
    ) -> list[ScoutExecution]:
        with self._lock:
            candidates = []
            for execution in self._executions.values():
                if execution.status != ExecutionStatus.COMPLETED:
                    continue
                if execution.summary_embedding is None:
                    continue
                if scout_id and execution.scout_id != scout_id:
                    continue
                if owner_id and self._owner_of(execution) != owner_id:
                    continue
                candidates.append(execution.model_copy(deep=True))
            return candidates

    def _owner_of(self, execution: ScoutExecution) -> Optional[str]:
        if execution.scout_snapshot is not None:
            return execution.scout_snapshot.owner_id
        scout = self._scouts.get(execution.scout_id)
        return scout.owner_id if scout else None

    def rank_similar(
        self,
        query: Sequence[float],
        top_k: int = 5,
        owner_id: Optional[str] = None,
        scout_id: Optional[str] = None,
    ) -> list[RankedExecution]:
        candidates = self.list_ranking_candidates(owner_id=owner_id, scout_id=scout_id)
        return rank_by_similarity(query, candidates, top_k=top_k)

    # ------------------------------------------------------------------
    # Housekeeping log
    # ------------------------------------------------------------------

    def record_job_run(self, run: JobRun) -> None:
        with self._persisted():
            self._job_runs.append(run.model_copy())

    def list_job_runs(self, job_name: Optional[str] = None) -> list[JobRun]:
        with self._lock:
            return [
                r.model_copy()
                for r in self._job_runs
                if job_name is None or r.job_name == job_name
            ]

    def prune_job_runs(self, older_than: datetime) -> int:
        with self._lock:
            kept = [r for r in self._job_runs if (r.finished_at or r.started_at) >= older_than]
            pruned = len(self._job_runs) - len(kept)
            if pruned:
                with self._persisted():
                    self._job_runs = kept
            return pruned

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_from_storage(self) -> None:
        """Load all records from the JSON file."""
        try:
            with open(self.storage_path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to load store from {self.storage_path}: {e}") from e

        self._scouts = {
            k: Scout.model_validate(v) for k, v in data.get("scouts", {}).items()
        }
        self._executions = {
            k: ScoutExecution.model_validate(v) for k, v in data.get("executions", {}).items()
        }
        self._steps = {
            k: [ExecutionStep.model_validate(s) for s in v]
            for k, v in data.get("steps", {}).items()
        }
        self._preferences = {
            k: UserPreferences.model_validate(v) for k, v in data.get("preferences", {}).items()
        }
        self._job_runs = [JobRun.model_validate(r) for r in data.get("job_runs", [])]

        logger.info(
            f"Loaded {len(self._scouts)} scouts and {len(self._executions)} executions "
            f"from {self.storage_path}"
        )

    def _save_to_storage(self) -> None:
        """Write all records to the JSON file (atomic replace)."""
        if not self.storage_path:
            return

        data = {
            "scouts": {k: v.model_dump(mode="json") for k, v in self._scouts.items()},
            "executions": {k: v.model_dump(mode="json") for k, v in self._executions.items()},
            "steps": {
                k: [s.model_dump(mode="json") for s in v] for k, v in self._steps.items()
            },
            "preferences": {
                k: v.model_dump(mode="json") for k, v in self._preferences.items()
            },
            "job_runs": [r.model_dump(mode="json") for r in self._job_runs],
        }

        tmp_path = self.storage_path.with_suffix(self.storage_path.suffix + ".tmp")
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.storage_path)
        except OSError as e:
            raise StoreError(f"Failed to save store to {self.storage_path}: {e}") from e

    @contextmanager
    def _persisted(self) -> Generator[None, None, None]:
        """
        Apply the changes made in the block and write them to the file.

        If the write fails the in-memory records are restored to their
        state before the block, so memory never runs ahead of the file.
        """
        with self._lock:
            backup = self._snapshot() if self.storage_path else None
            yield
            try:
                self._save_to_storage()
            except StoreError:
                self._restore(backup)
                raise

    def _snapshot(self) -> tuple:
        return copy.deepcopy((
            self._scouts,
            self._executions,
            self._steps,
            self._preferences,
            self._job_runs,
        ))

    def _restore(self, backup: tuple) -> None:
        (
            self._scouts,
            self._executions,
            self._steps,
            self._preferences,
            self._job_runs,
        ) = backup
