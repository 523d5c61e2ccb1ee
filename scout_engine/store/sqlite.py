"""
SQLite Execution Store.

Shares scout state between the scheduler and worker processes. Every
transition runs inside a ``BEGIN IMMEDIATE`` transaction and is written
as a guarded UPDATE, so two dispatchers ticking at once can never both
claim the same scout. A partial unique index additionally forbids two
running executions for one scout at the database level.

Similarity ranking runs in SQL through a registered ``cosine_distance``
function and returns the same order as the full-scan ranker.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator, Optional, Sequence

from scout_engine.models.enums import ExecutionStatus, StepKind
from scout_engine.models.execution import ExecutionStep, RankedExecution, ScoutExecution
from scout_engine.models.preferences import UserPreferences
from scout_engine.models.scheduler import JobRun
from scout_engine.models.scout import Scout, ScoutLocation, ScoutSnapshot
from scout_engine.ranking.similarity import DimensionMismatchError, cosine_distance
from scout_engine.store.base import (
    ExecutionNotFoundError,
    ExecutionNotRunningError,
    StoreError,
)


logger = logging.getLogger(__name__)


SCHEMA_VERSION = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_info (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE IF NOT EXISTS scouts (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    goal TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    location TEXT,
    search_queries TEXT NOT NULL DEFAULT '[]',
    frequency TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    last_run_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS scout_executions (
    id TEXT PRIMARY KEY,
    scout_id TEXT NOT NULL REFERENCES scouts(id) ON DELETE CASCADE,
    owner_id TEXT,
    status TEXT NOT NULL,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    error_message TEXT,
    summary TEXT NOT NULL DEFAULT '',
    summary_embedding TEXT,
    embedding_dim INTEGER,
    embedding_model TEXT,
    duration_ms INTEGER,
    scout_snapshot TEXT,
    worker_id TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_executions_one_running
    ON scout_executions(scout_id) WHERE status = 'running';
CREATE INDEX IF NOT EXISTS idx_executions_status_started
    ON scout_executions(status, started_at);
CREATE INDEX IF NOT EXISTS idx_executions_scout ON scout_executions(scout_id);

CREATE TABLE IF NOT EXISTS scout_execution_steps (
    id TEXT PRIMARY KEY,
    execution_id TEXT NOT NULL REFERENCES scout_executions(id) ON DELETE CASCADE,
    sequence INTEGER NOT NULL,
    kind TEXT NOT NULL,
    payload TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    UNIQUE (execution_id, sequence)
);

CREATE TABLE IF NOT EXISTS user_preferences (
    owner_id TEXT PRIMARY KEY,
    firecrawl_api_key TEXT,
    firecrawl_custom_api_key TEXT,
    firecrawl_key_status TEXT NOT NULL DEFAULT 'pending',
    embedding_model TEXT,
    embedding_dimension INTEGER
);

CREATE TABLE IF NOT EXISTS job_runs (
    id TEXT PRIMARY KEY,
    job_name TEXT NOT NULL,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    succeeded INTEGER NOT NULL DEFAULT 1,
    detail TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_job_runs_finished ON job_runs(finished_at);
"""


def _ts(value: Optional[datetime]) -> Optional[str]:
    """Fixed-width UTC timestamp so string order equals time order."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _sql_cosine_distance(stored: Optional[str], query: str) -> Optional[float]:
    if stored is None:
        return None
    return cosine_distance(json.loads(stored), json.loads(query))


class SQLiteExecutionStore:
    """SQLite implementation of the ExecutionStore protocol."""

    def __init__(self, db_path: Path, timeout: float = 30.0):
        """
        Open (and create if needed) the database.

        Args:
            db_path: Path to the SQLite database file
            timeout: Seconds to wait for the write lock
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_schema()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.create_function("cosine_distance", 2, _sql_cosine_distance, deterministic=True)
        return conn

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Write transaction holding the database write lock from the start.

        Any sqlite error rolls back and surfaces as StoreError.
        """
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StoreError(f"Could not open {self.db_path}: {e}") from e

        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StoreError(f"Store write failed: {e}") from e
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @contextmanager
    def _reader(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StoreError(f"Could not open {self.db_path}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            raise StoreError(f"Store read failed: {e}") from e
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise StoreError(f"Could not open {self.db_path}: {e}") from e
        try:
            conn.executescript(SCHEMA)
            conn.execute(
                "INSERT OR REPLACE INTO schema_info (key, value) VALUES ('version', ?)",
                (str(SCHEMA_VERSION),),
            )
        except sqlite3.Error as e:
            raise StoreError(f"Schema initialization failed: {e}") from e
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_scout(row: sqlite3.Row) -> Scout:
        return Scout(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            goal=row["goal"],
            description=row["description"],
            location=ScoutLocation.model_validate_json(row["location"]) if row["location"] else None,
            search_queries=json.loads(row["search_queries"]),
            frequency=row["frequency"],
            is_active=bool(row["is_active"]),
            last_run_at=_parse_ts(row["last_run_at"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_execution(row: sqlite3.Row) -> ScoutExecution:
        return ScoutExecution(
            id=row["id"],
            scout_id=row["scout_id"],
            status=row["status"],
            started_at=_parse_ts(row["started_at"]),
            completed_at=_parse_ts(row["completed_at"]),
            error_message=row["error_message"],
            summary=row["summary"],
            summary_embedding=json.loads(row["summary_embedding"]) if row["summary_embedding"] else None,
            embedding_model=row["embedding_model"],
            duration_ms=row["duration_ms"],
            scout_snapshot=(
                ScoutSnapshot.model_validate_json(row["scout_snapshot"])
                if row["scout_snapshot"] else None
            ),
            worker_id=row["worker_id"],
        )

    @staticmethod
    def _row_to_step(row: sqlite3.Row) -> ExecutionStep:
        return ExecutionStep(
            id=row["id"],
            execution_id=row["execution_id"],
            sequence=row["sequence"],
            kind=row["kind"],
            payload=json.loads(row["payload"]),
            created_at=_parse_ts(row["created_at"]),
        )

    def _fetch_execution(self, conn: sqlite3.Connection, execution_id: str) -> Optional[ScoutExecution]:
        row = conn.execute(
            "SELECT * FROM scout_executions WHERE id = ?", (execution_id,)
        ).fetchone()
        return self._row_to_execution(row) if row else None

    @staticmethod
    def _insert_execution(conn: sqlite3.Connection, execution: ScoutExecution) -> None:
        snapshot = execution.scout_snapshot
        conn.execute(
            """
            INSERT INTO scout_executions
                (id, scout_id, owner_id, status, started_at, summary, scout_snapshot, worker_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                execution.id,
                execution.scout_id,
                snapshot.owner_id if snapshot else None,
                execution.status.value,
                _ts(execution.started_at),
                execution.summary,
                snapshot.model_dump_json() if snapshot else None,
                execution.worker_id,
            ),
        )

    # ------------------------------------------------------------------
    # Scouts
    # ------------------------------------------------------------------

    def save_scout(self, scout: Scout) -> Scout:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO scouts
                    (id, owner_id, title, goal, description, location, search_queries,
                     frequency, is_active, last_run_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    owner_id = excluded.owner_id,
                    title = excluded.title,
                    goal = excluded.goal,
                    description = excluded.description,
                    location = excluded.location,
                    search_queries = excluded.search_queries,
                    frequency = excluded.frequency,
                    is_active = excluded.is_active,
                    last_run_at = excluded.last_run_at,
                    updated_at = excluded.updated_at
                """,
                (
                    scout.id,
                    scout.owner_id,
                    scout.title,
                    scout.goal,
                    scout.description,
                    scout.location.model_dump_json() if scout.location else None,
                    json.dumps(scout.search_queries),
                    scout.frequency.value if scout.frequency else None,
                    int(scout.is_active),
                    _ts(scout.last_run_at),
                    _ts(scout.created_at),
                    _ts(scout.updated_at),
                ),
            )
        return scout

    def get_scout(self, scout_id: str) -> Optional[Scout]:
        with self._reader() as conn:
            row = conn.execute("SELECT * FROM scouts WHERE id = ?", (scout_id,)).fetchone()
            return self._row_to_scout(row) if row else None

    def list_scouts(self, active_only: bool = False) -> list[Scout]:
        query = "SELECT * FROM scouts"
        if active_only:
            query += " WHERE is_active = 1"
        with self._reader() as conn:
            return [self._row_to_scout(row) for row in conn.execute(query).fetchall()]

    def delete_scout(self, scout_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM scouts WHERE id = ?", (scout_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted scout {scout_id} and its executions")
        return deleted

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def get_preferences(self, owner_id: str) -> Optional[UserPreferences]:
        with self._reader() as conn:
            row = conn.execute(
                "SELECT * FROM user_preferences WHERE owner_id = ?", (owner_id,)
            ).fetchone()
        if not row:
            return None
        return UserPreferences(
            owner_id=row["owner_id"],
            firecrawl_api_key=row["firecrawl_api_key"],
            firecrawl_custom_api_key=row["firecrawl_custom_api_key"],
            firecrawl_key_status=row["firecrawl_key_status"],
            embedding_model=row["embedding_model"],
            embedding_dimension=row["embedding_dimension"],
        )

    def save_preferences(self, preferences: UserPreferences) -> UserPreferences:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO user_preferences
                    (owner_id, firecrawl_api_key, firecrawl_custom_api_key,
                     firecrawl_key_status, embedding_model, embedding_dimension)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    preferences.owner_id,
                    preferences.firecrawl_api_key,
                    preferences.firecrawl_custom_api_key,
                    preferences.firecrawl_key_status.value,
                    preferences.embedding_model,
                    preferences.embedding_dimension,
                ),
            )
        return preferences

    # ------------------------------------------------------------------
    # Execution transitions
    # ------------------------------------------------------------------

    def claim_scout(
        self,
        scout_id: str,
        now: datetime,
        expected_last_run_at: Optional[datetime],
        force: bool = False,
    ) -> Optional[ScoutExecution]:
        with self._transaction() as conn:
            conditions = [
                "id = ?",
                "NOT EXISTS (SELECT 1 FROM scout_executions "
                "WHERE scout_id = scouts.id AND status = 'running')",
            ]
            params: list[Any] = [_ts(now), scout_id]
            if not force:
                conditions.append("last_run_at IS ?")
                params.append(_ts(expected_last_run_at))

            cursor = conn.execute(
                f"UPDATE scouts SET last_run_at = ? WHERE {' AND '.join(conditions)}",
                params,
            )
            if cursor.rowcount == 0:
                return None

            scout = self._row_to_scout(
                conn.execute("SELECT * FROM scouts WHERE id = ?", (scout_id,)).fetchone()
            )
            execution = ScoutExecution(
                scout_id=scout_id,
                status=ExecutionStatus.RUNNING,
                started_at=now,
                scout_snapshot=scout.snapshot(),
            )
            self._insert_execution(conn, execution)

        return execution

    def acquire_execution(
        self,
        execution_id: str,
        worker_id: str,
        now: datetime,
    ) -> Optional[ScoutExecution]:
        with self._transaction() as conn:
            execution = self._fetch_execution(conn, execution_id)
            if execution is None:
                raise ExecutionNotFoundError(execution_id)

            cursor = conn.execute(
                """
                UPDATE scout_executions SET worker_id = ?
                WHERE id = ? AND status = 'running' AND worker_id IS NULL
                """,
                (worker_id, execution_id),
            )
            if cursor.rowcount == 0:
                return None

            return self._fetch_execution(conn, execution_id)

    def append_step(
        self,
        execution_id: str,
        kind: StepKind,
        payload: dict[str, Any],
        now: datetime,
    ) -> ExecutionStep:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT status FROM scout_executions WHERE id = ?", (execution_id,)
            ).fetchone()
            if row is None:
                raise ExecutionNotFoundError(execution_id)
            if row["status"] != ExecutionStatus.RUNNING.value:
                raise ExecutionNotRunningError(execution_id, row["status"])

            next_sequence = conn.execute(
                "SELECT COALESCE(MAX(sequence), 0) + 1 FROM scout_execution_steps "
                "WHERE execution_id = ?",
                (execution_id,),
            ).fetchone()[0]

            step = ExecutionStep(
                execution_id=execution_id,
                sequence=next_sequence,
                kind=kind,
                payload=payload,
                created_at=now,
            )
            conn.execute(
                """
                INSERT INTO scout_execution_steps
                    (id, execution_id, sequence, kind, payload, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    step.id,
                    execution_id,
                    step.sequence,
                    step.kind.value,
                    json.dumps(step.payload, default=str),
                    _ts(now),
                ),
            )
        return step

    def complete_execution(
        self,
        execution_id: str,
        summary: str,
        embedding: Optional[list[float]],
        embedding_model: Optional[str],
        duration_ms: int,
        now: datetime,
    ) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE scout_executions
                SET status = 'completed', summary = ?, summary_embedding = ?,
                    embedding_dim = ?, embedding_model = ?, duration_ms = ?,
                    completed_at = ?
                WHERE id = ? AND status = 'running'
                """,
                (
                    summary,
                    json.dumps(list(embedding)) if embedding is not None else None,
                    len(embedding) if embedding is not None else None,
                    embedding_model,
                    duration_ms,
                    _ts(now),
                    execution_id,
                ),
            )
            if cursor.rowcount == 0 and self._fetch_execution(conn, execution_id) is None:
                raise ExecutionNotFoundError(execution_id)
            return cursor.rowcount > 0

    def fail_execution(self, execution_id: str, error: str, now: datetime) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE scout_executions
                SET status = 'failed', error_message = ?, completed_at = ?
                WHERE id = ? AND status IN ('pending', 'running')
                """,
                (error, _ts(now), execution_id),
            )
            if cursor.rowcount == 0 and self._fetch_execution(conn, execution_id) is None:
                raise ExecutionNotFoundError(execution_id)
            return cursor.rowcount > 0

    def reap_stuck_executions(
        self,
        cutoff: datetime,
        now: datetime,
        message: str,
    ) -> list[str]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT id FROM scout_executions WHERE status = 'running' AND started_at < ?",
                (_ts(cutoff),),
            ).fetchall()
            reaped = [row["id"] for row in rows]
            conn.execute(
                """
                UPDATE scout_executions
                SET status = 'failed', error_message = ?, completed_at = ?
                WHERE status = 'running' AND started_at < ?
                """,
                (message, _ts(now), _ts(cutoff)),
            )
        return reaped

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_execution(self, execution_id: str) -> Optional[ScoutExecution]:
        with self._reader() as conn:
            return self._fetch_execution(conn, execution_id)

    def list_executions(self, scout_id: str) -> list[ScoutExecution]:
        with self._reader() as conn:
            rows = conn.execute(
                "SELECT * FROM scout_executions WHERE scout_id = ? ORDER BY started_at DESC",
                (scout_id,),
            ).fetchall()
            return [self._row_to_execution(row) for row in rows]

    def list_steps(self, execution_id: str) -> list[ExecutionStep]:
        with self._reader() as conn:
            rows = conn.execute(
                "SELECT * FROM scout_execution_steps WHERE execution_id = ? ORDER BY sequence",
                (execution_id,),
            ).fetchall()
            return [self._row_to_step(row) for row in rows]

    @staticmethod
    def _candidate_filter(
        owner_id: Optional[str],
        scout_id: Optional[str],
    ) -> tuple[str, list[Any]]:
        conditions = ["status = 'completed'", "summary_embedding IS NOT NULL"]
        params: list[Any] = []
        if owner_id:
            conditions.append("owner_id = ?")
            params.append(owner_id)
        if scout_id:
            conditions.append("scout_id = ?")
            params.append(scout_id)
        return " AND ".join(conditions), params

    def list_ranking_candidates(
        self,
        owner_id: Optional[str] = None,
        scout_id: Optional[str] = None,
    ) -> list[ScoutExecution]:
        where_clause, params = self._candidate_filter(owner_id, scout_id)
        with self._reader() as conn:
            rows = conn.execute(
                f"SELECT * FROM scout_executions WHERE {where_clause}", params
            ).fetchall()
            return [self._row_to_execution(row) for row in rows]

    def rank_similar(
        self,
        query: Sequence[float],
        top_k: int = 5,
        owner_id: Optional[str] = None,
        scout_id: Optional[str] = None,
    ) -> list[RankedExecution]:
        """
        Rank candidates in SQL by cosine distance.

        Ordering matches rank_by_similarity: distance ascending, then
        completed_at descending, then id.

        Raises:
            DimensionMismatchError: If stored vectors differ in dimension
        """
        if top_k <= 0:
            return []

        where_clause, params = self._candidate_filter(owner_id, scout_id)
        with self._reader() as conn:
            dims = conn.execute(
                f"SELECT DISTINCT embedding_dim FROM scout_executions WHERE {where_clause}",
                params,
            ).fetchall()
            for row in dims:
                if row[0] != len(query):
                    raise DimensionMismatchError(len(query), row[0], context="stored summaries")

            rows = conn.execute(
                f"""
                SELECT *, cosine_distance(summary_embedding, ?) AS distance
                FROM scout_executions
                WHERE {where_clause}
                ORDER BY distance ASC, completed_at DESC, id ASC
                LIMIT ?
                """,
                [json.dumps(list(query))] + params + [top_k],
            ).fetchall()

            return [
                RankedExecution(
                    execution=self._row_to_execution(row),
                    distance=row["distance"],
                    similarity=1.0 - row["distance"],
                )
                for row in rows
            ]

    # ------------------------------------------------------------------
    # Housekeeping log
    # ------------------------------------------------------------------

    def record_job_run(self, run: JobRun) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO job_runs (id, job_name, started_at, finished_at, succeeded, detail)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    run.id,
                    run.job_name,
                    _ts(run.started_at),
                    _ts(run.finished_at),
                    int(run.succeeded),
                    run.detail,
                ),
            )

    def list_job_runs(self, job_name: Optional[str] = None) -> list[JobRun]:
        query = "SELECT * FROM job_runs"
        params: list[Any] = []
        if job_name:
            query += " WHERE job_name = ?"
            params.append(job_name)
        query += " ORDER BY started_at"
        with self._reader() as conn:
            return [
                JobRun(
                    id=row["id"],
                    job_name=row["job_name"],
                    started_at=_parse_ts(row["started_at"]),
                    finished_at=_parse_ts(row["finished_at"]),
                    succeeded=bool(row["succeeded"]),
                    detail=row["detail"],
                )
                for row in conn.execute(query, params).fetchall()
            ]

    def prune_job_runs(self, older_than: datetime) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM job_runs WHERE COALESCE(finished_at, started_at) < ?",
                (_ts(older_than),),
            )
            return cursor.rowcount
