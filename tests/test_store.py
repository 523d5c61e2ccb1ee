"""
Tests for the Execution Store implementations.

Every test in the store-parametrized classes runs against both the
in-memory and the SQLite store.
"""

import math
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import patch

import pytest

from scout_engine.models.enums import ExecutionStatus, StepKind
from scout_engine.models.preferences import UserPreferences
from scout_engine.models.scheduler import JobRun
from scout_engine.ranking.similarity import DimensionMismatchError, rank_by_similarity
from scout_engine.store.base import ExecutionNotFoundError, ExecutionNotRunningError, StoreError
from scout_engine.store.memory import InMemoryExecutionStore


def _vector_at_distance(distance):
    """2-d unit vector whose cosine distance from [1, 0] is ``distance``."""
    cos = 1.0 - distance
    return [cos, math.sqrt(1.0 - cos * cos)]


def _completed(store, scout, now, embedding, summary="found things", offset_minutes=0):
    at = now + timedelta(minutes=offset_minutes)
    execution = store.claim_scout(scout.id, now=at, expected_last_run_at=None, force=True)
    store.complete_execution(
        execution.id,
        summary=summary,
        embedding=embedding,
        embedding_model="mock-embedding",
        duration_ms=1000,
        now=at,
    )
    return store.get_execution(execution.id)


class TestScouts:
    """Tests for scout persistence."""

    def test_save_and_get(self, store, sample_scout):
        store.save_scout(sample_scout)

        loaded = store.get_scout(sample_scout.id)

        assert loaded.title == sample_scout.title
        assert loaded.location.city == "Lisbon"
        assert loaded.search_queries == sample_scout.search_queries

    def test_list_active_only(self, store, make_scout):
        active = store.save_scout(make_scout())
        store.save_scout(make_scout(is_active=False))

        assert [s.id for s in store.list_scouts(active_only=True)] == [active.id]
        assert len(store.list_scouts()) == 2

    def test_delete_cascades_to_executions_and_steps(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        execution = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)
        store.append_step(execution.id, StepKind.THINK, {"action": "search"}, now)

        assert store.delete_scout(sample_scout.id)

        assert store.get_scout(sample_scout.id) is None
        assert store.get_execution(execution.id) is None
        assert store.list_steps(execution.id) == []
        assert not store.delete_scout(sample_scout.id)

    def test_preferences_round_trip(self, store):
        store.save_preferences(UserPreferences(
            owner_id="owner-1",
            firecrawl_custom_api_key=" fc-custom \n",
            embedding_dimension=16,
        ))

        prefs = store.get_preferences("owner-1")

        assert prefs.resolve_firecrawl_key() == "fc-custom"
        assert prefs.embedding_dimension == 16
        assert store.get_preferences("nobody") is None


class TestClaim:
    """Tests for the atomic claim."""

    def test_claim_creates_running_execution(self, store, sample_scout, now):
        store.save_scout(sample_scout)

        execution = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)

        assert execution.status == ExecutionStatus.RUNNING
        assert execution.started_at == now
        assert execution.scout_snapshot.goal == sample_scout.goal
        assert store.get_scout(sample_scout.id).last_run_at == now

    def test_stale_expectation_conflicts(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        first = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)
        store.fail_execution(first.id, "done", now)

        # A second dispatcher still holding the old last_run_at loses
        assert store.claim_scout(
            sample_scout.id, now=now + timedelta(seconds=1), expected_last_run_at=None
        ) is None

    def test_running_execution_blocks_claim_even_when_forced(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)

        assert store.claim_scout(
            sample_scout.id, now=now + timedelta(hours=2), expected_last_run_at=now, force=True
        ) is None
        running = [
            e for e in store.list_executions(sample_scout.id)
            if e.status == ExecutionStatus.RUNNING
        ]
        assert len(running) == 1

    def test_unknown_scout_cannot_be_claimed(self, store, now):
        assert store.claim_scout("missing", now=now, expected_last_run_at=None) is None

    def test_snapshot_ignores_later_edits(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        execution = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)

        store.save_scout(sample_scout.model_copy(update={"goal": "Something else entirely"}))

        assert store.get_execution(execution.id).scout_snapshot.goal == sample_scout.goal


class TestAcquire:
    """Tests for worker hand-off."""

    def test_running_execution_is_acquired_once(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        execution = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)

        first = store.acquire_execution(execution.id, "worker-a", now)
        second = store.acquire_execution(execution.id, "worker-b", now)

        assert first.worker_id == "worker-a"
        assert second is None

    def test_terminal_execution_is_not_acquired(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        execution = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)
        store.fail_execution(execution.id, "boom", now)

        assert store.acquire_execution(execution.id, "worker-a", now) is None

    def test_unknown_execution_raises(self, store, now):
        with pytest.raises(ExecutionNotFoundError):
            store.acquire_execution("missing", "worker-a", now)


class TestStepsAndTransitions:
    """Tests for steps and terminal transitions."""

    def test_steps_are_sequenced(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        execution = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)

        for kind in (StepKind.THINK, StepKind.SEARCH, StepKind.READ):
            store.append_step(execution.id, kind, {"kind": kind.value}, now)

        steps = store.list_steps(execution.id)
        assert [s.sequence for s in steps] == [1, 2, 3]
        assert [s.kind for s in steps] == [StepKind.THINK, StepKind.SEARCH, StepKind.READ]
        assert steps[1].payload == {"kind": "search"}

    def test_append_after_reap_is_rejected(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        execution = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)
        store.reap_stuck_executions(now + timedelta(minutes=6), now + timedelta(minutes=6), "timed out")

        with pytest.raises(ExecutionNotRunningError):
            store.append_step(execution.id, StepKind.THINK, {}, now)

    def test_complete_does_not_override_reaper(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        execution = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)
        store.fail_execution(execution.id, "Execution timed out after 5 minutes", now)

        completed = store.complete_execution(execution.id, "late", [1.0, 0.0], "m", 10, now)

        assert not completed
        stored = store.get_execution(execution.id)
        assert stored.status == ExecutionStatus.FAILED
        assert stored.error_message == "Execution timed out after 5 minutes"

    def test_fail_does_not_override_completion(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        execution = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)
        store.complete_execution(execution.id, "done", [1.0, 0.0], "m", 10, now)

        assert not store.fail_execution(execution.id, "too late", now)
        assert store.get_execution(execution.id).status == ExecutionStatus.COMPLETED

    def test_complete_stores_summary_and_embedding(self, store, sample_scout, now):
        store.save_scout(sample_scout)

        execution = _completed(store, sample_scout, now, [0.6, 0.8], summary="Three listings")

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.summary == "Three listings"
        assert execution.summary_embedding == [0.6, 0.8]
        assert execution.duration_ms == 1000
        assert execution.completed_at == now


class TestReap:
    """Tests for stuck-execution recovery."""

    def test_only_strictly_older_runs_are_reaped(self, store, make_scout, now):
        old_scout = store.save_scout(make_scout())
        edge_scout = store.save_scout(make_scout())
        cutoff = now - timedelta(minutes=5)

        old = store.claim_scout(
            old_scout.id, now=cutoff - timedelta(seconds=1), expected_last_run_at=None
        )
        edge = store.claim_scout(edge_scout.id, now=cutoff, expected_last_run_at=None)

        reaped = store.reap_stuck_executions(cutoff, now, "Execution timed out after 5 minutes")

        assert reaped == [old.id]
        assert store.get_execution(old.id).status == ExecutionStatus.FAILED
        assert store.get_execution(old.id).completed_at == now
        assert store.get_execution(edge.id).status == ExecutionStatus.RUNNING


class TestJobRuns:
    """Tests for the housekeeping log."""

    def test_prune_removes_old_rows(self, store, now):
        store.record_job_run(JobRun(
            job_name="dispatch-scouts",
            started_at=now - timedelta(hours=30),
            finished_at=now - timedelta(hours=30),
        ))
        store.record_job_run(JobRun(job_name="dispatch-scouts", started_at=now, finished_at=now))

        pruned = store.prune_job_runs(now - timedelta(hours=24))

        assert pruned == 1
        assert len(store.list_job_runs("dispatch-scouts")) == 1


class TestRanking:
    """Tests for similarity ranking through the store."""

    def test_orders_by_distance(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        for distance, minutes in ((0.4, 0), (0.1, 1), (0.2, 2)):
            _completed(
                store, sample_scout, now, _vector_at_distance(distance),
                summary=f"d={distance}", offset_minutes=minutes,
            )

        ranked = store.rank_similar([1.0, 0.0], top_k=2)

        assert [r.execution.summary for r in ranked] == ["d=0.1", "d=0.2"]
        assert ranked[0].distance == pytest.approx(0.1)
        assert ranked[1].distance == pytest.approx(0.2)
        assert ranked[0].similarity == pytest.approx(0.9)

    def test_matches_full_scan(self, store, make_scout, now):
        scouts = [store.save_scout(make_scout(owner_id=f"owner-{i % 2}")) for i in range(4)]
        vectors = [[1.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.5, 0.5, 0.0], [0.0, 0.0, 1.0]]
        for i, (scout, vector) in enumerate(zip(scouts, vectors)):
            _completed(store, scout, now, vector, offset_minutes=i)
            _completed(store, scout, now, vector, offset_minutes=10 + i)

        query = [0.9, 0.1, 0.0]
        expected = rank_by_similarity(query, store.list_ranking_candidates(), top_k=5)
        actual = store.rank_similar(query, top_k=5)

        assert [r.execution.id for r in actual] == [r.execution.id for r in expected]
        assert [r.distance for r in actual] == [r.distance for r in expected]

    def test_filters_by_owner_and_scout(self, store, make_scout, now):
        mine = store.save_scout(make_scout(owner_id="owner-1"))
        theirs = store.save_scout(make_scout(owner_id="owner-2"))
        own_execution = _completed(store, mine, now, [1.0, 0.0])
        _completed(store, theirs, now, [1.0, 0.0])

        by_owner = store.rank_similar([1.0, 0.0], owner_id="owner-1")
        by_scout = store.rank_similar([1.0, 0.0], scout_id=theirs.id)

        assert [r.execution.id for r in by_owner] == [own_execution.id]
        assert len(by_scout) == 1
        assert by_scout[0].execution.scout_id == theirs.id

    def test_identical_vector_ranks_first_with_zero_distance(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        _completed(store, sample_scout, now, [0.3, 0.4, 0.5], summary="other", offset_minutes=1)
        _completed(store, sample_scout, now, [0.2, 0.9, 0.1], summary="match")

        ranked = store.rank_similar([0.2, 0.9, 0.1], top_k=1)

        assert ranked[0].execution.summary == "match"
        assert ranked[0].distance == 0.0
        assert ranked[0].similarity == 1.0

    def test_dimension_mismatch_raises(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        _completed(store, sample_scout, now, [1.0, 0.0, 0.0])

        with pytest.raises(DimensionMismatchError):
            store.rank_similar([1.0, 0.0])

    def test_incomplete_executions_are_not_candidates(self, store, sample_scout, now):
        store.save_scout(sample_scout)
        store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)

        assert store.list_ranking_candidates() == []
        assert store.rank_similar([1.0, 0.0]) == []


class TestInMemoryPersistence:
    """Tests for the JSON file backing of the in-memory store."""

    def test_reload_from_file(self, tmp_path, sample_scout, now):
        path = tmp_path / "store.json"
        store = InMemoryExecutionStore(storage_path=path)
        store.save_scout(sample_scout)
        execution = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)
        store.append_step(execution.id, StepKind.THINK, {"action": "search"}, now)

        reloaded = InMemoryExecutionStore(storage_path=path)

        assert reloaded.get_scout(sample_scout.id).last_run_at == now
        assert reloaded.get_execution(execution.id).status == ExecutionStatus.RUNNING
        assert len(reloaded.list_steps(execution.id)) == 1

    def test_failed_save_leaves_claim_unapplied(self, tmp_path, sample_scout, now):
        path = tmp_path / "store.json"
        store = InMemoryExecutionStore(storage_path=path)
        store.save_scout(sample_scout)

        with patch("scout_engine.store.memory.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StoreError):
                store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)

        assert store.list_executions(sample_scout.id) == []
        assert store.get_scout(sample_scout.id).last_run_at is None
        # The scout can still be claimed once the disk recovers
        assert store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None) is not None

    def test_failed_save_leaves_transition_unapplied(self, tmp_path, sample_scout, now):
        path = tmp_path / "store.json"
        store = InMemoryExecutionStore(storage_path=path)
        store.save_scout(sample_scout)
        execution = store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)

        with patch("scout_engine.store.memory.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StoreError):
                store.append_step(execution.id, StepKind.THINK, {"action": "search"}, now)
            with pytest.raises(StoreError):
                store.fail_execution(execution.id, "boom", now)
            with pytest.raises(StoreError):
                store.reap_stuck_executions(now + timedelta(minutes=10), now, "timed out")

        assert store.list_steps(execution.id) == []
        stored = store.get_execution(execution.id)
        assert stored.status == ExecutionStatus.RUNNING
        assert stored.error_message is None
        reloaded = InMemoryExecutionStore(storage_path=path)
        assert reloaded.get_execution(execution.id).status == ExecutionStatus.RUNNING
        assert reloaded.list_steps(execution.id) == []


class TestSQLiteConcurrency:
    """Claims from parallel threads against one database file."""

    def test_parallel_claims_create_one_execution(self, sqlite_store, sample_scout, now):
        sqlite_store.save_scout(sample_scout)
        workers = 8
        barrier = threading.Barrier(workers)

        def claim(_):
            barrier.wait()
            return sqlite_store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(claim, range(workers)))

        claimed = [r for r in results if r is not None]
        assert len(claimed) == 1
        assert len(sqlite_store.list_executions(sample_scout.id)) == 1

    def test_parallel_acquire_hands_off_once(self, sqlite_store, sample_scout, now):
        sqlite_store.save_scout(sample_scout)
        execution = sqlite_store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)
        workers = 8
        barrier = threading.Barrier(workers)

        def acquire(i):
            barrier.wait()
            return sqlite_store.acquire_execution(execution.id, f"worker-{i}", now)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(acquire, range(workers)))

        acquired = [r for r in results if r is not None]
        assert len(acquired) == 1
        assert sqlite_store.get_execution(execution.id).worker_id == acquired[0].worker_id
