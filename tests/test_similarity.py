"""Tests for cosine-distance ranking."""

from datetime import datetime, timedelta, timezone

import pytest

from scout_engine.models.enums import ExecutionStatus
from scout_engine.models.execution import ScoutExecution
from scout_engine.ranking.similarity import (
    DimensionMismatchError,
    cosine_distance,
    rank_by_similarity,
)


BASE_TIME = datetime(2026, 9, 1, tzinfo=timezone.utc)


def _execution(execution_id, embedding, minutes=0):
    return ScoutExecution(
        id=execution_id,
        scout_id="scout-1",
        status=ExecutionStatus.COMPLETED,
        summary=f"summary {execution_id}",
        summary_embedding=embedding,
        completed_at=BASE_TIME + timedelta(minutes=minutes),
    )


class TestCosineDistance:
    """Tests for the distance function."""

    def test_identical_vectors_have_zero_distance(self):
        vector = [0.1, 0.7, 0.3, 0.2]
        assert cosine_distance(vector, vector) == 0.0

    def test_orthogonal_vectors(self):
        assert cosine_distance([1.0, 0.0], [0.0, 1.0]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_distance([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(2.0)

    def test_zero_vector_is_maximally_uninformative(self):
        assert cosine_distance([0.0, 0.0], [1.0, 0.0]) == 1.0

    def test_dimension_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError) as exc_info:
            cosine_distance([1.0, 0.0, 0.0], [1.0, 0.0])
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2


class TestRankBySimilarity:
    """Tests for the full-scan ranker."""

    def test_orders_by_distance(self):
        query = [1.0, 0.0]
        far = _execution("far", [0.0, 1.0])
        near = _execution("near", [0.9, 0.1])
        exact = _execution("exact", [2.0, 0.0])

        ranked = rank_by_similarity(query, [far, near, exact], top_k=3)

        assert [r.execution.id for r in ranked] == ["exact", "near", "far"]
        assert ranked[0].distance == 0.0
        assert ranked[0].similarity == 1.0

    def test_ties_prefer_most_recent_then_id(self):
        query = [1.0, 0.0]
        older = _execution("a-older", [1.0, 0.0], minutes=0)
        newer = _execution("z-newer", [1.0, 0.0], minutes=10)
        same_time_b = _execution("b", [1.0, 0.0], minutes=5)
        same_time_a = _execution("a", [1.0, 0.0], minutes=5)

        ranked = rank_by_similarity(query, [older, same_time_b, newer, same_time_a], top_k=4)

        assert [r.execution.id for r in ranked] == ["z-newer", "a", "b", "a-older"]

    def test_top_k_limits_results(self):
        candidates = [_execution(str(i), [1.0, float(i)]) for i in range(10)]
        assert len(rank_by_similarity([1.0, 0.0], candidates, top_k=3)) == 3

    def test_skips_missing_embeddings(self):
        ranked = rank_by_similarity([1.0, 0.0], [_execution("none", None)], top_k=5)
        assert ranked == []

    def test_mismatched_stored_vector_raises(self):
        with pytest.raises(DimensionMismatchError):
            rank_by_similarity([1.0, 0.0], [_execution("bad", [1.0, 0.0, 0.0])], top_k=5)
