"""
Embedding similarity ranking.

Ranks stored execution summaries against a query embedding by cosine
distance. This full-scan implementation is the reference ordering; a
store with native vector support must return the same order.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

import numpy as np

from scout_engine.models.execution import RankedExecution, ScoutExecution


# Distances are rounded so identical vectors score exactly 0.0 and
# floating-point noise cannot reorder otherwise-equal candidates.
DISTANCE_PRECISION = 12

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class DimensionMismatchError(ValueError):
    """Vectors of different dimensions were compared."""

    def __init__(self, expected: int, actual: int, context: str = ""):
        self.expected = expected
        self.actual = actual
        suffix = f" ({context})" if context else ""
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}{suffix}. "
            "Re-embed stored summaries or partition search by embedding model."
        )


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine distance between two vectors (1 - cosine similarity).

    Args:
        a: First vector
        b: Second vector

    Returns:
        Distance in [0, 2]; 1.0 when either vector has zero norm

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 1.0

    similarity = float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))
    distance = round(1.0 - similarity, DISTANCE_PRECISION)
    # round() can yield -0.0
    return distance if distance > 0 else 0.0


def rank_by_similarity(
    query: Sequence[float],
    candidates: Iterable[ScoutExecution],
    top_k: int = 5,
) -> list[RankedExecution]:
    """
    Rank completed executions by similarity to a query embedding.

    Ordering: ascending cosine distance, ties broken by most recent
    completed_at, then by execution id so the order is fully stable.
    Candidates without an embedding are ignored.

    Args:
        query: Query embedding
        candidates: Executions to rank
        top_k: Number of results to return

    Returns:
        Top-k RankedExecution list

    Raises:
        DimensionMismatchError: If any stored vector differs in dimension
    """
    if top_k <= 0:
        return []

    scored: list[tuple[float, ScoutExecution]] = []
    for execution in candidates:
        if execution.summary_embedding is None:
            continue
        if len(execution.summary_embedding) != len(query):
            raise DimensionMismatchError(
                len(query),
                len(execution.summary_embedding),
                context=f"execution {execution.id}",
            )
        scored.append((cosine_distance(query, execution.summary_embedding), execution))

    scored.sort(key=lambda item: ranking_key(item[0], item[1].completed_at, item[1].id))

    return [
        RankedExecution(execution=execution, distance=distance, similarity=1.0 - distance)
        for distance, execution in scored[:top_k]
    ]


def ranking_key(
    distance: float,
    completed_at: Optional[datetime],
    execution_id: str,
) -> tuple[float, float, str]:
    """Sort key shared by every ranking implementation."""
    completed = completed_at or _EPOCH
    return (distance, -completed.timestamp(), execution_id)
