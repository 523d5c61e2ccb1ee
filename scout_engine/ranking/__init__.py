"""Similarity ranking of past execution summaries."""

from scout_engine.ranking.similarity import (
    DimensionMismatchError,
    cosine_distance,
    rank_by_similarity,
)

__all__ = ["DimensionMismatchError", "cosine_distance", "rank_by_similarity"]
