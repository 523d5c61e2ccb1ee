"""Similarity recall over past execution summaries."""

from scout_engine.recall.service import RecallService

__all__ = ["RecallService"]
