"""Bounded think -> search -> read -> summarize agent loop."""

from scout_engine.agent.guard import LoopGuard, normalize_query, normalize_url
from scout_engine.agent.loop import AgentLoopEngine, StepTimeoutError

__all__ = [
    "AgentLoopEngine",
    "LoopGuard",
    "StepTimeoutError",
    "normalize_query",
    "normalize_url",
]
