"""Data models for the scout engine."""

from scout_engine.models.enums import (
    AgentAction,
    ExecutionStatus,
    FirecrawlKeyStatus,
    ScoutFrequency,
    StepKind,
)
from scout_engine.models.execution import ExecutionStep, RankedExecution, ScoutExecution
from scout_engine.models.llm import AgentDecision, LLMResponse, SummaryUpdate
from scout_engine.models.preferences import UserPreferences
from scout_engine.models.scheduler import DispatchReport, JobRun, ReapReport
from scout_engine.models.scout import Scout, ScoutLocation, ScoutSnapshot, utcnow
from scout_engine.models.search import CreditUsage, SearchResult, SourceFinding

__all__ = [
    "AgentAction",
    "AgentDecision",
    "CreditUsage",
    "DispatchReport",
    "ExecutionStatus",
    "ExecutionStep",
    "FirecrawlKeyStatus",
    "JobRun",
    "LLMResponse",
    "RankedExecution",
    "ReapReport",
    "Scout",
    "ScoutExecution",
    "ScoutFrequency",
    "ScoutLocation",
    "ScoutSnapshot",
    "SearchResult",
    "SourceFinding",
    "StepKind",
    "SummaryUpdate",
    "UserPreferences",
    "utcnow",
]
