"""
Scout Engine - Enumerations

Centralized enum definitions shared by the store, engine and scheduler.
"""

from enum import Enum


class ScoutFrequency(str, Enum):
    """How often a scout should run."""

    HOURLY = "hourly"
    EVERY_3_DAYS = "every_3_days"
    WEEKLY = "weekly"


class ExecutionStatus(str, Enum):
    """Lifecycle status of a scout execution."""

    PENDING = "pending"  # Created, not yet picked up
    RUNNING = "running"  # Claimed; agent loop in flight
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class StepKind(str, Enum):
    """Kinds of recorded agent loop steps."""

    THINK = "think"
    SEARCH = "search"
    READ = "read"
    SUMMARIZE = "summarize"


class AgentAction(str, Enum):
    """Actions the agent may choose during a think step."""

    SEARCH = "search"
    READ = "read"
    FINISH = "finish"


class FirecrawlKeyStatus(str, Enum):
    """Provisioning status of a user's search backend key."""

    PENDING = "pending"
    ACTIVE = "active"
    INVALID = "invalid"
