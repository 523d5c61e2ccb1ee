"""
Scout Engine - Execution Schemas

Models for one run of a scout, the ordered steps it records, and ranked
recall results.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from scout_engine.models.enums import ExecutionStatus, StepKind
from scout_engine.models.scout import ScoutSnapshot, utcnow


class ScoutExecution(BaseModel):
    """One timed run of a scout's agent loop."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    scout_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    summary: str = ""
    summary_embedding: Optional[list[float]] = None
    embedding_model: Optional[str] = None
    duration_ms: Optional[int] = None
    scout_snapshot: Optional[ScoutSnapshot] = None
    worker_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class ExecutionStep(BaseModel):
    """A single recorded think/search/read/summarize action. Append-only."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    execution_id: str
    sequence: int = Field(..., ge=1)
    kind: StepKind
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class RankedExecution(BaseModel):
    """A past execution ranked against a query embedding."""

    execution: ScoutExecution
    distance: float
    similarity: float
