"""Execution trigger API schemas."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class RunStatus(str, Enum):
    """Outcome of a trigger delivery."""
    ACCEPTED = "accepted"
    IGNORED = "ignored"


class ExecutionRunResponse(BaseModel):
    """Response to POST /api/executions/{id}/run."""
    execution_id: str
    status: RunStatus
    scout_id: Optional[str] = None
    detail: str = ""
