"""API schema modules."""

from api.schemas.executions import ExecutionRunResponse, RunStatus

__all__ = [
    "ExecutionRunResponse",
    "RunStatus",
]
