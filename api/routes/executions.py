"""Execution trigger endpoint."""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Request, Response

from api.schemas.executions import ExecutionRunResponse, RunStatus
from scout_engine.store.base import ExecutionNotFoundError, StoreError

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_token(expected: Optional[str], authorization: Optional[str]) -> None:
    if not expected:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip(), expected):
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")


@router.post("/executions/{execution_id}/run", response_model=ExecutionRunResponse)
async def run_execution(
    execution_id: str,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    authorization: Optional[str] = Header(default=None),
) -> ExecutionRunResponse:
    """
    Accept an execution hand-off from the scheduler.

    Returns 202 and runs the execution in the background when this
    delivery acquires it; 200 with status "ignored" for duplicate or
    late deliveries.
    """
    settings = request.app.state.settings
    _check_token(settings.scheduler.worker_token, authorization)

    trigger = request.app.state.trigger
    try:
        execution = trigger.accept(execution_id)
    except ExecutionNotFoundError:
        raise HTTPException(status_code=404, detail="Execution not found")
    except StoreError as e:
        logger.error(f"Store unavailable while accepting {execution_id}: {e}")
        raise HTTPException(status_code=503, detail="Execution store unavailable")

    if execution is None:
        return ExecutionRunResponse(
            execution_id=execution_id,
            status=RunStatus.IGNORED,
            detail="Execution already taken or finished",
        )

    background_tasks.add_task(trigger.run, execution)
    response.status_code = 202
    return ExecutionRunResponse(
        execution_id=execution.id,
        status=RunStatus.ACCEPTED,
        scout_id=execution.scout_id,
    )
