"""
Run API Routes.

Endpoints for executing workflows and controlling the current run.
"""

from fastapi import APIRouter, Depends, HTTPException
import logging

from flowrunner.api.dependencies import get_executor
from flowrunner.api.schemas import ErrorResponse, RunRequest, RunResponse, StopResponse
from flowrunner.engine.errors import RunInProgress, WorkflowError
from flowrunner.engine.executor import Executor
from flowrunner.engine.state import ExecutionRecord


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/runs", tags=["Runs"])


@router.post(
    "",
    response_model=RunResponse,
    responses={409: {"model": ErrorResponse, "description": "A run is already in progress"}},
)
async def run_workflow(
    request: RunRequest,
    executor: Executor = Depends(get_executor),
) -> RunResponse:
    """
    Execute a workflow to completion.

    Fatal run errors (missing start node, inference failures, ...) do not
    produce an HTTP error: the returned execution has status `error` and
    its log ends with the failure.
    """
    try:
        record = await executor.start(request.workflow, request.user_input)
    except RunInProgress:
        raise
    except WorkflowError as e:
        logger.warning(f"Run failed: {e}")
        record = executor.current_execution

    return RunResponse(execution=record, outputs=executor.outputs)


@router.get(
    "/current",
    response_model=ExecutionRecord,
    responses={404: {"model": ErrorResponse}},
)
async def get_current_run(executor: Executor = Depends(get_executor)) -> ExecutionRecord:
    """Get the current (or most recent) execution record."""
    record = executor.current_execution
    if record is None:
        raise HTTPException(status_code=404, detail="No execution has been started")
    return record


@router.post("/stop", response_model=StopResponse)
async def stop_run(executor: Executor = Depends(get_executor)) -> StopResponse:
    """Stop the current run before its next node is dispatched."""
    was_running = executor.is_running
    executor.stop()
    if was_running:
        logger.info("Stopped current run")
    return StopResponse(stopped=was_running, execution=executor.current_execution)
