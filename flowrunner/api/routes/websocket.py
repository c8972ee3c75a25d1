"""
WebSocket Routes for Real-time Execution Streaming.

Streams execution log entries while a workflow runs.
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
import asyncio
import logging

from flowrunner.api.dependencies import get_executor
from flowrunner.engine.definition import WorkflowDefinition
from flowrunner.engine.errors import WorkflowError
from flowrunner.engine.executor import Executor
from flowrunner.engine.state import LogEntry


logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws/run")
async def websocket_run(websocket: WebSocket, executor: Executor = Depends(get_executor)):
    """
    WebSocket endpoint for real-time workflow execution.

    Connect and send the workflow to run. Log entries are pushed as the
    engine produces them; send a stop action at any time to stop the run.

    Message format (client -> server):
    ```json
    {"action": "start", "workflow": {"nodes": [...]}, "user_input": "hello"}
    {"action": "stop"}
    ```

    Message format (server -> client):
    ```json
    {"type": "started"}
    {"type": "log", "entry": {"kind": "node_start", "node_id": "START", ...}}
    {"type": "completed", "execution": {...}, "outputs": {...}, "error": null}
    ```
    """
    await websocket.accept()

    try:
        data = await websocket.receive_json()
        if data.get("action") != "start":
            await websocket.send_json({"type": "error", "error": "Expected 'start' action"})
            return

        try:
            definition = WorkflowDefinition.model_validate(data.get("workflow") or {})
        except ValidationError as e:
            await websocket.send_json({"type": "error", "error": f"Invalid workflow: {e}"})
            return

        if executor.is_running:
            await websocket.send_json({"type": "error", "error": "A run is already in progress"})
            return

        await _run_with_streaming(websocket, executor, definition, data.get("user_input"))

    except WebSocketDisconnect:
        logger.info("Client disconnected")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
        try:
            await websocket.send_json({"type": "error", "error": str(e)})
        except Exception:
            pass


async def _run_with_streaming(
    websocket: WebSocket,
    executor: Executor,
    definition: WorkflowDefinition,
    user_input: Optional[str],
):
    """Run the workflow, forwarding each log entry as soon as it is appended."""
    queue: "asyncio.Queue[LogEntry]" = asyncio.Queue()
    executor.set_log_callback(queue.put_nowait)

    await websocket.send_json({"type": "started"})
    run_task = asyncio.create_task(executor.start(definition, user_input))
    run_task.add_done_callback(_log_run_result)
    commands = asyncio.create_task(_receive_commands(websocket, executor))

    try:
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({getter, run_task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                await _send_entry(websocket, getter.result())
                continue
            getter.cancel()
            break

        while not queue.empty():
            await _send_entry(websocket, queue.get_nowait())

        error: Optional[str] = None
        try:
            run_task.result()
        except WorkflowError as e:
            error = str(e)

        record = executor.current_execution
        await websocket.send_json({
            "type": "completed",
            "execution": record.to_dict() if record else None,
            "outputs": executor.outputs,
            "error": error,
        })
    finally:
        commands.cancel()
        if not run_task.done():
            executor.stop()
        executor.set_log_callback(None)


def _log_run_result(task: "asyncio.Task") -> None:
    """Retrieve the run outcome so a run outliving its client is not reported as unhandled."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.info(f"Streamed run ended with error: {error}")


async def _send_entry(websocket: WebSocket, entry: LogEntry):
    message: Dict[str, Any] = {"type": "log", "entry": entry.to_dict()}
    await websocket.send_json(message)


async def _receive_commands(websocket: WebSocket, executor: Executor):
    """Handle client messages while the run is in progress."""
    try:
        while True:
            data = await websocket.receive_json()
            if data.get("action") == "stop":
                executor.stop()
            else:
                logger.debug(f"Ignoring WebSocket message during run: {data}")
    except WebSocketDisconnect:
        logger.info("Client disconnected during run, stopping it")
        executor.stop()
