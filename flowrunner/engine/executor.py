"""
Async Workflow Executor.

The executor runs one workflow at a time: it walks the graph depth-first
from the start node, dispatches each node by kind, stores node outputs for
later variable references, and appends to an execution log that observers
receive entry by entry while the run is in progress.
"""

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union
from dataclasses import dataclass
from datetime import datetime
from copy import deepcopy
import asyncio
import json
import logging

from flowrunner.config import settings
from flowrunner.engine.conditions import evaluate
from flowrunner.engine.definition import WorkflowDefinition
from flowrunner.engine.errors import (
    InferenceError,
    MissingStartNode,
    RunInProgress,
    TraversalLimitExceeded,
)
from flowrunner.engine.graph import WorkflowGraph
from flowrunner.engine.node import NodeKind, WorkflowNode
from flowrunner.engine.state import (
    ExecutionRecord,
    ExecutionStatus,
    LogEntry,
    LogKind,
    OutputStore,
)
from flowrunner.engine.variables import resolve
from flowrunner.inference.base import InferenceClient


# Configure logging
logger = logging.getLogger(__name__)

LogCallback = Callable[[LogEntry], None]

SYSTEM = ("SYSTEM", "System")
INFERENCE = ("OLLAMA", "Ollama")
USER = ("USER", "User")


def _now() -> str:
    return datetime.now().isoformat()


def parse_model_output(text: str) -> Any:
    """
    Parse model output as JSON, tolerating markdown code fences.

    Falls back to {"response": text, "raw": True} when the text is not JSON.
    """
    content = text.strip()
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]
    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]
    try:
        return json.loads(content.strip())
    except ValueError:
        return {"response": text, "raw": True}


@dataclass
class StepResult:
    """
    Output of one node dispatch.

    successors is None when traversal should follow the node's normal
    edges; decision nodes set it to the branch they picked (or nothing).
    """
    output: Any
    successors: Optional[List[str]] = None


# Node kind -> handler method. Every kind must be covered.
_HANDLERS: Dict[NodeKind, str] = {
    NodeKind.START: "_execute_start",
    NodeKind.AGENTIC: "_execute_agentic",
    NodeKind.DECISION: "_execute_decision",
    NodeKind.MEMORY: "_execute_memory",
    NodeKind.END: "_execute_end",
}

_unhandled = set(NodeKind) - set(_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No executor handler for node kinds: {sorted(k.value for k in _unhandled)}")


class Executor:
    """
    Async workflow executor.

    Runs a graph with an optional user input, handling:
    - Model preload before the first node
    - Depth-first traversal with an explicit stack
    - Decision branching and {node.field} variable references
    - Cooperative stop between nodes
    - Live execution logging through a callback

    Usage:
        executor = Executor(OllamaClient(), on_log=print)
        record = await executor.start(graph, "hello")
    """

    def __init__(
        self,
        client: InferenceClient,
        default_model: Optional[str] = None,
        max_node_visits: Optional[int] = None,
        on_log: Optional[LogCallback] = None,
    ):
        """
        Initialize the executor.

        Args:
            client: Inference client used for preload and generation
            default_model: Model used when the graph does not name one
            max_node_visits: Upper bound on dispatched nodes per run
            on_log: Optional callback for each log entry (for WebSocket streaming)
        """
        self.client = client
        self.default_model = default_model if default_model is not None else settings.DEFAULT_MODEL
        self.max_node_visits = max_node_visits or settings.MAX_NODE_VISITS
        self.on_log = on_log

        self._execution: Optional[ExecutionRecord] = None
        self._outputs = OutputStore()

    def set_log_callback(self, callback: Optional[LogCallback]) -> None:
        self.on_log = callback

    @property
    def current_execution(self) -> Optional[ExecutionRecord]:
        """A snapshot of the current (or last) execution record."""
        return self._execution.snapshot() if self._execution else None

    @property
    def outputs(self) -> Dict[str, Any]:
        """A snapshot of the node outputs of the current (or last) run."""
        return self._outputs.snapshot()

    @property
    def is_running(self) -> bool:
        return self._execution is not None and self._execution.is_running

    def stop(self) -> None:
        """Stop the run before the next node is dispatched."""
        if self._execution and self._execution.is_running:
            self._execution.finish(ExecutionStatus.STOPPED)
            self._log(*SYSTEM, LogKind.INFO, "Execution stopped by user")

    async def start(
        self,
        graph: Union[WorkflowGraph, WorkflowDefinition, Mapping[str, Any]],
        user_input: Optional[str] = None,
    ) -> ExecutionRecord:
        """
        Execute a workflow.

        Args:
            graph: A compiled graph, or an authored definition to compile
            user_input: Text made available as {START_ID.input}

        Returns:
            Snapshot of the finished execution record

        Raises:
            RunInProgress: if this executor is already running a workflow
            WorkflowError: for fatal run errors, after the record is marked error
        """
        if self.is_running:
            raise RunInProgress(self._execution.id)

        self._outputs.clear()
        self._execution = ExecutionRecord(user_input=user_input)
        logger.info(f"Starting execution {self._execution.id}")

        if user_input:
            self._log(*USER, LogKind.USER_INPUT, user_input, input={"user_input": user_input})
        self._log(*SYSTEM, LogKind.INFO, "Starting workflow execution")

        try:
            if not isinstance(graph, WorkflowGraph):
                graph = WorkflowGraph.from_definition(graph)

            model = graph.default_model or self.default_model
            if model:
                await self._preload(model)

            start_node = graph.find_start_node()
            if start_node is None:
                raise MissingStartNode()
            starts = graph.start_nodes()
            if len(starts) > 1:
                self._log(
                    *SYSTEM, LogKind.WARNING,
                    f"Workflow has {len(starts)} start nodes; running from {start_node.id} only",
                )

            if user_input:
                self._outputs.store(start_node.id, {"input": user_input, "timestamp": _now()})

            await self._traverse(graph, start_node.id)

        except asyncio.CancelledError:
            logger.warning(f"Execution {self._execution.id} was cancelled")
            if self._execution.is_running:
                self._execution.finish(ExecutionStatus.STOPPED)
                self._log(*SYSTEM, LogKind.WARNING, "Execution cancelled")
            raise
        except Exception as e:
            logger.exception(f"Execution {self._execution.id} failed: {e}")
            if self._execution.is_running:
                self._execution.finish(ExecutionStatus.ERROR, error=str(e))
            else:
                self._execution.error = str(e)
            self._log(*SYSTEM, LogKind.ERROR, f"Execution failed: {e}")
            raise

        if self._execution.is_running:
            self._execution.finish(ExecutionStatus.COMPLETED)
            self._log(*SYSTEM, LogKind.SUCCESS, "Workflow completed successfully")

        return self._execution.snapshot()

    async def _preload(self, model: str) -> None:
        self._log(*INFERENCE, LogKind.INFO, f"Loading model {model} into memory...")
        try:
            await self.client.preload_model(model)
        except Exception as e:
            self._log(*INFERENCE, LogKind.ERROR, f"Failed to load model: {e}")
            if isinstance(e, InferenceError):
                raise
            raise InferenceError(str(e)) from e
        self._log(*INFERENCE, LogKind.INFO, "Model loaded")

    async def _traverse(self, graph: WorkflowGraph, start_id: str) -> None:
        """Depth-first walk; the loop condition is the only stop checkpoint."""
        stack = [start_id]
        visits = 0

        while stack and self._execution.is_running:
            node = graph.get_node(stack.pop())

            visits += 1
            if visits > self.max_node_visits:
                raise TraversalLimitExceeded(self.max_node_visits)

            successors = await self._execute_node(graph, node)
            stack.extend(reversed(successors))

    async def _execute_node(self, graph: WorkflowGraph, node: WorkflowNode) -> List[str]:
        """Dispatch one node, store its output and return the nodes to visit next."""
        self._execution.current_node_id = node.id
        self._log(node.id, node.label, LogKind.NODE_START, f"Running {node.id} [{node.label}]")

        try:
            handler: Callable[[WorkflowGraph, WorkflowNode], Awaitable[StepResult]] = getattr(self, _HANDLERS[node.kind])
            step = await handler(graph, node)
        except Exception as e:
            self._log(node.id, node.label, LogKind.ERROR, f"Error in {node.id} [{node.label}]: {e}")
            raise

        self._outputs.store(node.id, step.output)
        self._log(
            node.id, node.label, LogKind.NODE_COMPLETE,
            f"{node.id} [{node.label}] completed", output=step.output,
        )

        if step.successors is None:
            return [edge.target for edge in graph.normal_edges(node.id)]
        return step.successors

    # ------------------------------------------------------------
    # Node handlers
    # ------------------------------------------------------------

    async def _execute_start(self, graph: WorkflowGraph, node: WorkflowNode) -> StepResult:
        output = self._outputs.get(node.id) or {"status": "started", "timestamp": _now()}
        self._log(node.id, node.label, LogKind.INFO, f"{node.id} [{node.label}] - start node processed")
        return StepResult(output)

    async def _execute_agentic(self, graph: WorkflowGraph, node: WorkflowNode) -> StepResult:
        if not node.has_prompts:
            self._log(node.id, node.label, LogKind.INFO, f"{node.id} [{node.label}] - no prompts defined, skipping")
            return StepResult({"status": "skipped", "reason": "no_prompts"})

        model = graph.default_model or self.default_model
        if not model:
            raise InferenceError("No generation model configured for this workflow")

        system_prompt = self._resolve(node, node.system_prompt)
        user_prompt = self._resolve(node, node.user_prompt)

        self._log(
            node.id, node.label, LogKind.INFO,
            f"{node.id} [{node.label}] - sending request to {model}...",
            input={"system_prompt": system_prompt, "user_prompt": user_prompt},
        )
        try:
            text = await self.client.generate(model, system_prompt, user_prompt, node.output_format or None)
        except Exception as e:
            if isinstance(e, InferenceError):
                raise
            raise InferenceError(str(e)) from e

        output = parse_model_output(text)
        self._log(node.id, node.label, LogKind.SUCCESS, f"{node.id} [{node.label}] - model response received", output=output)
        return StepResult(output)

    async def _execute_decision(self, graph: WorkflowGraph, node: WorkflowNode) -> StepResult:
        self._log(node.id, node.label, LogKind.INFO, f"{node.id} [{node.label}] - evaluating decisions...")

        if not node.decisions:
            self._log(node.id, node.label, LogKind.INFO, f"{node.id} [{node.label}] - decision node has no rules")
            return StepResult({"status": "no_decisions", "timestamp": _now()}, successors=[])

        routes = graph.decision_edges(node.id)
        for rule in node.decisions:
            self._log(node.id, node.label, LogKind.INFO, f"{node.id} [{node.label}] - testing condition: {rule.condition}")

            result = evaluate(rule.condition, self._outputs)
            self._log_unresolved(node, result.unresolved)
            if not result.supported:
                self._log(
                    node.id, node.label, LogKind.ERROR,
                    f"Unsupported condition: {rule.condition} -> {result.resolved}",
                )
                continue
            if not result:
                continue

            self._log(node.id, node.label, LogKind.SUCCESS, f"{node.id} [{node.label}] - decision taken: {rule.label}")

            edge = routes.get(rule.id)
            if edge is None:
                self._log(
                    node.id, node.label, LogKind.INFO,
                    f"{node.id} [{node.label}] - decision {rule.label} has no connected node",
                )
                return StepResult(
                    {"decision": rule.label, "targetNode": None, "timestamp": _now()},
                    successors=[],
                )
            return StepResult(
                {"decision": rule.label, "targetNode": edge.target, "timestamp": _now()},
                successors=[edge.target],
            )

        self._log(node.id, node.label, LogKind.WARNING, f"{node.id} [{node.label}] - no decision condition was met")
        return StepResult({"status": "no_decision", "timestamp": _now()}, successors=[])

    async def _execute_memory(self, graph: WorkflowGraph, node: WorkflowNode) -> StepResult:
        context = self._resolve(node, node.context)
        self._log(node.id, node.label, LogKind.DATABASE, f"{node.id} [{node.label}] - storing context: {context}")
        output = {"context": context, "stored": True, "timestamp": _now()}
        self._log(node.id, node.label, LogKind.DATABASE, f"{node.id} [{node.label}] - context stored", output=output)
        return StepResult(output)

    async def _execute_end(self, graph: WorkflowGraph, node: WorkflowNode) -> StepResult:
        self._log(node.id, node.label, LogKind.INFO, f"{node.id} [{node.label}] - end node reached")
        return StepResult({
            "status": "completed",
            "timestamp": _now(),
            "finalNode": True,
            "message": "Workflow finished",
        })

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _resolve(self, node: WorkflowNode, template: str) -> str:
        resolution = resolve(template, self._outputs)
        self._log_unresolved(node, resolution.unresolved)
        return resolution.text

    def _log_unresolved(self, node: WorkflowNode, tokens: List[str]) -> None:
        for token in tokens:
            self._log(
                node.id, node.label, LogKind.INFO,
                f"Variable {token} could not be resolved and was left unchanged",
            )

    def _log(
        self,
        node_id: str,
        node_name: str,
        kind: LogKind,
        message: str,
        input: Any = None,
        output: Any = None,
    ) -> None:
        """Append a log entry and push it to the log callback."""
        entry = LogEntry(
            node_id=node_id,
            node_name=node_name,
            kind=kind,
            message=message,
            input=deepcopy(input),
            output=deepcopy(output),
        )
        self._execution.log.append(entry)

        level = {LogKind.ERROR: logging.ERROR, LogKind.WARNING: logging.WARNING}.get(kind, logging.INFO)
        logger.log(level, f"[{kind.value.upper()}] {node_name} ({node_id}): {message}")

        if self.on_log:
            try:
                self.on_log(entry)
            except Exception as e:
                logger.warning(f"Log callback failed: {e}")


async def execute_workflow(
    graph: Union[WorkflowGraph, WorkflowDefinition, Mapping[str, Any]],
    client: InferenceClient,
    user_input: Optional[str] = None,
    on_log: Optional[LogCallback] = None,
) -> ExecutionRecord:
    """
    Convenience function to execute a workflow once.

    Args:
        graph: The workflow graph or authored definition
        client: Inference client
        user_input: Optional user input
        on_log: Optional log callback

    Returns:
        ExecutionRecord
    """
    executor = Executor(client, on_log=on_log)
    return await executor.start(graph, user_input)
