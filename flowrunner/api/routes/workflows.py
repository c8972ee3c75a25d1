"""
Workflow API Routes.

Endpoints for checking workflow definitions before running them.
"""

from typing import Any, Dict
from fastapi import APIRouter
import logging

from flowrunner.api.schemas import ErrorResponse, WorkflowInspectResponse
from flowrunner.engine.definition import WorkflowDefinition
from flowrunner.engine.graph import WorkflowGraph
from flowrunner.workflows.sentiment_triage import SENTIMENT_TRIAGE


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["Workflows"])


@router.post(
    "/inspect",
    response_model=WorkflowInspectResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid workflow definition"}},
)
async def inspect_workflow(definition: WorkflowDefinition) -> WorkflowInspectResponse:
    """
    Compile a workflow definition and report structural problems.

    Problems such as unreachable nodes do not prevent a run; they are
    reported so the author can fix them.
    """
    graph = WorkflowGraph.from_definition(definition)
    problems = graph.validate()
    start = graph.find_start_node()

    logger.info(f"Inspected workflow with {len(graph.nodes)} nodes, {len(problems)} problems")

    return WorkflowInspectResponse(
        node_count=len(graph.nodes),
        edge_count=len(graph.edges),
        start_node=start.id if start else None,
        default_model=graph.default_model,
        valid=not problems,
        problems=problems,
        mermaid_diagram=graph.to_mermaid(),
    )


@router.get("/demo")
async def get_demo_workflow() -> Dict[str, Any]:
    """Get the built-in sentiment triage workflow definition."""
    return SENTIMENT_TRIAGE
