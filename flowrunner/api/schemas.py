"""
Pydantic Schemas for API Request/Response Models.

Workflow definitions reuse the engine's authored-format models; execution
records are returned as the engine's ExecutionRecord model.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from flowrunner.engine.definition import WorkflowDefinition
from flowrunner.engine.state import ExecutionRecord


# ============================================================
# Workflow Schemas
# ============================================================

class WorkflowInspectResponse(BaseModel):
    """Result of compiling and validating a workflow definition."""
    node_count: int = Field(..., description="Number of nodes in the workflow")
    edge_count: int = Field(..., description="Number of edges, decision edges included")
    start_node: Optional[str] = Field(None, description="Node the run will start from")
    default_model: Optional[str] = None
    valid: bool
    problems: List[str] = Field(default_factory=list)
    mermaid_diagram: str = Field(..., description="Mermaid diagram of the workflow")


# ============================================================
# Run Schemas
# ============================================================

class RunRequest(BaseModel):
    """Request to run a workflow."""
    workflow: WorkflowDefinition = Field(..., description="The workflow to run")
    user_input: Optional[str] = Field(None, description="Input handed to the start node")

    class Config:
        json_schema_extra = {
            "example": {
                "workflow": {
                    "nodes": [
                        {"id": "START", "name": "Start", "nodeType": "start", "nextNodes": ["SUMMARY"]},
                        {
                            "id": "SUMMARY",
                            "name": "Summarize",
                            "nodeType": "agentic",
                            "userPrompt": "Summarize: {START.input}",
                            "nextNodes": ["END"],
                        },
                        {"id": "END", "name": "Done", "nodeType": "end"},
                    ],
                    "config": {"defaultModel": "llama3.2"},
                },
                "user_input": "FlowRunner walks authored workflows depth-first.",
            }
        }


class RunResponse(BaseModel):
    """Response after running a workflow."""
    execution: ExecutionRecord
    outputs: Dict[str, Any] = Field(default_factory=dict, description="Node id -> node output")


class StopResponse(BaseModel):
    """Response to a stop request."""
    stopped: bool = Field(..., description="Whether a running execution was stopped")
    execution: Optional[ExecutionRecord] = None


# ============================================================
# Model Schemas
# ============================================================

class ModelListResponse(BaseModel):
    """Response listing the models available on the inference service."""
    models: List[str]
    total: int


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int
