"""
Exceptions raised by the workflow engine.

Only fatal conditions are exceptions. Unsupported conditions, unresolved
variables and decisions without a connected edge are reported as log
entries and never interrupt a run.
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""


class GraphDefinitionError(WorkflowError):
    """The authored workflow definition cannot be compiled into a graph."""


class UnknownNodeKind(GraphDefinitionError):
    """A node declares a kind outside the supported set."""

    def __init__(self, node_id: str, kind: str):
        self.node_id = node_id
        self.kind = kind
        super().__init__(f"Unknown node kind '{kind}' for node '{node_id}'")


class NodeNotFound(WorkflowError):
    """A node id is referenced but not present in the graph."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node '{node_id}' not found")


class MissingStartNode(WorkflowError):
    """The graph contains no node of kind start."""

    def __init__(self):
        super().__init__("No start node found in workflow")


class TraversalLimitExceeded(WorkflowError):
    """The run visited more nodes than allowed, usually because of a cycle."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            f"Maximum node visits ({limit}) exceeded - does the workflow contain a cycle?"
        )


class RunInProgress(WorkflowError):
    """A second run was started on an engine whose run is still active."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution '{execution_id}' is still running")


class InferenceError(WorkflowError):
    """The inference service failed to preload a model or generate text."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
