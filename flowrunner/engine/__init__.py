"""
Engine package - Core workflow execution components.
"""

from flowrunner.engine.errors import (
    WorkflowError,
    GraphDefinitionError,
    UnknownNodeKind,
    NodeNotFound,
    MissingStartNode,
    TraversalLimitExceeded,
    RunInProgress,
    InferenceError,
)
from flowrunner.engine.node import NodeKind, DecisionRule, WorkflowNode
from flowrunner.engine.graph import Edge, WorkflowGraph
from flowrunner.engine.state import ExecutionRecord, ExecutionStatus, LogEntry, LogKind, OutputStore
from flowrunner.engine.executor import Executor, execute_workflow

__all__ = [
    "WorkflowError",
    "GraphDefinitionError",
    "UnknownNodeKind",
    "NodeNotFound",
    "MissingStartNode",
    "TraversalLimitExceeded",
    "RunInProgress",
    "InferenceError",
    "NodeKind",
    "DecisionRule",
    "WorkflowNode",
    "Edge",
    "WorkflowGraph",
    "ExecutionRecord",
    "ExecutionStatus",
    "LogEntry",
    "LogKind",
    "OutputStore",
    "Executor",
    "execute_workflow",
]
