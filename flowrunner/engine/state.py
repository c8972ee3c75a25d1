"""
Run State for the Workflow Engine.

The execution record and the output store belong to the executor running
them. Observers (log callbacks, the API) only ever receive copies.
"""

from typing import Any, Dict, Iterator, List, Mapping, Optional
from pydantic import BaseModel, Field
from datetime import datetime
from copy import deepcopy
from enum import Enum
import uuid


class ExecutionStatus(str, Enum):
    """Status of a workflow execution."""
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    STOPPED = "stopped"


class LogKind(str, Enum):
    """Kinds of execution log entries."""
    INFO = "info"
    ERROR = "error"
    SUCCESS = "success"
    WARNING = "warning"
    NODE_START = "node_start"
    NODE_COMPLETE = "node_complete"
    USER_INPUT = "user_input"
    DATABASE = "database"


class LogEntry(BaseModel):
    """A single entry in the execution log."""

    timestamp: datetime = Field(default_factory=datetime.now)
    node_id: str
    node_name: str
    kind: LogKind
    message: str
    input: Optional[Any] = None
    output: Optional[Any] = None

    class Config:
        frozen = True

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class ExecutionRecord(BaseModel):
    """
    The record of one workflow run.

    Attributes:
        id: Unique execution id
        status: Current status; terminal once it leaves running
        current_node_id: Node being executed (or last executed)
        start_time / end_time: Wall-clock bounds of the run
        log: Append-only, insertion-ordered log entries
        user_input: Input the run was started with
        error: Message of the fatal error, if the run failed
    """

    id: str = Field(default_factory=lambda: f"exec_{uuid.uuid4().hex[:12]}")
    status: ExecutionStatus = ExecutionStatus.RUNNING
    current_node_id: Optional[str] = None
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    log: List[LogEntry] = Field(default_factory=list)
    user_input: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.status == ExecutionStatus.RUNNING

    def finish(self, status: ExecutionStatus, error: Optional[str] = None) -> None:
        """Move to a terminal status."""
        self.status = status
        self.end_time = datetime.now()
        if error is not None:
            self.error = error

    def snapshot(self) -> "ExecutionRecord":
        """A deep copy safe to hand to observers."""
        return self.model_copy(deep=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class OutputStore(Mapping[str, Any]):
    """
    Per-run mapping of node id -> node output.

    Read access goes through the Mapping interface; only the owning
    executor writes. Writing a node twice overwrites the earlier output.
    """

    def __init__(self):
        self._outputs: Dict[str, Any] = {}

    def __getitem__(self, node_id: str) -> Any:
        return self._outputs[node_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._outputs)

    def __len__(self) -> int:
        return len(self._outputs)

    def store(self, node_id: str, output: Any) -> None:
        self._outputs[node_id] = output

    def clear(self) -> None:
        self._outputs.clear()

    def snapshot(self) -> Dict[str, Any]:
        """A deep copy of all outputs."""
        return deepcopy(self._outputs)
