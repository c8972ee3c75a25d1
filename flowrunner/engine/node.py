"""
Node Definition for the Workflow Engine.

Nodes are the steps of an authored workflow. Each node has a kind from a
closed set; the kind decides what the executor does when it reaches the node.
"""

from typing import Any, Dict, Optional, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum

from flowrunner.engine.errors import GraphDefinitionError, UnknownNodeKind


class NodeKind(str, Enum):
    """Types of nodes in a workflow."""
    START = "start"        # Entry point, carries the user input
    AGENTIC = "agentic"    # Calls the language model
    DECISION = "decision"  # Picks one branch from its rules
    MEMORY = "memory"      # Stores a resolved context string
    END = "end"            # Terminal node

    @classmethod
    def parse(cls, value: Union[str, "NodeKind"], node_id: str = "") -> "NodeKind":
        """Convert a free-form kind string, raising UnknownNodeKind if unsupported."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownNodeKind(node_id, str(value)) from None


@dataclass(frozen=True)
class DecisionRule:
    """
    One branch of a decision node.

    The rule id doubles as the source handle of the edge leaving the
    decision node for this branch.
    """
    id: str
    condition: str
    label: str = ""
    target_node_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "condition": self.condition,
            "label": self.label,
            "targetNodeId": self.target_node_id,
        }


@dataclass(frozen=True)
class WorkflowNode:
    """
    A node in the workflow graph.

    Attributes:
        id: Unique identifier, also used in {id.field} variable references
        kind: What the node does when executed
        label: Human-readable name shown in logs
        system_prompt: System prompt template (agentic)
        user_prompt: User prompt template (agentic)
        output_format: Output format hint sent to the model (agentic)
        context: Context template (memory)
        decisions: Branch rules evaluated in order (decision)
    """

    id: str
    kind: NodeKind
    label: str = ""
    system_prompt: str = ""
    user_prompt: str = ""
    output_format: str = ""
    context: str = ""
    decisions: Tuple[DecisionRule, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.id:
            raise GraphDefinitionError("Node id cannot be empty")
        object.__setattr__(self, "kind", NodeKind.parse(self.kind, self.id))
        object.__setattr__(self, "decisions", tuple(self.decisions))
        if not self.label:
            object.__setattr__(self, "label", self.id)

    @property
    def has_prompts(self) -> bool:
        return bool(self.system_prompt or self.user_prompt)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the node to a dictionary."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "label": self.label,
            "systemPrompt": self.system_prompt,
            "userPrompt": self.user_prompt,
            "outputFormat": self.output_format,
            "context": self.context,
            "decisions": [d.to_dict() for d in self.decisions],
        }
