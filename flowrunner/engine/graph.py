"""
Graph Definition for the Workflow Engine.

The graph is the read-only structure the executor walks: nodes keyed by id,
normal edges taken unconditionally, and decision edges selected by the
decision rule whose id matches the edge's source handle.
"""

from typing import Any, Dict, List, Mapping, Optional, Set, Union
from dataclasses import dataclass, field
import uuid

from flowrunner.engine.definition import WorkflowDefinition
from flowrunner.engine.errors import GraphDefinitionError, NodeNotFound
from flowrunner.engine.node import DecisionRule, NodeKind, WorkflowNode


@dataclass(frozen=True)
class Edge:
    """
    An edge connecting two nodes.

    Edges without a label are normal edges. Edges whose source handle equals
    a decision rule id belong to that rule.
    """
    source: str
    target: str
    label: Optional[str] = None
    source_handle: Optional[str] = None

    @property
    def is_normal(self) -> bool:
        return not self.label

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "source": self.source,
            "target": self.target,
            "label": self.label,
            "sourceHandle": self.source_handle,
        }


@dataclass
class WorkflowGraph:
    """
    A workflow graph consisting of nodes and edges.

    Attributes:
        graph_id: Unique identifier for this graph
        name: Human-readable name
        nodes: Dict of node_id -> WorkflowNode, in declared order
        edges: List of edges, in declared order
        default_model: Model used by agentic nodes (and preloaded at start)
    """

    graph_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Unnamed Workflow"
    nodes: Dict[str, WorkflowNode] = field(default_factory=dict)
    edges: List[Edge] = field(default_factory=list)
    default_model: Optional[str] = None

    def add_node(self, node: WorkflowNode) -> "WorkflowGraph":
        """Add a node to the graph. Returns self for chaining."""
        if node.id in self.nodes:
            raise GraphDefinitionError(f"Node '{node.id}' already exists in the graph")
        self.nodes[node.id] = node
        return self

    def add_edge(
        self,
        source: str,
        target: str,
        label: Optional[str] = None,
        source_handle: Optional[str] = None,
    ) -> "WorkflowGraph":
        """Add an edge from source to target. Returns self for chaining."""
        self.edges.append(Edge(source, target, label, source_handle))
        return self

    def get_node(self, node_id: str) -> WorkflowNode:
        """Get a node by id, raising NodeNotFound if absent."""
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NodeNotFound(node_id) from None

    def normal_edges(self, node_id: str) -> List[Edge]:
        """Outgoing edges without a label, in declared order."""
        return [e for e in self.edges if e.source == node_id and e.is_normal]

    def decision_edges(self, node_id: str) -> Dict[str, Edge]:
        """Outgoing decision edges keyed by source handle."""
        routes: Dict[str, Edge] = {}
        for edge in self.edges:
            if edge.source == node_id and edge.source_handle:
                routes.setdefault(edge.source_handle, edge)
        return routes

    def start_nodes(self) -> List[WorkflowNode]:
        return [n for n in self.nodes.values() if n.kind == NodeKind.START]

    def find_start_node(self) -> Optional[WorkflowNode]:
        """The first start node in declared order, if any."""
        starts = self.start_nodes()
        return starts[0] if starts else None

    @classmethod
    def from_definition(
        cls,
        definition: Union[WorkflowDefinition, Mapping[str, Any]],
        name: str = "Unnamed Workflow",
    ) -> "WorkflowGraph":
        """
        Compile an authored definition into a graph.

        nextNodes become normal edges; each decision rule with a target
        becomes a decision edge keyed by the rule id. References to node
        ids that are not in the definition are dropped.

        Raises:
            UnknownNodeKind: if a node declares an unsupported kind
            GraphDefinitionError: if node ids are duplicated
        """
        if not isinstance(definition, WorkflowDefinition):
            definition = WorkflowDefinition.model_validate(definition)

        graph = cls(
            name=name,
            default_model=definition.config.default_model if definition.config else None,
        )

        for record in definition.nodes:
            graph.add_node(WorkflowNode(
                id=record.id,
                kind=record.node_type or NodeKind.AGENTIC,
                label=record.name,
                system_prompt=record.system_prompt or "",
                user_prompt=record.user_prompt or "",
                output_format=record.output_format or "",
                context=record.context or "",
                decisions=tuple(
                    DecisionRule(
                        id=d.id,
                        condition=d.condition,
                        label=d.label,
                        target_node_id=d.target_node_id,
                    )
                    for d in record.decisions
                ),
            ))

        for record in definition.nodes:
            for next_id in record.next_nodes:
                if next_id in graph.nodes:
                    graph.add_edge(record.id, next_id)
            for decision in record.decisions:
                if decision.target_node_id and decision.target_node_id in graph.nodes:
                    graph.add_edge(
                        record.id,
                        decision.target_node_id,
                        label=decision.label or decision.id,
                        source_handle=decision.id,
                    )

        return graph

    def validate(self) -> List[str]:
        """
        Validate the graph structure.

        Returns:
            List of problems found (empty if valid). None of them stop a run
            by themselves; a missing start node fails the run when it starts.
        """
        errors = []

        if not self.nodes:
            errors.append("Graph must have at least one node")
            return errors

        starts = self.start_nodes()
        if not starts:
            errors.append("Graph has no start node")
        elif len(starts) > 1:
            errors.append(
                f"Graph has {len(starts)} start nodes; only '{starts[0].id}' will run"
            )

        for edge in self.edges:
            for end in (edge.source, edge.target):
                if end not in self.nodes:
                    errors.append(f"Edge {edge.source} -> {edge.target} references unknown node '{end}'")

        if starts:
            reachable = self._get_reachable_nodes(starts[0].id)
            orphans = [n for n in self.nodes if n not in reachable]
            if orphans:
                errors.append(f"Orphan nodes (not reachable): {orphans}")

        return errors

    def _get_reachable_nodes(self, entry: str) -> Set[str]:
        """Get all nodes reachable from the entry node along any edge."""
        reachable = set()
        to_visit = [entry]

        while to_visit:
            node_id = to_visit.pop()
            if node_id in reachable:
                continue
            reachable.add(node_id)
            to_visit.extend(e.target for e in self.edges if e.source == node_id)

        return reachable

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the graph to a dictionary."""
        return {
            "graph_id": self.graph_id,
            "name": self.name,
            "default_model": self.default_model,
            "nodes": {node_id: node.to_dict() for node_id, node in self.nodes.items()},
            "edges": [edge.to_dict() for edge in self.edges],
        }

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of the graph."""
        lines = ["graph TD"]

        for node_id, node in self.nodes.items():
            label = node.label.replace('"', "'")
            if node.kind == NodeKind.DECISION:
                lines.append(f'    {node_id}{{"{label}"}}')
            elif node.kind in (NodeKind.START, NodeKind.END):
                lines.append(f'    {node_id}(["{label}"])')
            elif node.kind == NodeKind.MEMORY:
                lines.append(f'    {node_id}[("{label}")]')
            else:
                lines.append(f'    {node_id}["{label}"]')

        for edge in self.edges:
            if edge.label:
                lines.append(f"    {edge.source} -->|{edge.label}| {edge.target}")
            else:
                lines.append(f"    {edge.source} --> {edge.target}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        start = self.find_start_node()
        return (
            f"WorkflowGraph(name='{self.name}', nodes={list(self.nodes.keys())}, "
            f"start='{start.id if start else None}')"
        )
