"""
Authored Workflow Definition Format.

These pydantic models describe the JSON document produced by the workflow
editor. The graph compiler turns a WorkflowDefinition into a WorkflowGraph.
"""

from typing import List, Optional
from pydantic import AliasChoices, BaseModel, Field


class DecisionRecord(BaseModel):
    """A decision rule as authored."""
    id: str = Field(..., description="Rule id, used as the edge handle")
    condition: str = Field("", description='Condition, e.g. {NODE_01.sentiment} == "positive"')
    label: str = Field("", description="Label shown on the branch")
    target_node_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("targetNodeId", "target_node_id"),
        serialization_alias="targetNodeId",
    )


class NodeRecord(BaseModel):
    """A workflow node as authored."""
    id: str
    name: str = ""
    node_type: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("nodeType", "node_type", "kind"),
        serialization_alias="nodeType",
        description="start, agentic, decision, memory or end (defaults to agentic)",
    )
    summary: Optional[str] = None
    system_prompt: Optional[str] = Field(
        None, validation_alias=AliasChoices("systemPrompt", "system_prompt"),
        serialization_alias="systemPrompt",
    )
    user_prompt: Optional[str] = Field(
        None, validation_alias=AliasChoices("userPrompt", "user_prompt"),
        serialization_alias="userPrompt",
    )
    output_format: Optional[str] = Field(
        None, validation_alias=AliasChoices("outputFormat", "output_format"),
        serialization_alias="outputFormat",
    )
    context: Optional[str] = None
    decisions: List[DecisionRecord] = Field(default_factory=list)
    next_nodes: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("nextNodes", "nextNodeIds", "next_nodes"),
        serialization_alias="nextNodes",
    )


class WorkflowConfig(BaseModel):
    """Optional run configuration stored alongside the nodes."""
    default_model: Optional[str] = Field(
        None, validation_alias=AliasChoices("defaultModel", "default_model"),
        serialization_alias="defaultModel",
    )
    ollama_address: Optional[str] = Field(
        None, validation_alias=AliasChoices("ollamaAddress", "ollama_address"),
        serialization_alias="ollamaAddress",
    )
    available_models: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("availableModels", "available_models"),
        serialization_alias="availableModels",
    )


class WorkflowDefinition(BaseModel):
    """A complete authored workflow."""
    nodes: List[NodeRecord] = Field(..., description="Nodes in declared order")
    config: Optional[WorkflowConfig] = None

    class Config:
        json_schema_extra = {
            "example": {
                "nodes": [
                    {"id": "START", "name": "Start", "nodeType": "start", "nextNodes": ["CLASSIFY"]},
                    {
                        "id": "CLASSIFY",
                        "name": "Classify",
                        "nodeType": "agentic",
                        "systemPrompt": "You classify sentiment.",
                        "userPrompt": "Text: {START.input}",
                        "outputFormat": '{"sentiment": "positive|negative"}',
                        "nextNodes": ["ROUTE"],
                    },
                    {
                        "id": "ROUTE",
                        "name": "Route",
                        "nodeType": "decision",
                        "decisions": [
                            {
                                "id": "d1",
                                "condition": '{CLASSIFY.sentiment} == "positive"',
                                "label": "Positive",
                                "targetNodeId": "THANKS",
                            }
                        ],
                    },
                    {"id": "THANKS", "name": "Thanks", "nodeType": "end"},
                ],
                "config": {"defaultModel": "llama3.2"},
            }
        }
