"""
Sentiment Triage Workflow.

The sample workflow shipped with FlowRunner:
1. Start receives the customer message
2. Classify asks the model for {"sentiment": "positive" | "negative"}
3. Route branches on {CLASSIFY.sentiment}
4. Positive messages end at THANK_YOU, negative ones are noted in memory
   and end at ESCALATE
"""

from typing import Any, Dict, Optional
import logging

from flowrunner.engine.graph import WorkflowGraph


logger = logging.getLogger(__name__)


SENTIMENT_TRIAGE: Dict[str, Any] = {
    "nodes": [
        {
            "id": "START",
            "name": "Customer message",
            "nodeType": "start",
            "nextNodes": ["CLASSIFY"],
        },
        {
            "id": "CLASSIFY",
            "name": "Classify sentiment",
            "nodeType": "agentic",
            "systemPrompt": "You classify the sentiment of customer messages. Answer with JSON only.",
            "userPrompt": "Message: {START.input}",
            "outputFormat": '{"sentiment": "positive" | "negative", "reason": "<short reason>"}',
            "nextNodes": ["ROUTE"],
        },
        {
            "id": "ROUTE",
            "name": "Route by sentiment",
            "nodeType": "decision",
            "decisions": [
                {
                    "id": "positive",
                    "condition": '{CLASSIFY.sentiment} == "positive"',
                    "label": "Positive",
                    "targetNodeId": "THANK_YOU",
                },
                {
                    "id": "negative",
                    "condition": '{CLASSIFY.sentiment} == "negative"',
                    "label": "Negative",
                    "targetNodeId": "NOTE",
                },
            ],
        },
        {
            "id": "THANK_YOU",
            "name": "Thank the customer",
            "nodeType": "end",
        },
        {
            "id": "NOTE",
            "name": "Note complaint",
            "nodeType": "memory",
            "context": "Complaint: {START.input} (reason: {CLASSIFY.reason})",
            "nextNodes": ["ESCALATE"],
        },
        {
            "id": "ESCALATE",
            "name": "Escalate to support",
            "nodeType": "end",
        },
    ],
    "config": {"defaultModel": None},
}


def create_sentiment_triage_workflow(model: Optional[str] = None) -> WorkflowGraph:
    """
    Build the sentiment triage graph.

    Args:
        model: Default model for the agentic node (None keeps the
            executor's configured default)

    Returns:
        The compiled WorkflowGraph
    """
    graph = WorkflowGraph.from_definition(SENTIMENT_TRIAGE, name="Sentiment Triage")
    graph.default_model = model
    return graph


async def run_sentiment_demo(message: str = "I love how fast the new release is!"):
    """Run the demo against the configured Ollama server and print the log."""
    from flowrunner.config import settings
    from flowrunner.engine.executor import Executor
    from flowrunner.inference.ollama import OllamaClient

    client = OllamaClient()
    executor = Executor(client, on_log=lambda entry: print(f"[{entry.kind.value}] {entry.node_name}: {entry.message}"))
    try:
        record = await executor.start(create_sentiment_triage_workflow(settings.DEFAULT_MODEL), message)
    finally:
        await client.aclose()

    print(f"\nExecution Status: {record.status.value}")
    print(f"Outputs: {executor.outputs}")
    return record


if __name__ == "__main__":
    import asyncio
    asyncio.run(run_sentiment_demo())
