"""
Workflows package - Sample workflow definitions.
"""

from flowrunner.workflows.sentiment_triage import (
    SENTIMENT_TRIAGE,
    create_sentiment_triage_workflow,
)

__all__ = [
    "SENTIMENT_TRIAGE",
    "create_sentiment_triage_workflow",
]
