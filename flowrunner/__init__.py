"""
FlowRunner - runs authored agent workflows against a local Ollama server.

Workflows are directed graphs of typed steps (start, agentic, decision,
memory, end). The engine walks them depth-first and streams a live log.
"""

__version__ = "1.0.0"
