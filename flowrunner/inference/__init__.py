"""
Inference package - clients for the text-generation service.
"""

from flowrunner.inference.base import InferenceClient
from flowrunner.inference.ollama import OllamaClient, build_prompt

__all__ = [
    "InferenceClient",
    "OllamaClient",
    "build_prompt",
]
