"""Inference client interface.

The executor only needs these operations from a text-generation service.
Implementations are injected into the executor, so tests can substitute an
in-memory fake.
"""

from typing import List, Optional, Protocol, runtime_checkable


@runtime_checkable
class InferenceClient(Protocol):
    """Protocol for text-generation service clients."""

    async def test_connection(self) -> bool: ...

    async def list_models(self) -> List[str]: ...

    async def preload_model(self, model: str) -> None:
        """Make sure the model is resident. Idempotent while it stays loaded."""
        ...

    async def generate(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        output_format: Optional[str] = None,
    ) -> str: ...

    async def stop_keep_alive(self) -> None: ...

    async def aclose(self) -> None: ...
