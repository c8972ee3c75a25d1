"""
Shared fixtures for the FlowRunner tests.
"""

from typing import Awaitable, Callable, List, Optional, Tuple, Union

import pytest

from flowrunner.engine.errors import InferenceError


class FakeInferenceClient:
    """
    In-memory stand-in for the Ollama client.

    Generations return the queued responses in order (the last one repeats),
    or the result of a responder callable given the user prompt.
    """

    def __init__(
        self,
        responses: Union[List[str], Callable[[str], str], None] = None,
        models: Optional[List[str]] = None,
        connected: bool = True,
        fail_preload: bool = False,
        fail_generate: bool = False,
        on_generate: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.responses = responses if responses is not None else ["ok"]
        self.models = models if models is not None else ["llama3.2"]
        self.connected = connected
        self.fail_preload = fail_preload
        self.fail_generate = fail_generate
        self.on_generate = on_generate

        self.preloaded: List[str] = []
        self.calls: List[Tuple[str, str, str, Optional[str]]] = []
        self.closed = False

    async def test_connection(self) -> bool:
        return self.connected

    async def list_models(self) -> List[str]:
        if not self.connected:
            raise InferenceError("Could not connect to Ollama")
        return list(self.models)

    async def preload_model(self, model: str) -> None:
        if self.fail_preload:
            raise InferenceError(f"Failed to preload model {model}: 404 - Not Found", status_code=404)
        self.preloaded.append(model)

    async def generate(self, model, system_prompt, user_prompt, output_format=None) -> str:
        self.calls.append((model, system_prompt, user_prompt, output_format))
        if self.on_generate:
            await self.on_generate()
        if self.fail_generate:
            raise InferenceError("Generation failed: 500 - Internal Server Error", status_code=500)
        if callable(self.responses):
            return self.responses(user_prompt)
        index = min(len(self.calls), len(self.responses)) - 1
        return self.responses[index]

    async def stop_keep_alive(self) -> None:
        pass

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def make_client():
    """Factory fixture for fake inference clients."""
    return FakeInferenceClient


@pytest.fixture
def fake_client():
    """A fake inference client answering "ok" to everything."""
    return FakeInferenceClient()
