"""
Ollama Inference Client.

Talks to an Ollama server over its HTTP API:

    GET  /api/tags      -> {"models": [{"name": ...}, ...]}
    POST /api/generate  <- {"model", "prompt", "stream": false, "keep_alive"}
                        -> {"response": "...", "done": true}

Preloading a model sends a short generation so the server loads it, then
starts a background task that pings the model periodically so it is not
evicted between workflow steps.
"""

from typing import Any, Callable, Dict, List, Optional
import asyncio
import logging

import httpx

from flowrunner.config import settings
from flowrunner.engine.errors import InferenceError


logger = logging.getLogger(__name__)

PRELOAD_PROMPT = "Hello"
KEEP_ALIVE_PROMPT = "ping"


def build_prompt(system_prompt: str, user_prompt: str, output_format: Optional[str] = None) -> str:
    """Combine the prompt parts into the single prompt Ollama expects."""
    prompt = ""
    if system_prompt:
        prompt += f"System: {system_prompt}\n\n"
    if user_prompt:
        prompt += f"User: {user_prompt}\n\n"
    if output_format:
        prompt += f"Expected output format: {output_format}\n\n"
    return prompt


class OllamaClient:
    """
    Async client for a single Ollama server.

    Usage:
        client = OllamaClient("http://localhost:11434")
        await client.preload_model("llama3.2")
        text = await client.generate("llama3.2", "You are terse.", "Say hi")
        await client.aclose()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        keep_alive: Optional[str] = None,
        keep_alive_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_log: Optional[Callable[[str, str], None]] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Server address (defaults to settings.OLLAMA_ADDRESS)
            keep_alive: keep_alive value sent with each generate request
            keep_alive_interval: Seconds between keep-alive pings
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
            on_log: Optional callback receiving (message, level)
        """
        self.base_url = (base_url or settings.OLLAMA_ADDRESS).rstrip("/")
        self.keep_alive = keep_alive or settings.KEEP_ALIVE
        self.keep_alive_interval = (
            keep_alive_interval if keep_alive_interval is not None else settings.KEEP_ALIVE_INTERVAL
        )
        self.on_log = on_log

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.REQUEST_TIMEOUT,
            transport=transport,
        )
        self._current_model: Optional[str] = None
        self._model_loaded = False
        self._keep_alive_task: Optional[asyncio.Task] = None

    @property
    def loaded_model(self) -> Optional[str]:
        """The model currently marked as loaded, if any."""
        return self._current_model if self._model_loaded else None

    @property
    def keep_alive_running(self) -> bool:
        return self._keep_alive_task is not None and not self._keep_alive_task.done()

    def _log(self, message: str, level: str = "info") -> None:
        logger.log(getattr(logging, level.upper(), logging.INFO), message)
        if self.on_log:
            try:
                self.on_log(message, level)
            except Exception as e:
                logger.warning(f"Inference log callback failed: {e}")

    async def test_connection(self) -> bool:
        """Check that the server answers the model listing call."""
        try:
            response = await self._client.get("/api/tags")
            return response.is_success
        except httpx.HTTPError:
            return False

    async def list_models(self) -> List[str]:
        """List the names of the models available on the server."""
        try:
            response = await self._client.get("/api/tags")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to list Ollama models: {e}")
            raise InferenceError(
                f"Could not connect to Ollama at {self.base_url}. Is it running?"
            ) from e
        return [model["name"] for model in data.get("models", [])]

    async def _post_generate(self, model: str, prompt: str) -> Dict[str, Any]:
        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "keep_alive": self.keep_alive,
        }
        try:
            response = await self._client.post("/api/generate", json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise InferenceError(
                f"Generation failed: {e.response.status_code} - {e.response.reason_phrase}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise InferenceError(f"Generation request failed: {e}") from e
        except ValueError as e:
            raise InferenceError(f"Invalid response from Ollama: {e}") from e

    async def preload_model(self, model: str) -> None:
        """
        Load a model into memory and start keeping it alive.

        Does nothing if the same model is already marked loaded.
        """
        if self._current_model == model and self._model_loaded:
            self._log(f"Model {model} is already loaded")
            return

        self._log(f"Preloading model {model}...")
        self._model_loaded = False
        self._current_model = model
        try:
            await self._post_generate(model, PRELOAD_PROMPT)
        except InferenceError as e:
            self._log(f"Failed to preload model {model}: {e}", "error")
            raise InferenceError(f"Failed to preload model {model}: {e}", e.status_code) from e

        self._model_loaded = True
        self._log(f"Model {model} loaded")
        self._start_keep_alive(model)

    async def generate(
        self,
        model: str,
        system_prompt: str,
        user_prompt: str,
        output_format: Optional[str] = None,
    ) -> str:
        """
        Run a single non-streaming generation.

        Returns:
            The generated text
        """
        await self.preload_model(model)
        prompt = build_prompt(system_prompt, user_prompt, output_format)
        logger.debug(f"Generating with {model}: {prompt!r}")
        data = await self._post_generate(model, prompt)
        return data.get("response", "")

    def _start_keep_alive(self, model: str) -> None:
        if self._keep_alive_task and not self._keep_alive_task.done():
            self._keep_alive_task.cancel()
        self._keep_alive_task = asyncio.create_task(self._keep_alive_loop(model))

    async def _keep_alive_loop(self, model: str) -> None:
        while True:
            await asyncio.sleep(self.keep_alive_interval)
            try:
                await self._post_generate(model, KEEP_ALIVE_PROMPT)
                self._log(f"Keep-alive succeeded for {model}")
            except InferenceError as e:
                self._log(f"Keep-alive failed for {model}: {e}", "warning")

    async def stop_keep_alive(self) -> None:
        """Cancel the keep-alive task, if one is running."""
        task, self._keep_alive_task = self._keep_alive_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._log("Keep-alive stopped")

    async def aclose(self) -> None:
        """Stop the keep-alive task and close the HTTP client."""
        await self.stop_keep_alive()
        await self._client.aclose()
