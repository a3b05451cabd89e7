"""Ollama как локальная (on-device) модель для извлечения."""

import asyncio
import logging
import time
from typing import Optional

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from jobtracker_ai.constants import HEALTH_CHECK_MAX_TOKENS
from jobtracker_ai.exceptions import SessionError
from jobtracker_ai.models import AvailabilityStatus
from .base import BaseInferenceCapability, BaseInferenceSession, LLMUsageStats

logger = logging.getLogger(__name__)


class OllamaRetryableError(Exception):
    """Transient error that should trigger retry."""
    pass


class OllamaSession(BaseInferenceSession):
    """Сессия поверх загруженной в Ollama модели."""

    def __init__(self, capability: "OllamaCapability", temperature: Optional[float] = None):
        super().__init__()
        self._capability = capability
        self.temperature = temperature

    async def _generate(self, text: str) -> str:
        return await self._capability.generate(text, temperature=self.temperature)

    async def health_check(self, text: str) -> str:
        """Probe with a one-token reply so a slow host answers within the timeout."""
        self.last_activity = time.monotonic()
        return await self._capability.generate(
            text, temperature=self.temperature, max_tokens=HEALTH_CHECK_MAX_TOKENS
        )

    async def destroy(self) -> None:
        """Unload the model from Ollama memory."""
        if self.destroyed:
            return
        await super().destroy()
        await self._capability.unload()


class OllamaCapability(BaseInferenceCapability):
    """Host inference capability backed by a local Ollama server.

    Availability is derived from ``/api/tags``: a listed model is available,
    a reachable server without the model is downloadable, and an in-flight
    ``/api/pull`` makes it downloading.
    """

    def __init__(
        self,
        model: str = "llama3.2:3b",
        base_url: str = "http://localhost:11434",
        timeout: float = 300.0,
        temperature: float = 0.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Инициализация Ollama.

        Args:
            model: Название модели
            base_url: URL Ollama сервера
            timeout: Таймаут запросов в секундах
            temperature: Температура генерации по умолчанию
            client: Готовый HTTP клиент (для тестов)
        """
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.temperature = temperature
        self.client = client if client is not None else httpx.AsyncClient(timeout=timeout)
        self.usage_stats = LLMUsageStats()
        self._pull_task: Optional[asyncio.Task] = None

    def _has_model(self, names: list[str]) -> bool:
        """Check the tag list, treating a bare name as ``:latest``."""
        wanted = {self.model}
        if ":" not in self.model:
            wanted.add(f"{self.model}:latest")
        return any(name in wanted for name in names)

    async def availability(self) -> AvailabilityStatus:
        if self._pull_task is not None and not self._pull_task.done():
            return AvailabilityStatus.DOWNLOADING

        try:
            response = await self.client.get(f"{self.base_url}/api/tags")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Ollama availability probe failed: {e}")
            return AvailabilityStatus.UNAVAILABLE

        names = []
        for entry in data.get("models") or []:
            names.extend(n for n in (entry.get("name"), entry.get("model")) if n)

        if self._has_model(names):
            return AvailabilityStatus.AVAILABLE
        return AvailabilityStatus.DOWNLOADABLE

    async def _pull(self) -> None:
        logger.info(f"Pulling Ollama model {self.model}")
        start_time = time.perf_counter()
        try:
            response = await self.client.post(
                f"{self.base_url}/api/pull",
                json={"model": self.model, "stream": False},
                timeout=None,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RuntimeError(f"Failed to pull {self.model}: {e}") from e

        data = response.json()
        if data.get("error"):
            raise RuntimeError(f"Failed to pull {self.model}: {data['error']}")
        logger.info(f"Model {self.model} pulled in {time.perf_counter() - start_time:.1f}s")

    def _on_pull_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.warning(f"Model download failed: {task.exception()}")

    async def pull(self) -> None:
        """Download the model, joining a download already in progress."""
        if self._pull_task is None or self._pull_task.done():
            self._pull_task = asyncio.create_task(self._pull())
            self._pull_task.add_done_callback(self._on_pull_done)
        await asyncio.shield(self._pull_task)

    async def create(self, temperature: Optional[float] = None, **options) -> OllamaSession:
        """
        Create a session, pulling the model when it is not installed yet.

        The model is loaded into memory with an empty generate request so the
        first real prompt does not pay the load time.

        Raises:
            SessionError: If Ollama is not reachable or the model cannot be loaded
        """
        status = await self.availability()
        if status == AvailabilityStatus.UNAVAILABLE:
            raise SessionError(
                f"Cannot connect to Ollama at {self.base_url}. "
                "Make sure Ollama is running: ollama serve"
            )
        if status in (AvailabilityStatus.DOWNLOADABLE, AvailabilityStatus.DOWNLOADING):
            await self.pull()

        try:
            response = await self.client.post(
                f"{self.base_url}/api/generate",
                json={"model": self.model},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SessionError(f"Failed to load {self.model}: {e}") from e

        logger.debug(f"Ollama session created for {self.model}")
        return OllamaSession(
            self, temperature=self.temperature if temperature is None else temperature
        )

    def _build_payload(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> dict:
        """Build request payload."""
        options = {
            "temperature": self.temperature if temperature is None else temperature,
            "num_ctx": 8192,
        }
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        return {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }

    async def _make_request(self, payload: dict) -> dict:
        """
        Make HTTP request to Ollama API.

        Raises:
            OllamaRetryableError: On transient errors (timeout, 5xx)
            RuntimeError: On permanent errors
        """
        try:
            response = await self.client.post(
                f"{self.base_url}/api/generate",
                json=payload,
            )
            response.raise_for_status()
            data = response.json()

            if data.get("error"):
                error_msg = data.get("error", "Unknown error")
                logger.debug(f"Ollama error response: {error_msg}")
                raise RuntimeError(f"Ollama API error: {error_msg}")

            return data

        except httpx.HTTPStatusError as e:
            if e.response.status_code >= 500:
                raise OllamaRetryableError(f"HTTP {e.response.status_code}") from e
            raise RuntimeError(f"Ollama API error: {e.response.status_code}") from e
        except httpx.ConnectError as e:
            raise RuntimeError(f"Cannot connect to Ollama at {self.base_url}") from e
        except httpx.ReadTimeout as e:
            raise OllamaRetryableError(f"Timeout: {e}") from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=2, min=2, max=16),
        retry=retry_if_exception_type(OllamaRetryableError),
        reraise=True,
    )
    async def generate(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Generate response via Ollama API with retry on transient errors."""
        payload = self._build_payload(prompt, temperature, max_tokens)
        start_time = time.perf_counter()

        data = await self._make_request(payload)
        elapsed = time.perf_counter() - start_time

        prompt_tokens = data.get("prompt_eval_count", 0)
        completion_tokens = data.get("eval_count", 0)
        self.usage_stats.add_call(prompt_tokens, completion_tokens, elapsed)
        logger.debug(
            f"Ollama call: {prompt_tokens}+{completion_tokens} tokens, "
            f"{elapsed:.2f}s, model={self.model}"
        )
        return data.get("response", "")

    async def unload(self) -> None:
        """Ask Ollama to drop the model from memory (``keep_alive=0``)."""
        try:
            response = await self.client.post(
                f"{self.base_url}/api/generate",
                json={"model": self.model, "keep_alive": 0},
            )
            response.raise_for_status()
            logger.debug(f"Ollama model {self.model} unloaded")
        except httpx.HTTPError as e:
            logger.warning(f"Failed to unload {self.model}: {e}")

    def get_usage_summary(self) -> str:
        """Get human-readable usage summary."""
        return self.usage_stats.summary()

    async def close(self):
        """Закрыть HTTP клиент."""
        if self._pull_task is not None and not self._pull_task.done():
            self._pull_task.cancel()
        if self.usage_stats.total_calls > 0:
            logger.info(self.usage_stats.summary())
        await self.client.aclose()
