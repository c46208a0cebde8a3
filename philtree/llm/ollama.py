from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from philtree.llm.base import LLMClient, LLMError, parse_json_object

logger = logging.getLogger(__name__)


class OllamaClient(LLMClient):
    def __init__(
        self,
        *,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:7b",
        timeout_seconds: float = 30.0,
        temperature: float = 0.7,
        max_concurrency: int | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout_seconds
        self._temperature = temperature
        self._max_concurrency = int(max_concurrency) if max_concurrency is not None else None

    async def complete_json(
        self,
        *,
        prompt: str,
        schema_hint: dict[str, Any],
    ) -> dict[str, Any]:
        # Ollama /api/generate supports JSON mode via "format": "json".
        payload = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self._temperature,
            },
        }

        try:
            if self._max_concurrency is None:
                data = await self._post(payload)
            else:
                async with await _get_semaphore(self._max_concurrency):
                    data = await self._post(payload)
        except (httpx.HTTPError, OSError, ValueError) as e:
            logger.warning(f"Ollama generate failed (model={self._model}): {e}")
            raise LLMError(f"Ollama request failed: {e}") from e

        # Ollama returns {response: "{...}"}
        raw = data.get("response") if isinstance(data, dict) else None
        return parse_json_object(raw)

    async def _post(self, payload: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            r = await client.post(f"{self._base_url}/api/generate", json=payload)
            r.raise_for_status()
            return r.json()


_semaphore_lock = asyncio.Lock()
_semaphores: dict[int, asyncio.Semaphore] = {}


async def _get_semaphore(max_concurrency: int) -> asyncio.Semaphore:
    if max_concurrency <= 0:
        # Treat <=0 as "no limit".
        return asyncio.Semaphore(10**9)

    async with _semaphore_lock:
        sem = _semaphores.get(max_concurrency)
        if sem is None:
            sem = asyncio.Semaphore(max_concurrency)
            _semaphores[max_concurrency] = sem
        return sem
