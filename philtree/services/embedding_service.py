"""Embedding service.

Central place to turn concept text into vectors (OpenAI or a local Ollama
server). Unlike a best-effort cache, the concept graph must never store a
placeholder vector, so every failure is raised as an ``EmbeddingFailedError``
and callers decide how to degrade.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from philtree.core.config import settings

logger = logging.getLogger(__name__)


class EmbeddingFailedError(Exception):
    """The embedding could not be produced."""


class EmbeddingUnavailableError(EmbeddingFailedError):
    """Provider unreachable, timed out, rate limited or returned a 5xx. Retry later."""


class EmbeddingRejectedError(EmbeddingFailedError):
    """The input or the provider response was unusable. Retrying will not help."""


class EmbeddingService:
    _ollama_sem: asyncio.Semaphore | None = None

    def __init__(
        self,
        provider: str | None = None,
        dimensions: int | None = None,
        timeout: float | None = None,
        openai_client: AsyncOpenAI | None = None,
    ):
        """
        Initialize the embedding service.

        Args:
            provider: openai | ollama | auto (defaults to EMBEDDING_PROVIDER)
            dimensions: Expected vector length (defaults to EMBEDDING_DIMENSIONS)
            timeout: Per-call timeout in seconds
            openai_client: Pre-built client, mainly for tests
        """
        provider = str(provider or settings.EMBEDDING_PROVIDER or "auto").lower()
        # Local-first default: if no OpenAI key, use Ollama.
        if provider == "auto":
            provider = "openai" if (openai_client or settings.OPENAI_API_KEY) else "ollama"
        if provider not in ("openai", "ollama"):
            raise ValueError(f"Unknown embedding provider: {provider}")

        self.provider = provider
        self.dimensions = int(dimensions or settings.EMBEDDING_DIMENSIONS)
        self.timeout = float(timeout or settings.EMBEDDING_TIMEOUT_SECONDS)
        self._openai = openai_client

    @classmethod
    def _ollama_semaphore(cls) -> asyncio.Semaphore:
        if cls._ollama_sem is None:
            cls._ollama_sem = asyncio.Semaphore(int(settings.OLLAMA_MAX_CONCURRENCY or 2))
        return cls._ollama_sem

    def _openai_client(self) -> AsyncOpenAI:
        if self._openai is None:
            if not settings.OPENAI_API_KEY:
                raise EmbeddingUnavailableError("OPENAI_API_KEY is not configured")
            self._openai = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, timeout=self.timeout)
        return self._openai

    async def _embed_ollama(self, text: str) -> list[float]:
        base_url = str(settings.OLLAMA_BASE_URL or "http://localhost:11434").rstrip("/")
        payload: dict[str, Any] = {"model": settings.OLLAMA_EMBEDDING_MODEL, "prompt": text}

        try:
            async with self._ollama_semaphore():
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(f"{base_url}/api/embeddings", json=payload)
                    resp.raise_for_status()
                    data = resp.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500 or status == 429:
                raise EmbeddingUnavailableError(f"Ollama returned {status}") from e
            raise EmbeddingRejectedError(f"Ollama rejected input ({status})") from e
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise EmbeddingUnavailableError(f"Ollama unreachable: {e}") from e
        except ValueError as e:
            raise EmbeddingRejectedError("Ollama returned non-JSON body") from e

        emb = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(emb, list) or not emb:
            raise EmbeddingRejectedError("Ollama embedding response missing 'embedding' list")

        return [float(x) for x in emb]

    async def _embed_openai(self, text: str) -> list[float]:
        client = self._openai_client()
        try:
            resp = await asyncio.wait_for(
                client.embeddings.create(model=settings.EMBEDDING_MODEL, input=text),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise EmbeddingUnavailableError("OpenAI embedding timed out") from e
        except (openai.APITimeoutError, openai.APIConnectionError, openai.RateLimitError) as e:
            raise EmbeddingUnavailableError(f"OpenAI unavailable: {e}") from e
        except openai.InternalServerError as e:
            raise EmbeddingUnavailableError(f"OpenAI server error: {e}") from e
        except openai.APIStatusError as e:
            raise EmbeddingRejectedError(f"OpenAI rejected input: {e}") from e

        if not resp.data:
            raise EmbeddingRejectedError("OpenAI embedding response was empty")
        return [float(x) for x in resp.data[0].embedding]

    async def embed(self, text: str) -> list[float]:
        """
        Embed ``text``.

        Returns:
            Vector of exactly ``dimensions`` floats

        Raises:
            EmbeddingUnavailableError: transient provider failure
            EmbeddingRejectedError: empty input or unusable response
        """
        cleaned = (text or "").strip()
        if not cleaned:
            raise EmbeddingRejectedError("Cannot embed empty text")

        if self.provider == "ollama":
            vector = await self._embed_ollama(cleaned)
        else:
            vector = await self._embed_openai(cleaned)

        if len(vector) != self.dimensions:
            raise EmbeddingRejectedError(
                f"Embedding has {len(vector)} dimensions, expected {self.dimensions}"
            )
        return vector
