"""Language model clients used for lesson and branch generation."""

from __future__ import annotations

from philtree.core.config import settings
from philtree.llm.base import LLMClient, LLMError, parse_json_object
from philtree.llm.ollama import OllamaClient
from philtree.llm.openai_client import OpenAIChatClient


def build_llm_client() -> LLMClient:
    """Build the configured client (LLM_PROVIDER: auto | openai | ollama)."""
    provider = str(settings.LLM_PROVIDER or "auto").lower()
    if provider == "auto":
        provider = "openai" if settings.OPENAI_API_KEY else "ollama"

    if provider == "openai":
        return OpenAIChatClient(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_CHAT_MODEL,
            timeout_seconds=settings.GENERATION_TIMEOUT_SECONDS,
            temperature=settings.GENERATION_TEMPERATURE,
        )
    if provider == "ollama":
        return OllamaClient(
            base_url=settings.OLLAMA_BASE_URL,
            model=settings.OLLAMA_MODEL,
            timeout_seconds=settings.GENERATION_TIMEOUT_SECONDS,
            temperature=settings.GENERATION_TEMPERATURE,
            max_concurrency=settings.OLLAMA_MAX_CONCURRENCY,
        )
    raise ValueError(f"Unknown LLM provider: {provider}")


__all__ = [
    "LLMClient",
    "LLMError",
    "OllamaClient",
    "OpenAIChatClient",
    "build_llm_client",
    "parse_json_object",
]
