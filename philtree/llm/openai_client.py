from __future__ import annotations

import logging
from typing import Any

import openai
from openai import AsyncOpenAI

from philtree.llm.base import LLMClient, LLMError, parse_json_object

logger = logging.getLogger(__name__)


class OpenAIChatClient(LLMClient):
    """Chat-completions client running in JSON object mode."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        timeout_seconds: float = 30.0,
        temperature: float = 0.7,
        client: AsyncOpenAI | None = None,
    ):
        self._model = model
        self._temperature = temperature
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout_seconds)

    async def complete_json(
        self,
        *,
        prompt: str,
        schema_hint: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            resp = await self._client.chat.completions.create(
                model=self._model,
                temperature=self._temperature,
                response_format={"type": "json_object"},
                messages=[
                    {
                        "role": "system",
                        "content": "Respond with a single JSON object only.",
                    },
                    {"role": "user", "content": prompt},
                ],
            )
        except openai.OpenAIError as e:
            logger.warning(f"OpenAI chat completion failed (model={self._model}): {e}")
            raise LLMError(f"OpenAI request failed: {e}") from e

        if not resp.choices:
            raise LLMError("OpenAI returned no choices")
        return parse_json_object(resp.choices[0].message.content)
