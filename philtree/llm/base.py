from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any


class LLMError(Exception):
    """The model could not be reached or did not return a JSON object."""


class LLMClient(ABC):
    @abstractmethod
    async def complete_json(
        self,
        *,
        prompt: str,
        schema_hint: dict[str, Any],
    ) -> dict[str, Any]: ...


_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def parse_json_object(raw: str | None) -> dict[str, Any]:
    """
    Extract a JSON object from model output.

    Accepts a bare object, an object wrapped in a markdown code fence, or an
    object surrounded by prose. Anything else raises ``LLMError``.
    """
    text = (raw or "").strip()
    if not text:
        raise LLMError("Model returned an empty response")

    candidates = [text]
    fenced = _FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    braced = _OBJECT_RE.search(text)
    if braced:
        candidates.append(braced.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise LLMError("Model response did not contain a JSON object")
