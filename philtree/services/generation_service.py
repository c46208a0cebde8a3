"""
Generation Service
==================

Lesson and branch-candidate generation through an ``LLMClient``.

Every response passes a strict schema gate. Transport errors, timeouts,
non-JSON output and schema violations all surface as ``GenerationFailedError``
so the caller only has one retryable failure to handle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from pydantic import ValidationError

from philtree.core.config import settings
from philtree.llm.base import LLMClient, LLMError
from philtree.schemas.generation import BranchBatch, LessonGeneration

logger = logging.getLogger(__name__)


class GenerationFailedError(Exception):
    """Generation produced nothing usable. Safe to retry."""


LESSON_SYSTEM_PROMPT = """You are an educational assistant creating accessible yet rigorous lessons for curious learners. Your explanations should be:

- Clear and engaging without being condescending
- Balanced, presenting multiple scholarly perspectives where debate exists
- Historically grounded, situating ideas in their context
- Connected to broader philosophical themes

Always acknowledge areas of genuine philosophical disagreement rather than presenting contested interpretations as settled fact."""

BRANCHES_SYSTEM_PROMPT = """You are a philosophy curriculum designer creating meaningful connections between philosophical concepts. Your connections should:

- Reveal genuine intellectual relationships, not superficial associations
- Span different eras and traditions where appropriate
- Balance canonical and lesser-known but valuable connections
- Explain the relationship clearly and enticingly"""

LESSON_SCHEMA_HINT: dict[str, Any] = {
    "description": "string",
    "recommended_reading": [
        {"title": "string", "author": "string", "year": "string", "relevance": "string"}
    ],
}

BRANCHES_SCHEMA_HINT: dict[str, Any] = {
    "branches": [
        {"type": "constructive|critique|author|wildcard", "target_name": "string", "description": "string"}
    ],
}


def build_lesson_prompt(concept_name: str) -> str:
    return f"""{LESSON_SYSTEM_PROMPT}

Create a lesson for the philosophical concept: "{concept_name}"

Provide:
1. A clear description (300-500 words) that explains:
   - What this concept means
   - Its historical origins and key figures associated with it
   - Why it matters philosophically
   - Different perspectives or interpretations where relevant

2. A list of 3-5 recommended primary texts for further reading, each with
   title, author, year and one sentence on why the text is relevant.

Respond in JSON format:
{{
  "description": "...",
  "recommended_reading": [
    {{"title": "...", "author": "...", "year": "...", "relevance": "..."}}
  ]
}}"""


def build_branches_prompt(name: str, description: str) -> str:
    return f"""{BRANCHES_SYSTEM_PROMPT}

Given the philosophical concept "{name}" with description:
"{description}"

Generate exactly 4 branch connections to other philosophical concepts:

1. CONSTRUCTIVE: A concept that builds upon, extends, or develops from this one
2. CRITIQUE: A concept, thinker, or school of thought that challenges, opposes, or offers an alternative to this one
3. AUTHOR: A philosopher most closely associated with or influential in developing this concept
4. WILDCARD: An unexpected, esoteric, or cross-disciplinary connection that reveals something surprising about this concept

For each branch, provide:
- The target concept name (specific and searchable)
- A compelling 1-2 sentence description of HOW and WHY this concept connects to the source

Respond in JSON format:
{{
  "branches": [
    {{"type": "constructive", "target_name": "...", "description": "..."}},
    {{"type": "critique", "target_name": "...", "description": "..."}},
    {{"type": "author", "target_name": "...", "description": "..."}},
    {{"type": "wildcard", "target_name": "...", "description": "..."}}
  ]
}}"""


class GenerationService:
    def __init__(self, llm: LLMClient, timeout_seconds: Optional[float] = None):
        self.llm = llm
        self.timeout_seconds = float(timeout_seconds or settings.GENERATION_TIMEOUT_SECONDS)

    async def _complete(self, prompt: str, schema_hint: dict[str, Any], what: str) -> dict[str, Any]:
        try:
            return await asyncio.wait_for(
                self.llm.complete_json(prompt=prompt, schema_hint=schema_hint),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise GenerationFailedError(f"{what} generation timed out after {self.timeout_seconds}s") from e
        except LLMError as e:
            raise GenerationFailedError(f"{what} generation failed: {e}") from e

    async def generate_branches(self, name: str, description: str) -> BranchBatch:
        """Exactly four validated candidates, one per branch type."""
        data = await self._complete(build_branches_prompt(name, description), BRANCHES_SCHEMA_HINT, "Branch")
        try:
            return BranchBatch.model_validate(data)
        except ValidationError as e:
            raise GenerationFailedError(f"Branch generation returned an invalid batch: {e}") from e

    async def generate_lesson(self, concept_name: str) -> LessonGeneration:
        data = await self._complete(build_lesson_prompt(concept_name), LESSON_SCHEMA_HINT, "Lesson")
        try:
            return LessonGeneration.model_validate(data)
        except ValidationError as e:
            raise GenerationFailedError(f"Lesson generation returned an invalid lesson: {e}") from e
