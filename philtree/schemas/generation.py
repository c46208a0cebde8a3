"""
Generation Schemas
==================

Strict shapes for language-model output. A response that does not validate is
discarded as a whole; fields are never salvaged individually.
"""

import re
from typing import Any, List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from philtree.models.branch_type import BranchType

_HAS_ALNUM = re.compile(r"[a-z0-9]")


class _GenerationModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore", populate_by_name=True)


class BranchCandidate(_GenerationModel):
    """One proposed branch from a source concept."""

    type: BranchType
    target_name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("target_name", "targetName"),
    )
    description: str = Field(..., min_length=1)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("target_name")
    @classmethod
    def target_name_sluggable(cls, v: str) -> str:
        if not _HAS_ALNUM.search(v.lower()):
            raise ValueError("target_name must contain a letter or digit")
        return v


class BranchBatch(_GenerationModel):
    """Exactly four candidates, one per branch type."""

    branches: List[BranchCandidate]

    @model_validator(mode="after")
    def one_per_type(self) -> "BranchBatch":
        types = [b.type for b in self.branches]
        if len(types) != len(BranchType) or set(types) != set(BranchType):
            raise ValueError(
                "expected exactly one branch of each type "
                f"({', '.join(t.value for t in BranchType)}), got {[t.value for t in types]}"
            )
        return self


class ReadingEntry(_GenerationModel):
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    year: str = ""
    relevance: str = ""

    @field_validator("year", mode="before")
    @classmethod
    def year_as_text(cls, v: Any) -> Any:
        # Models return years as numbers, strings, or "c. 380 BCE".
        if v is None:
            return ""
        if isinstance(v, (int, float)):
            return str(int(v))
        return v


class LessonGeneration(_GenerationModel):
    """Lesson text plus a short reading list for a new concept."""

    description: str = Field(..., min_length=1)
    recommended_reading: List[ReadingEntry] = Field(default_factory=list)
