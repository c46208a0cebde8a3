"""
Concept model.

A node of the shared concept graph. The row is global (not per user) and is
never deleted; the only mutation is flipping ``has_embedding`` once a vector
has been attached in the vector index.
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from philtree.models.base import Base, CreatedAtMixin, UUIDMixin


class Concept(Base, UUIDMixin, CreatedAtMixin):
    __tablename__ = "concepts"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Display name (not unique)",
    )

    slug: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        doc="URL-safe key derived from the name; unique across the graph",
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        doc="Generated lesson text",
    )

    recommended_reading: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        doc="List of {title, author, year, relevance}",
    )

    has_embedding: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True,
        doc="True once the concept vector is stored in the vector index",
    )

    __table_args__ = (
        Index("ix_concepts_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<Concept {self.slug} ({self.id})>"

    @property
    def embedding_text(self) -> str:
        """Text the concept embedding is computed from."""
        return f"{self.name}: {self.description}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "recommended_reading": list(self.recommended_reading or []),
            "has_embedding": bool(self.has_embedding),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def concept_payload(concept: Optional[Concept]) -> dict[str, Any]:
    """Vector index payload for a concept."""
    if concept is None:
        return {}
    return {"name": concept.name, "slug": concept.slug}
