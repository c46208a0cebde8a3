"""
Concept Store
=============

Sole writer of concept rows and concept vectors.

Slug uniqueness is enforced by the database (``INSERT ... ON CONFLICT (slug)
DO NOTHING``); a conflict surfaces as ``DuplicateSlugError`` so callers can
re-fetch and reuse the existing concept. Near-duplicate names with different
slugs are the resolution engine's concern, not the store's.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from philtree.core.qdrant import ConceptVectorIndex
from philtree.models.base import generate_uuid, utc_now
from philtree.models.concept import Concept, concept_payload

logger = logging.getLogger(__name__)


class ConceptStoreError(Exception):
    """Unexpected storage failure while reading or writing concepts."""


class ConceptNotFoundError(Exception):
    """No concept exists for the given id or slug."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Concept not found: {key}")


class DuplicateSlugError(Exception):
    """A concept with the derived slug already exists."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Concept slug already exists: {slug}")


_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """
    Derive the URL slug for a concept name.

    Lower-cases, collapses every run of non-alphanumerics into one ``-`` and
    strips separators from both ends: ``"Kant's Ethics"`` -> ``"kant-s-ethics"``.

    Raises:
        ValueError: if nothing alphanumeric remains
    """
    slug = _NON_ALNUM.sub("-", (name or "").lower()).strip("-")
    if not slug:
        raise ValueError(f"Concept name {name!r} has no alphanumeric characters")
    return slug


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ConceptStore:
    """Concept rows in PostgreSQL plus their vectors in Qdrant."""

    def __init__(self, session: AsyncSession, vector_index: ConceptVectorIndex):
        self.session = session
        self.vector_index = vector_index

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_by_id(self, concept_id: str) -> Optional[Concept]:
        return await self.session.get(Concept, str(concept_id))

    async def get_by_slug(self, slug: str) -> Optional[Concept]:
        result = await self.session.execute(select(Concept).where(Concept.slug == slug))
        return result.scalars().first()

    async def get_many(self, concept_ids: Iterable[str]) -> dict[str, Concept]:
        """Fetch several concepts in one round trip, keyed by id."""
        ids = [str(i) for i in concept_ids]
        if not ids:
            return {}
        result = await self.session.execute(select(Concept).where(Concept.id.in_(ids)))
        return {str(c.id): c for c in result.scalars().all()}

    async def search_by_name(self, query: str, limit: int = 20) -> list[Concept]:
        """Concepts whose name contains ``query`` (case-insensitive), ordered by name."""
        needle = (query or "").strip()
        if not needle or limit <= 0:
            return []
        stmt = (
            select(Concept)
            .where(Concept.name.ilike(f"%{_escape_like(needle)}%", escape="\\"))
            .order_by(Concept.name, Concept.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_missing_embeddings(self, limit: int = 100) -> list[Concept]:
        """Concepts that have no vector yet, oldest first."""
        stmt = (
            select(Concept)
            .where(Concept.has_embedding.is_(False))
            .order_by(Concept.created_at, Concept.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(
        self,
        name: str,
        description: str,
        recommended_reading: Optional[list[dict[str, Any]]] = None,
        embedding: Optional[Sequence[float]] = None,
    ) -> Concept:
        """
        Insert a new concept.

        Args:
            name: Display name (slug is derived from it)
            description: Lesson text
            recommended_reading: Optional list of reading entries
            embedding: Optional vector; when absent the concept is created
                without one and stays invisible to similarity search

        Returns:
            The stored concept

        Raises:
            ValueError: if the name yields an empty slug
            DuplicateSlugError: if the slug is already taken
            ConceptStoreError: on any other storage failure
        """
        name = (name or "").strip()
        slug = slugify(name)

        stmt = (
            insert(Concept)
            .values(
                id=generate_uuid(),
                name=name,
                slug=slug,
                description=description or "",
                recommended_reading=list(recommended_reading or []),
                has_embedding=False,
                created_at=utc_now(),
            )
            .on_conflict_do_nothing(index_elements=["slug"])
            .returning(Concept)
        )

        try:
            result = await self.session.execute(stmt)
            concept = result.scalars().first()
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConceptStoreError(f"Failed to insert concept {slug}: {e.orig}") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise ConceptStoreError(f"Failed to insert concept {slug}: {e}") from e

        if concept is None:
            raise DuplicateSlugError(slug)

        if embedding is not None:
            await self._store_vector(concept, embedding)

        return concept

    async def attach_embedding(self, concept_id: str, embedding: Sequence[float]) -> Concept:
        """
        Store the vector for a concept created without one.

        Raises:
            ConceptNotFoundError: if the concept does not exist
            ConceptStoreError: if the vector could not be stored
        """
        concept = await self.get_by_id(concept_id)
        if concept is None:
            raise ConceptNotFoundError(str(concept_id))

        if not await self._store_vector(concept, embedding):
            raise ConceptStoreError(f"Failed to store embedding for concept {concept_id}")
        return concept

    async def _store_vector(self, concept: Concept, embedding: Sequence[float]) -> bool:
        try:
            await self.vector_index.upsert(concept.id, embedding, payload=concept_payload(concept))
        except Exception as e:
            logger.warning(f"Concept {concept.slug} stored without embedding: {e}")
            return False

        try:
            await self.session.execute(
                update(Concept).where(Concept.id == concept.id).values(has_embedding=True)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            # The vector exists; the flag only drives backfill, which is idempotent.
            logger.warning(f"Failed to flag embedding for concept {concept.slug}: {e}")
        concept.has_embedding = True
        return True

    # ------------------------------------------------------------------
    # Similarity
    # ------------------------------------------------------------------

    async def get_embedding(self, concept_id: str) -> Optional[list[float]]:
        return await self.vector_index.get_vector(str(concept_id))

    async def find_nearest_scored(
        self,
        embedding: Sequence[float],
        limit: int,
        exclude_ids: Iterable[str] = (),
        min_similarity: Optional[float] = None,
    ) -> list[tuple[Concept, float]]:
        """
        Nearest concepts with their cosine similarity, most similar first.

        Only concepts with a stored vector are candidates. Vector hits whose
        row is missing are dropped.
        """
        threshold = min_similarity if min_similarity is not None and min_similarity > 0 else None
        hits = await self.vector_index.search(
            embedding,
            limit=limit,
            exclude_ids=exclude_ids,
            score_threshold=threshold,
        )
        if not hits:
            return []

        rows = await self.get_many(concept_id for concept_id, _ in hits)
        scored: list[tuple[Concept, float]] = []
        for concept_id, score in hits:
            concept = rows.get(concept_id)
            if concept is None:
                logger.warning(f"Vector index returned unknown concept {concept_id}")
                continue
            if threshold is not None and score < threshold:
                continue
            scored.append((concept, score))
        return scored

    async def find_nearest(
        self,
        embedding: Sequence[float],
        limit: int,
        exclude_ids: Iterable[str] = (),
    ) -> list[Concept]:
        """Up to ``limit`` concepts by ascending cosine distance."""
        scored = await self.find_nearest_scored(embedding, limit, exclude_ids)
        return [concept for concept, _ in scored]
