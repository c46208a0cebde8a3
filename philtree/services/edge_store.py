"""Edge store.

Sole writer of concept edges.

- Idempotent by pair: ``INSERT ... ON CONFLICT (source_id, target_id) DO
  NOTHING RETURNING``; a conflict re-fetches and returns the existing edge.
- Any other constraint violation (unknown concept, bad branch type) raises
  ``EdgeStoreError``.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from philtree.models.base import generate_uuid, utc_now
from philtree.models.branch_type import BranchType
from philtree.models.edge import Edge

logger = logging.getLogger(__name__)


class EdgeStoreError(Exception):
    """Unexpected storage failure while reading or writing edges."""


class EdgeStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        source_id: str,
        target_id: str,
        branch_type: BranchType | str,
        description: str,
    ) -> Edge:
        """Create the edge, or return the one that already links this pair."""
        source_id = str(source_id)
        target_id = str(target_id)
        if source_id == target_id:
            raise EdgeStoreError(f"Refusing to link concept {source_id} to itself")

        try:
            bt = BranchType(branch_type).value
        except ValueError as e:
            raise EdgeStoreError(f"Unknown branch type: {branch_type}") from e

        stmt = (
            insert(Edge)
            .values(
                id=generate_uuid(),
                source_id=source_id,
                target_id=target_id,
                branch_type=bt,
                description=description or "",
                created_at=utc_now(),
            )
            .on_conflict_do_nothing(index_elements=["source_id", "target_id"])
            .returning(Edge)
        )

        try:
            result = await self.session.execute(stmt)
            edge = result.scalars().first()
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise EdgeStoreError(f"Failed to create edge {source_id} -> {target_id}: {e.orig}") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise EdgeStoreError(f"Failed to create edge {source_id} -> {target_id}: {e}") from e

        if edge is not None:
            return edge

        existing = await self.get_by_pair(source_id, target_id)
        if existing is None:
            # Conflict reported but the row is gone; edges are never deleted.
            raise EdgeStoreError(f"Edge {source_id} -> {target_id} conflicted but could not be re-read")
        return existing

    async def get_by_pair(self, source_id: str, target_id: str) -> Optional[Edge]:
        result = await self.session.execute(
            select(Edge).where(Edge.source_id == str(source_id), Edge.target_id == str(target_id))
        )
        return result.scalars().first()

    async def list_from_source(self, source_id: str) -> list[Edge]:
        """Edges leaving ``source_id`` in creation order, with ``edge.target`` loaded."""
        stmt = (
            select(Edge)
            .options(joinedload(Edge.target))
            .where(Edge.source_id == str(source_id))
            .order_by(Edge.created_at, Edge.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().unique().all())

    async def target_ids_from_source(self, source_id: str) -> set[str]:
        result = await self.session.execute(
            select(Edge.target_id).where(Edge.source_id == str(source_id))
        )
        return {str(t) for t in result.scalars().all()}
