"""Branch choice analytics.

Counts which branch type users pick from each concept. Increments are an
atomic upsert at the database so concurrent choices on a popular concept never
lose updates. Everything here is best effort: failures are logged and never
reach the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from philtree.models.base import generate_uuid
from philtree.models.branch_analytics import BranchAnalyticsCounter
from philtree.models.branch_type import BranchType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BranchStat:
    branch_type: str
    count: int
    percentage: float


class BranchAnalytics:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record_choice(self, concept_id: str, branch_type: BranchType | str) -> bool:
        """Increment the counter for (concept, branch type). Returns False on failure."""
        try:
            bt = BranchType(branch_type).value
        except ValueError:
            logger.warning(f"Ignoring branch choice with unknown type {branch_type!r}")
            return False

        stmt = insert(BranchAnalyticsCounter).values(
            id=generate_uuid(),
            concept_id=str(concept_id),
            branch_type=bt,
            chosen_count=1,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["concept_id", "branch_type"],
            set_={"chosen_count": BranchAnalyticsCounter.chosen_count + 1},
        )

        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning(f"Failed to record branch choice {bt} for concept {concept_id}: {e}")
            return False
        return True

    async def branch_stats(self, concept_id: str) -> list[BranchStat]:
        """Per-type choice counts with each type's share of all choices from the concept."""
        try:
            result = await self.session.execute(
                select(BranchAnalyticsCounter)
                .where(BranchAnalyticsCounter.concept_id == str(concept_id))
                .order_by(BranchAnalyticsCounter.chosen_count.desc(), BranchAnalyticsCounter.branch_type)
            )
            rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning(f"Failed to read branch stats for concept {concept_id}: {e}")
            return []

        total = sum(int(r.chosen_count or 0) for r in rows)
        return [
            BranchStat(
                branch_type=r.branch_type,
                count=int(r.chosen_count or 0),
                percentage=(int(r.chosen_count or 0) / total) * 100 if total > 0 else 0.0,
            )
            for r in rows
        ]
