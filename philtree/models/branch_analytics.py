"""Aggregate counts of which branch types users choose from each concept."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from philtree.models.base import Base, UUIDMixin
from philtree.models.branch_type import BRANCH_TYPE_VALUES


_BRANCH_TYPE_SQL = ", ".join(f"'{v}'" for v in BRANCH_TYPE_VALUES)


class BranchAnalyticsCounter(Base, UUIDMixin):
    __tablename__ = "branch_analytics"

    concept_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("concepts.id"),
        nullable=False,
        index=True,
    )

    branch_type: Mapped[str] = mapped_column(String(32), nullable=False)

    chosen_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        doc="Monotonic choice counter",
    )

    __table_args__ = (
        UniqueConstraint("concept_id", "branch_type", name="uq_branch_analytics_concept_type"),
        CheckConstraint(
            f"branch_type IN ({_BRANCH_TYPE_SQL})",
            name="ck_branch_analytics_branch_type",
        ),
    )
