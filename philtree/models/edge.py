"""
Edge model.

Directed link between two concepts. At most one edge exists per ordered
(source, target) pair regardless of branch type. Edges are never updated.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from philtree.models.base import Base, CreatedAtMixin, UUIDMixin
from philtree.models.branch_type import BRANCH_TYPE_VALUES

if TYPE_CHECKING:
    from philtree.models.concept import Concept


_BRANCH_TYPE_SQL = ", ".join(f"'{v}'" for v in BRANCH_TYPE_VALUES)


class Edge(Base, UUIDMixin, CreatedAtMixin):
    __tablename__ = "edges"

    source_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("concepts.id"),
        nullable=False,
        index=True,
        doc="Concept the branch starts from",
    )

    target_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("concepts.id"),
        nullable=False,
        index=True,
        doc="Concept the branch leads to",
    )

    branch_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        doc="constructive | critique | author | wildcard",
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        doc="Why the target follows from the source",
    )

    target: Mapped["Concept"] = relationship(
        "Concept",
        foreign_keys=[target_id],
        lazy="raise",
    )

    __table_args__ = (
        UniqueConstraint("source_id", "target_id", name="uq_edges_source_target"),
        CheckConstraint(f"branch_type IN ({_BRANCH_TYPE_SQL})", name="ck_edges_branch_type"),
        CheckConstraint("source_id <> target_id", name="ck_edges_no_self_loop"),
        Index("ix_edges_source_created", "source_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Edge {self.source_id} -[{self.branch_type}]-> {self.target_id}>"
