"""Per-user generation log used for rate limiting."""

from __future__ import annotations

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from philtree.models.base import Base, CreatedAtMixin, UUIDMixin


class GenerationLogEntry(Base, UUIDMixin, CreatedAtMixin):
    __tablename__ = "user_generation_log"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Opaque user identifier from the session layer",
    )

    __table_args__ = (
        Index("ix_user_generation_log_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<GenerationLogEntry {self.user_id} @ {self.created_at}>"
