"""
Generation Rate Limiting
========================

Sliding-window limit on how many generation actions a user may trigger.

The window is computed from the append-only ``user_generation_log`` table.
Check and record are separate steps and are not atomic: two requests arriving
together may both pass ``check`` before either records. The limit is a cost
control, not a security boundary, so that race is accepted.

If the log cannot be read the limiter fails open.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from philtree.core.config import settings
from philtree.models.base import generate_uuid, utc_now
from philtree.models.generation_log import GenerationLogEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitStatus:
    """Result of a rate-limit check."""

    allowed: bool
    remaining: int
    limit: int
    reset_at: Optional[datetime] = None
    checked_at: Optional[datetime] = None

    @property
    def retry_after_seconds(self) -> Optional[int]:
        if self.reset_at is None:
            return None
        now = self.checked_at or utc_now()
        return max(0, int((self.reset_at - now).total_seconds()))


class RateLimitExceededError(Exception):
    """Raised when a user has no generation quota left in the current window."""

    def __init__(self, status: RateLimitStatus):
        self.status = status
        self.remaining = status.remaining
        self.reset_at = status.reset_at
        self.limit = status.limit
        super().__init__(
            f"Generation rate limit exceeded ({status.limit} per window). "
            f"Resets at {status.reset_at.isoformat() if status.reset_at else 'unknown'}"
        )


class GenerationLogStore:
    """SQL access to the generation log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def timestamps_since(self, user_id: str, since: datetime) -> List[datetime]:
        """Entry timestamps for ``user_id`` at or after ``since``, oldest first."""
        stmt = (
            select(GenerationLogEntry.created_at)
            .where(
                GenerationLogEntry.user_id == user_id,
                GenerationLogEntry.created_at >= since,
            )
            .order_by(GenerationLogEntry.created_at)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        return list(result.scalars().all())

    async def append(self, user_id: str, at: datetime) -> None:
        try:
            self.session.add(GenerationLogEntry(id=generate_uuid(), user_id=user_id, created_at=at))
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def delete_before(self, before: datetime) -> int:
        try:
            result = await self.session.execute(
                delete(GenerationLogEntry).where(GenerationLogEntry.created_at < before)
            )
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        return int(getattr(result, "rowcount", 0) or 0)


class GenerationRateLimiter:
    """
    Per-user sliding window over generation log entries.

    Features:
    - N actions per rolling window (both configurable)
    - Reset time derived from the oldest entry in the window
    - Fails open (with a warning) when the log is unreadable
    """

    def __init__(
        self,
        log_store: GenerationLogStore,
        limit: Optional[int] = None,
        window: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize rate limiter.

        Args:
            log_store: Generation log access
            limit: Max generations per window (GENERATION_RATE_LIMIT if None)
            window: Window length (GENERATION_RATE_WINDOW_MINUTES if None)
            clock: Returns the current UTC time
        """
        self.log_store = log_store
        self.limit = int(limit if limit is not None else settings.GENERATION_RATE_LIMIT)
        self.window = window or timedelta(minutes=settings.GENERATION_RATE_WINDOW_MINUTES)
        self.clock = clock

    async def check(self, user_id: str) -> RateLimitStatus:
        now = self.clock()
        try:
            entries = await self.log_store.timestamps_since(user_id, now - self.window)
        except Exception as e:
            logger.warning(f"Rate limit check failed for user {user_id}, allowing: {e}")
            # Fail open - allow request
            return RateLimitStatus(allowed=True, remaining=self.limit, limit=self.limit, checked_at=now)

        count = len(entries)
        allowed = count < self.limit
        reset_at = None
        if not allowed and entries:
            reset_at = min(entries) + self.window

        return RateLimitStatus(
            allowed=allowed,
            remaining=max(0, self.limit - count),
            limit=self.limit,
            reset_at=reset_at,
            checked_at=now,
        )

    async def record(self, user_id: str) -> None:
        """Consume one unit of quota. Call only after a usable generation."""
        await self.log_store.append(user_id, self.clock())

    async def prune(self, before: Optional[datetime] = None) -> int:
        """Delete entries that can no longer affect any window."""
        cutoff = before or (self.clock() - self.window)
        deleted = await self.log_store.delete_before(cutoff)
        if deleted:
            logger.info(f"Pruned {deleted} generation log entries older than {cutoff.isoformat()}")
        return deleted
