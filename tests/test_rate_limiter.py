"""Tests for the sliding-window generation rate limiter."""

import logging
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from philtree.services.rate_limiter import (
    GenerationLogStore,
    GenerationRateLimiter,
    RateLimitExceededError,
    RateLimitStatus,
)

from tests.fakes import BASE_TIME, FakeClock, InMemoryGenerationLog


def _limiter(limit: int = 10, minutes: int = 60):
    clock = FakeClock()
    log = InMemoryGenerationLog()
    limiter = GenerationRateLimiter(log, limit=limit, window=timedelta(minutes=minutes), clock=clock)
    return limiter, log, clock


@pytest.mark.asyncio
class TestGenerationRateLimiter:
    async def test_fresh_user_has_full_quota(self):
        limiter, _, _ = _limiter()

        status = await limiter.check("alice")

        assert status.allowed is True
        assert status.remaining == 10
        assert status.limit == 10
        assert status.reset_at is None

    async def test_remaining_decreases_by_one_per_record(self):
        limiter, _, clock = _limiter(limit=3)

        seen = []
        for _ in range(3):
            seen.append((await limiter.check("alice")).remaining)
            await limiter.record("alice")
            clock.advance(seconds=30)

        final = await limiter.check("alice")
        assert seen == [3, 2, 1]
        assert final.remaining == 0
        assert final.allowed is False

    async def test_users_are_counted_separately(self):
        limiter, _, _ = _limiter(limit=1)
        await limiter.record("alice")

        assert (await limiter.check("alice")).allowed is False
        assert (await limiter.check("bob")).allowed is True

    async def test_reset_at_is_oldest_entry_plus_window(self):
        limiter, _, clock = _limiter(limit=2)
        await limiter.record("alice")
        clock.advance(minutes=20)
        await limiter.record("alice")
        clock.advance(minutes=5)

        status = await limiter.check("alice")

        assert status.allowed is False
        assert status.reset_at == BASE_TIME + timedelta(minutes=60)

    async def test_retry_after_uses_limiter_clock(self):
        limiter, _, clock = _limiter(limit=1)
        await limiter.record("alice")
        clock.advance(minutes=25)

        status = await limiter.check("alice")

        assert status.checked_at == BASE_TIME + timedelta(minutes=25)
        assert status.retry_after_seconds == 35 * 60

    async def test_quota_returns_when_oldest_entry_leaves_window(self):
        limiter, _, clock = _limiter(limit=2)
        await limiter.record("alice")
        clock.advance(minutes=30)
        await limiter.record("alice")

        clock.advance(minutes=31)
        status = await limiter.check("alice")

        assert status.allowed is True
        assert status.remaining == 1

    async def test_unreadable_log_fails_open_with_warning(self, caplog):
        limiter, log, _ = _limiter(limit=1)
        await limiter.record("alice")
        log.fail_reads = True

        with caplog.at_level(logging.WARNING, logger="philtree.services.rate_limiter"):
            status = await limiter.check("alice")

        assert status.allowed is True
        assert status.remaining == 1
        assert "allowing" in caplog.text

    async def test_prune_removes_only_expired_entries(self):
        limiter, log, clock = _limiter()
        await limiter.record("alice")
        clock.advance(minutes=90)
        await limiter.record("bob")

        deleted = await limiter.prune()

        assert deleted == 1
        assert [u for u, _ in log.entries] == ["bob"]


def test_exceeded_error_exposes_status():
    status = RateLimitStatus(allowed=False, remaining=0, limit=10, reset_at=BASE_TIME)

    err = RateLimitExceededError(status)

    assert err.remaining == 0
    assert err.limit == 10
    assert err.reset_at == BASE_TIME
    assert "10 per window" in str(err)


def test_retry_after_is_never_negative():
    status = RateLimitStatus(allowed=False, remaining=0, limit=10, reset_at=BASE_TIME - timedelta(days=1))
    assert status.retry_after_seconds == 0
    assert RateLimitStatus(allowed=True, remaining=3, limit=10).retry_after_seconds is None


@pytest.mark.asyncio
async def test_log_store_rolls_back_and_reraises_on_read_failure():
    session = AsyncMock(spec=AsyncSession)
    session.execute.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))
    store = GenerationLogStore(session)

    with pytest.raises(OperationalError):
        await store.timestamps_since("alice", BASE_TIME)

    session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_log_store_append_commits():
    session = AsyncMock(spec=AsyncSession)
    session.add = MagicMock()
    store = GenerationLogStore(session)

    await store.append("alice", BASE_TIME)

    entry = session.add.call_args.args[0]
    assert entry.user_id == "alice"
    assert entry.created_at == BASE_TIME
    session.commit.assert_awaited_once()
