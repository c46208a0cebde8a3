from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from philtree.models.branch_analytics import BranchAnalyticsCounter
from philtree.services.analytics import BranchAnalytics


@pytest.fixture
def session():
    return AsyncMock(spec=AsyncSession)


@pytest.mark.asyncio
async def test_record_choice_is_an_atomic_increment(session):
    analytics = BranchAnalytics(session)

    assert await analytics.record_choice("c1", "critique") is True

    stmt = session.execute.await_args.args[0]
    sql = str(stmt.compile(dialect=postgresql.dialect()))
    assert "ON CONFLICT (concept_id, branch_type) DO UPDATE" in sql
    assert "chosen_count + " in sql
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_record_choice_failure_is_swallowed(session, caplog):
    session.execute.side_effect = OperationalError("INSERT", {}, Exception("db down"))
    analytics = BranchAnalytics(session)

    assert await analytics.record_choice("c1", "author") is False
    session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_unknown_branch_type_is_ignored(session):
    analytics = BranchAnalytics(session)

    assert await analytics.record_choice("c1", "tangent") is False
    session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_branch_stats_percentages(session):
    rows = [
        BranchAnalyticsCounter(concept_id="c1", branch_type="constructive", chosen_count=3),
        BranchAnalyticsCounter(concept_id="c1", branch_type="wildcard", chosen_count=1),
    ]
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    session.execute.return_value = result

    stats = await BranchAnalytics(session).branch_stats("c1")

    assert [(s.branch_type, s.count, s.percentage) for s in stats] == [
        ("constructive", 3, 75.0),
        ("wildcard", 1, 25.0),
    ]


@pytest.mark.asyncio
async def test_branch_stats_read_failure_returns_empty(session):
    session.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))

    assert await BranchAnalytics(session).branch_stats("c1") == []


@pytest.mark.asyncio
async def test_branch_stats_are_ordered_by_count_then_type(session):
    result = MagicMock()
    result.scalars.return_value.all.return_value = []
    session.execute.return_value = result

    await BranchAnalytics(session).branch_stats("c1")

    sql = str(session.execute.await_args.args[0].compile(dialect=postgresql.dialect()))
    assert "ORDER BY branch_analytics.chosen_count DESC, branch_analytics.branch_type" in sql
