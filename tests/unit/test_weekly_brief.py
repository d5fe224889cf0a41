"""Unit tests for the built-in weekly brief operation."""

import json
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from fanout_jobs.handlers.weekly_brief import build_weekly_brief
from fanout_jobs.models import ExecuteResult, JobContext


@pytest.fixture
def conn():
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=[{"status": "completed", "total": 4}])
    conn.execute = AsyncMock()
    return conn


@pytest.fixture
def ctx(conn):
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    return JobContext(tenant_id="tenant-a", job_key="2026-10-11", attempt=1, db_pool=pool)


@pytest.mark.asyncio
async def test_upserts_brief_for_week(ctx, conn):
    result = await build_weekly_brief(ctx, "tenant-a", "2026-10-11")

    assert ExecuteResult.coerce(result).success is True

    fetch_args = conn.fetch.call_args.args
    assert fetch_args[1] == "tenant-a"
    assert fetch_args[2] == datetime(2026, 10, 5, tzinfo=timezone.utc)
    assert fetch_args[3] == datetime(2026, 10, 12, tzinfo=timezone.utc)

    execute_args = conn.execute.call_args.args
    assert "ON CONFLICT" in execute_args[0]
    assert execute_args[2] == date(2026, 10, 11)
    assert json.loads(execute_args[3]) == {"completed": 4}


@pytest.mark.asyncio
async def test_rejects_malformed_job_key(ctx):
    with pytest.raises(ValueError):
        await build_weekly_brief(ctx, "tenant-a", "last-week")
