"""Postgres integration tests using testcontainers.

Skipped unless FANOUT_JOBS_INTEGRATION=1 (needs a Docker daemon).
"""

import asyncio
import os

import asyncpg
import pytest
import pytest_asyncio

from fanout_jobs.alerts import PostgresAlertSink
from fanout_jobs.ddl import get_ddl
from fanout_jobs.handlers.weekly_brief import WEEKLY_BRIEF_DDL
from fanout_jobs.models import JobLogStatus
from fanout_jobs.queue import PostgresJobQueue
from fanout_jobs.service import PipelineService
from fanout_jobs.storage import (
    PostgresCompletionRecords,
    PostgresJobLog,
    StaticTenantSource,
)

pytestmark = pytest.mark.skipif(
    os.getenv("FANOUT_JOBS_INTEGRATION") != "1",
    reason="set FANOUT_JOBS_INTEGRATION=1 to run Postgres integration tests",
)

JOB_KEY = "2026-10-11"


@pytest.fixture(scope="module")
def postgres_container():
    """Create a PostgreSQL test container."""
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:15") as postgres:
        yield postgres


@pytest_asyncio.fixture
async def db_pool(postgres_container):
    """Create a database connection pool with a clean schema."""
    dsn = postgres_container.get_connection_url().replace("+psycopg2", "")
    pool = await asyncpg.create_pool(dsn, min_size=1, max_size=5)

    async with pool.acquire() as conn:
        await conn.execute(get_ddl())
        await conn.execute(WEEKLY_BRIEF_DDL)
        await conn.execute(
            "TRUNCATE job_queue, job_log, job_queue_depth_samples, job_alerts, weekly_brief"
        )

    yield pool

    await pool.close()


@pytest.mark.asyncio
async def test_read_batch_hides_messages_from_concurrent_readers(db_pool):
    queue = PostgresJobQueue(db_pool, "tenant_jobs")
    for i in range(10):
        await queue.enqueue(f"tenant-{i}", JOB_KEY)

    batches = await asyncio.gather(
        *[queue.read_batch(max_count=4, visibility_timeout=60) for _ in range(4)]
    )

    ids = [m.message_id for batch in batches for m in batch]
    assert len(ids) == 10
    assert len(set(ids)) == 10
    assert all(m.delivery_count == 1 for batch in batches for m in batch)


@pytest.mark.asyncio
async def test_visibility_timeout_and_ack(db_pool):
    queue = PostgresJobQueue(db_pool, "tenant_jobs")
    message_id = await queue.enqueue("tenant-a", JOB_KEY)

    [first] = await queue.read_batch(max_count=1, visibility_timeout=0.2)
    assert await queue.read_batch(max_count=1, visibility_timeout=0.2) == []

    await asyncio.sleep(0.3)
    [second] = await queue.read_batch(max_count=1, visibility_timeout=60)
    assert second.message_id == first.message_id == message_id
    assert second.delivery_count == 2

    await queue.ack(message_id)
    await queue.ack("not-a-number")
    metrics = await queue.metrics()
    assert metrics.pending_count == 0
    assert metrics.oldest_age is None


@pytest.mark.asyncio
async def test_weekly_brief_pipeline(db_pool):
    """Enqueue, dispatch and complete the built-in weekly brief operation."""
    from fanout_jobs.handlers.weekly_brief import build_weekly_brief

    queue = PostgresJobQueue(db_pool, "tenant_jobs")
    dead_letters = PostgresJobQueue(db_pool, "tenant_jobs_dlq")
    job_log = PostgresJobLog(db_pool)
    service = PipelineService(
        queue=queue,
        dead_letter_queue=dead_letters,
        job_log=job_log,
        completions=PostgresCompletionRecords(db_pool, "weekly_brief", key_column="week_end"),
        tenants=StaticTenantSource(["tenant-a", "tenant-b"]),
        operation=build_weekly_brief,
        alert_sink=PostgresAlertSink(db_pool),
        db_pool=db_pool,
    )

    enqueued = await service.run_enqueue_pass(JOB_KEY)
    assert enqueued.enqueued_count == 2

    await service.run_dispatch_pass()
    await service.drain()

    assert (await queue.metrics()).pending_count == 0
    completed = await job_log.list_entries(job_key=JOB_KEY, status=JobLogStatus.COMPLETED)
    assert sorted(e.tenant_id for e in completed) == ["tenant-a", "tenant-b"]

    again = await service.run_enqueue_pass(JOB_KEY)
    assert again.enqueued_count == 0
    assert again.skipped_count == 2

    outcome = await service.views.run_outcomes(JOB_KEY)
    assert outcome.completion_ratio == 1.0
    assert len(await service.views.queue_depth_history()) == 1


@pytest.mark.asyncio
async def test_dead_letter_writes_alert(db_pool):
    queue = PostgresJobQueue(db_pool, "tenant_jobs")
    dead_letters = PostgresJobQueue(db_pool, "tenant_jobs_dlq")

    async def always_fails(ctx, tenant_id, job_key):
        return {"success": False, "error": "no sales data"}

    service = PipelineService(
        queue=queue,
        dead_letter_queue=dead_letters,
        job_log=PostgresJobLog(db_pool),
        completions=PostgresCompletionRecords(db_pool, "weekly_brief", key_column="week_end"),
        tenants=StaticTenantSource(["tenant-a"]),
        operation=always_fails,
        alert_sink=PostgresAlertSink(db_pool),
        visibility_timeout=0.1,
        max_attempts=1,
    )
    message_id = await queue.enqueue("tenant-a", JOB_KEY)

    await service.run_dispatch_pass()
    await service.drain()
    await asyncio.sleep(0.2)
    summary = await service.run_dispatch_pass()

    assert summary.dead_lettered_count == 1
    assert (await queue.metrics()).pending_count == 0
    assert (await dead_letters.metrics()).pending_count == 1
    [moved] = await dead_letters.read_batch(max_count=5, visibility_timeout=30)
    assert moved.message_id == message_id
    assert moved.payload["delivery_count"] == 2
    async with db_pool.acquire() as conn:
        alert = await conn.fetchrow("SELECT * FROM job_alerts WHERE tenant_id = $1", "tenant-a")
    assert "no sales data" in alert["description"]


@pytest.mark.asyncio
async def test_concurrent_real_completions_keep_one(db_pool):
    job_log = PostgresJobLog(db_pool)

    entries = await asyncio.gather(
        *[
            job_log.append("tenant-a", JOB_KEY, JobLogStatus.COMPLETED, 1, message_id=str(i))
            for i in range(3)
        ]
    )

    assert sorted(e.noop for e in entries) == [False, True, True]
    rows = await job_log.list_entries(tenant_id="tenant-a", status=JobLogStatus.COMPLETED)
    assert len(rows) == 3
