"""Unit tests for the enqueue pass."""

from unittest.mock import AsyncMock

import pytest

from fanout_jobs.enqueuer import Enqueuer
from fanout_jobs.models import JobLogStatus
from fanout_jobs.storage import StaticTenantSource


@pytest.fixture
def enqueuer(queue, job_log, completions, tenants, clock):
    return Enqueuer(queue, job_log, completions, tenants, clock=clock)


@pytest.mark.asyncio
async def test_enqueues_one_message_per_tenant(enqueuer, queue, job_log):
    summary = await enqueuer.run()

    assert summary.job_key == "2026-10-11"
    assert summary.tenant_count == 3
    assert summary.enqueued_count == 3
    assert summary.skipped_count == 0
    assert len(queue) == 3

    queued = await job_log.list_entries(status=JobLogStatus.QUEUED)
    assert [e.tenant_id for e in queued] == ["tenant-a", "tenant-b", "tenant-c"]
    assert all(e.attempt == 1 and e.message_id for e in queued)


@pytest.mark.asyncio
async def test_skips_tenants_with_completion_record(enqueuer, queue, completions):
    completions.mark("tenant-b", "2026-10-11")

    summary = await enqueuer.run()

    assert summary.enqueued_count == 2
    assert summary.skipped_count == 1
    messages = await queue.read_batch(max_count=10, visibility_timeout=30)
    assert {m.tenant_id for m in messages} == {"tenant-a", "tenant-c"}


@pytest.mark.asyncio
async def test_second_run_only_enqueues_unfinished_tenants(enqueuer, queue, completions):
    await enqueuer.run()
    completions.mark("tenant-a", "2026-10-11")
    completions.mark("tenant-c", "2026-10-11")

    summary = await enqueuer.run()

    assert summary.enqueued_count == 1
    assert summary.skipped_count == 2
    assert len(queue) == 4


@pytest.mark.asyncio
async def test_explicit_job_key(enqueuer, queue):
    summary = await enqueuer.run(job_key="2026-09-27")

    assert summary.job_key == "2026-09-27"
    messages = await queue.read_batch(max_count=10, visibility_timeout=30)
    assert {m.job_key for m in messages} == {"2026-09-27"}


@pytest.mark.asyncio
async def test_duplicate_tenant_ids_are_enqueued_once(queue, job_log, completions, clock):
    tenants = StaticTenantSource(["tenant-a", "tenant-a", "tenant-b"])
    enqueuer = Enqueuer(queue, job_log, completions, tenants, clock=clock)

    summary = await enqueuer.run()

    assert summary.tenant_count == 2
    assert len(queue) == 2


@pytest.mark.asyncio
async def test_enqueue_failure_is_isolated(enqueuer, queue):
    original = queue.enqueue

    async def flaky(tenant_id, job_key, payload=None):
        if tenant_id == "tenant-b":
            raise RuntimeError("queue unavailable")
        return await original(tenant_id, job_key, payload)

    queue.enqueue = flaky

    summary = await enqueuer.run()

    assert summary.enqueued_count == 2
    assert summary.error_count == 1
    assert summary.errors == [{"tenant_id": "tenant-b", "error": "queue unavailable"}]


@pytest.mark.asyncio
async def test_log_failure_does_not_fail_tenant(enqueuer, job_log, queue):
    job_log.append = AsyncMock(side_effect=RuntimeError("log down"))

    summary = await enqueuer.run()

    assert summary.enqueued_count == 3
    assert summary.error_count == 0
    assert len(queue) == 3


@pytest.mark.asyncio
async def test_tenant_source_failure_propagates(queue, job_log, completions, clock):
    tenants = StaticTenantSource([])
    tenants.list_tenants = AsyncMock(side_effect=RuntimeError("db down"))
    enqueuer = Enqueuer(queue, job_log, completions, tenants, clock=clock)

    with pytest.raises(RuntimeError):
        await enqueuer.run()

    assert len(queue) == 0
