"""Unit tests for the worker."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from fanout_jobs.models import JobLogStatus, WorkerOutcome
from fanout_jobs.worker import Worker

JOB_KEY = "2026-10-11"


@pytest.fixture
def worker(queue, job_log, completions, operation):
    return Worker(queue, job_log, completions, operation)


async def _read_one(queue, tenant_id="tenant-a"):
    await queue.enqueue(tenant_id, JOB_KEY)
    [message] = await queue.read_batch(max_count=1, visibility_timeout=30)
    return message


def _statuses(job_log):
    return [(e.status, e.attempt) for e in job_log.entries]


@pytest.mark.asyncio
async def test_success_acks_and_logs(worker, queue, job_log, operation):
    message = await _read_one(queue)

    result = await worker.process(message)

    assert result.status == WorkerOutcome.COMPLETED.value
    assert result.attempt == 1
    assert operation.calls == [("tenant-a", JOB_KEY, 1)]
    assert len(queue) == 0
    assert _statuses(job_log) == [
        (JobLogStatus.PROCESSING, 1),
        (JobLogStatus.COMPLETED, 1),
    ]
    completed = job_log.entries[-1]
    assert completed.noop is False
    assert completed.duration_ms is not None


@pytest.mark.asyncio
async def test_failure_logs_and_does_not_ack(worker, queue, job_log, operation, clock):
    operation.failures["tenant-a"] = "upstream timeout"
    message = await _read_one(queue)

    result = await worker.process(message)

    assert result.status == WorkerOutcome.FAILED.value
    assert result.error == "upstream timeout"
    assert len(queue) == 1
    failed = job_log.entries[-1]
    assert failed.status == JobLogStatus.FAILED
    assert failed.error_message == "upstream timeout"
    assert failed.duration_ms is not None

    # Redelivered after the visibility timeout as the next attempt
    clock.advance(30)
    [again] = await queue.read_batch(max_count=1, visibility_timeout=30)
    assert again.delivery_count == 2


@pytest.mark.asyncio
async def test_exception_is_a_failure(queue, job_log, completions):
    async def broken(ctx, tenant_id, job_key):
        raise RuntimeError("kaboom")

    worker = Worker(queue, job_log, completions, broken)
    message = await _read_one(queue)

    result = await worker.process(message)

    assert result.status == WorkerOutcome.FAILED.value
    assert result.error == "kaboom"
    assert len(queue) == 1


@pytest.mark.asyncio
async def test_guard_short_circuits_completed_work(worker, queue, job_log, completions, operation):
    completions.mark("tenant-a", JOB_KEY)
    message = await _read_one(queue)

    result = await worker.process(message)

    assert result.status == WorkerOutcome.SKIPPED.value
    assert operation.calls == []
    assert len(queue) == 0
    [entry] = job_log.entries
    assert entry.status == JobLogStatus.COMPLETED
    assert entry.noop is True
    assert entry.note


@pytest.mark.asyncio
async def test_processing_twice_runs_operation_once(worker, queue, job_log, operation):
    await queue.enqueue("tenant-a", JOB_KEY)
    await queue.enqueue("tenant-a", JOB_KEY)
    first, second = await queue.read_batch(max_count=2, visibility_timeout=30)

    await worker.process(first)
    await worker.process(second)

    assert len(operation.calls) == 1
    real_completions = [
        e for e in job_log.entries if e.status == JobLogStatus.COMPLETED and not e.noop
    ]
    assert len(real_completions) == 1


@pytest.mark.asyncio
async def test_success_without_completion_record_is_a_failure(queue, job_log, completions):
    async def forgetful(ctx, tenant_id, job_key):
        return {"success": True}

    worker = Worker(queue, job_log, completions, forgetful)
    message = await _read_one(queue)

    result = await worker.process(message)

    assert result.status == WorkerOutcome.FAILED.value
    assert "completion record" in result.error
    assert len(queue) == 1


@pytest.mark.asyncio
async def test_operation_timeout(queue, job_log, completions):
    async def slow(ctx, tenant_id, job_key):
        await asyncio.sleep(5)

    worker = Worker(queue, job_log, completions, slow, operation_timeout_seconds=0.01)
    message = await _read_one(queue)

    result = await worker.process(message)

    assert result.status == WorkerOutcome.FAILED.value
    assert "timed out" in result.error


@pytest.mark.asyncio
async def test_log_write_failures_do_not_change_outcome(worker, queue, job_log):
    job_log.append = AsyncMock(side_effect=RuntimeError("log down"))
    message = await _read_one(queue)

    result = await worker.process(message)

    assert result.status == WorkerOutcome.COMPLETED.value
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_ack_failure_still_reports_completion(worker, queue, job_log):
    message = await _read_one(queue)
    queue.ack = AsyncMock(side_effect=RuntimeError("queue down"))

    result = await worker.process(message)

    assert result.status == WorkerOutcome.COMPLETED.value
    assert job_log.entries[-1].status == JobLogStatus.COMPLETED


@pytest.mark.asyncio
async def test_completion_check_failure_is_a_failure(worker, queue, completions, operation):
    completions.exists = AsyncMock(side_effect=RuntimeError("db down"))
    message = await _read_one(queue)

    result = await worker.process(message)

    assert result.status == WorkerOutcome.FAILED.value
    assert operation.calls == []
    assert len(queue) == 1


@pytest.mark.asyncio
async def test_attempt_follows_delivery_count(worker, queue, job_log, operation, clock):
    operation.failures["tenant-a"] = "nope"
    message = await _read_one(queue)
    await worker.process(message)

    clock.advance(30)
    del operation.failures["tenant-a"]
    [again] = await queue.read_batch(max_count=1, visibility_timeout=30)
    result = await worker.process(again)

    assert result.attempt == 2
    assert operation.calls[-1] == ("tenant-a", JOB_KEY, 2)


@pytest.mark.asyncio
async def test_run_direct_bypasses_queue(worker, queue, job_log, operation):
    result = await worker.run_direct("tenant-a", JOB_KEY)

    assert result.status == WorkerOutcome.COMPLETED.value
    assert result.message_id is None
    assert operation.calls == [("tenant-a", JOB_KEY, 1)]
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_run_direct_respects_guard_unless_forced(worker, completions, operation):
    completions.mark("tenant-a", JOB_KEY)

    skipped = await worker.run_direct("tenant-a", JOB_KEY)
    forced = await worker.run_direct("tenant-a", JOB_KEY, force=True)

    assert skipped.status == WorkerOutcome.SKIPPED.value
    assert forced.status == WorkerOutcome.COMPLETED.value
    assert len(operation.calls) == 1
