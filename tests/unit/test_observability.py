"""Unit tests for the observability views."""

from datetime import datetime, timedelta, timezone

import pytest

from fanout_jobs.models import JobLogStatus, QueueMetrics
from fanout_jobs.observability import ObservabilityViews, as_utc, nearest_rank

JOB_KEY = "2026-10-11"


@pytest.fixture
def views(job_log, queue, dead_letter_queue, clock):
    return ObservabilityViews(job_log, queue, dead_letter_queue, clock=clock)


def test_nearest_rank():
    values = list(range(1, 101))

    assert nearest_rank(values, 50) == 50
    assert nearest_rank(values, 95) == 95
    assert nearest_rank(values, 99) == 99
    assert nearest_rank([7], 99) == 7
    assert nearest_rank([], 50) is None


@pytest.mark.asyncio
async def test_run_outcomes(views, job_log):
    log = job_log.append
    await log("tenant-a", JOB_KEY, JobLogStatus.QUEUED, 1)
    await log("tenant-a", JOB_KEY, JobLogStatus.COMPLETED, 1, duration_ms=10)
    await log("tenant-b", JOB_KEY, JobLogStatus.FAILED, 1, error_message="x")
    await log("tenant-b", JOB_KEY, JobLogStatus.DEAD_LETTERED, 4)
    await log("tenant-c", JOB_KEY, JobLogStatus.FAILED, 1, error_message="y")
    await log("tenant-d", JOB_KEY, JobLogStatus.PROCESSING, 1)
    await log("tenant-e", JOB_KEY, JobLogStatus.COMPLETED, 1, noop=True)
    await log("tenant-f", "2026-10-04", JobLogStatus.COMPLETED, 1)

    outcome = await views.run_outcomes(JOB_KEY)

    assert outcome.tenant_count == 5
    assert outcome.completed_count == 2
    assert outcome.noop_count == 1
    assert outcome.dead_lettered_count == 1
    assert outcome.failed_count == 1
    assert outcome.in_flight_count == 1
    assert outcome.failed_attempt_count == 2
    assert outcome.completion_ratio == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_run_outcomes_with_no_rows(views):
    outcome = await views.run_outcomes(JOB_KEY)

    assert outcome.tenant_count == 0
    assert outcome.completion_ratio is None


@pytest.mark.asyncio
async def test_duration_percentiles_ignore_noops(views, job_log):
    for duration in range(1, 21):
        await job_log.append(f"tenant-{duration}", JOB_KEY, JobLogStatus.COMPLETED, 1, duration_ms=duration * 100)
    await job_log.append("tenant-b", JOB_KEY, JobLogStatus.COMPLETED, 1, duration_ms=1, noop=True)
    await job_log.append("tenant-c", JOB_KEY, JobLogStatus.PROCESSING, 1)

    percentiles = await views.duration_percentiles(job_key=JOB_KEY)

    assert percentiles.count == 20
    assert percentiles.p50 == 1000
    assert percentiles.p95 == 1900
    assert percentiles.p99 == 2000


@pytest.mark.asyncio
async def test_tenant_failure_leaderboard(views, job_log):
    for _ in range(3):
        await job_log.append("tenant-b", JOB_KEY, JobLogStatus.FAILED, 1, error_message="timeout")
    await job_log.append("tenant-b", JOB_KEY, JobLogStatus.DEAD_LETTERED, 4)
    await job_log.append("tenant-a", JOB_KEY, JobLogStatus.FAILED, 1, error_message="bad input")
    await job_log.append("tenant-c", JOB_KEY, JobLogStatus.COMPLETED, 1)

    board = await views.tenant_failure_leaderboard()

    assert [row.tenant_id for row in board] == ["tenant-b", "tenant-a"]
    assert board[0].failure_count == 3
    assert board[0].dead_lettered_count == 1
    assert board[0].last_error == "timeout"
    assert board[1].last_error == "bad input"


@pytest.mark.asyncio
async def test_leaderboard_limit(views, job_log):
    for i in range(5):
        await job_log.append(f"tenant-{i}", JOB_KEY, JobLogStatus.FAILED, 1)

    board = await views.tenant_failure_leaderboard(limit=2)

    assert len(board) == 2


@pytest.mark.asyncio
async def test_detect_stall(views, queue, job_log, clock):
    await queue.enqueue("tenant-a", JOB_KEY)
    await job_log.append("tenant-a", JOB_KEY, JobLogStatus.QUEUED, 1)

    clock.advance(600)
    healthy = await views.detect_stall(window_seconds=3600)
    assert healthy.stalled is False
    assert healthy.idle_seconds == 600

    clock.advance(3600)
    stalled = await views.detect_stall(window_seconds=3600)
    assert stalled.stalled is True
    assert stalled.pending_count == 1


@pytest.mark.asyncio
async def test_empty_queue_is_never_stalled(views, job_log, clock):
    await job_log.append("tenant-a", JOB_KEY, JobLogStatus.COMPLETED, 1)
    clock.advance(86400)

    report = await views.detect_stall(window_seconds=60)

    assert report.stalled is False


@pytest.mark.asyncio
async def test_stall_without_any_log_rows_uses_oldest_age(views, queue, clock):
    await queue.enqueue("tenant-a", JOB_KEY)
    clock.advance(120)

    report = await views.detect_stall(window_seconds=60)

    assert report.stalled is True
    assert report.idle_seconds == 120


@pytest.mark.asyncio
async def test_queue_depth_history(views, job_log, clock):
    await job_log.record_depth_sample("tenant_jobs", QueueMetrics(pending_count=3))
    clock.advance(60)
    await job_log.record_depth_sample("tenant_jobs", QueueMetrics(pending_count=1))
    await job_log.record_depth_sample("other", QueueMetrics(pending_count=9))

    history = await views.queue_depth_history()
    recent = await views.queue_depth_history(since=clock() - timedelta(seconds=1))

    assert [s.pending_count for s in history] == [3, 1]
    assert [s.pending_count for s in recent] == [1]


@pytest.mark.asyncio
async def test_naive_since_is_read_as_utc(views, job_log, clock):
    await job_log.append("tenant-a", JOB_KEY, JobLogStatus.FAILED, 1, duration_ms=5)
    await job_log.record_depth_sample("tenant_jobs", QueueMetrics(pending_count=2))
    naive_before = (clock() - timedelta(minutes=1)).replace(tzinfo=None)
    naive_after = (clock() + timedelta(minutes=1)).replace(tzinfo=None)

    assert len(await views.queue_depth_history(since=naive_before)) == 1
    assert (await views.duration_percentiles(since=naive_before)).count == 1
    assert len(await views.tenant_failure_leaderboard(since=naive_before)) == 1
    assert await views.tenant_failure_leaderboard(since=naive_after) == []


def test_as_utc():
    naive = datetime(2026, 10, 11, 12, 0)
    plus_two = datetime(2026, 10, 11, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert as_utc(None) is None
    assert as_utc(naive) == datetime(2026, 10, 11, 12, 0, tzinfo=timezone.utc)
    assert as_utc(plus_two).tzinfo == timezone.utc
    assert as_utc(plus_two).hour == 12


@pytest.mark.asyncio
async def test_pipeline_status(views, queue, dead_letter_queue):
    await queue.enqueue("tenant-a", JOB_KEY)
    await queue.enqueue("tenant-b", JOB_KEY)
    await dead_letter_queue.enqueue("tenant-c", JOB_KEY)

    status = await views.pipeline_status()

    assert status.queue_name == "tenant_jobs"
    assert status.pending_count == 2
    assert status.dead_letter_queue_name == "tenant_jobs_dlq"
    assert status.dead_letter_count == 1


@pytest.mark.asyncio
async def test_views_do_not_write(views, job_log, queue):
    await queue.enqueue("tenant-a", JOB_KEY)
    await job_log.append("tenant-a", JOB_KEY, JobLogStatus.QUEUED, 1)

    await views.run_outcomes(JOB_KEY)
    await views.duration_percentiles()
    await views.tenant_failure_leaderboard()
    await views.detect_stall(60)
    await views.pipeline_status()

    assert len(job_log.entries) == 1
    assert job_log.depth_samples == []
    assert len(queue) == 1
