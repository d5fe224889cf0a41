"""Read-only views over the job log and queue metrics."""

import math
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from fanout_jobs.models import (
    DepthSample,
    DurationPercentiles,
    JobLogEntry,
    JobLogStatus,
    PipelineStatus,
    RunOutcome,
    StallReport,
    TenantFailures,
)
from fanout_jobs.queue.base import JobQueue
from fanout_jobs.storage.base import JobLogStore


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat a naive datetime as UTC and convert an aware one to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def nearest_rank(sorted_values: List[int], percentile: float) -> Optional[int]:
    """Nearest-rank percentile of an ascending list."""
    if not sorted_values:
        return None
    rank = max(1, math.ceil(percentile / 100 * len(sorted_values)))
    return sorted_values[rank - 1]


class ObservabilityViews:
    """
    Aggregations for dashboards and alerting.

    Nothing here writes to the job log or the queues.
    """

    def __init__(
        self,
        job_log: JobLogStore,
        queue: JobQueue,
        dead_letter_queue: JobQueue,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.job_log = job_log
        self.queue = queue
        self.dead_letter_queue = dead_letter_queue
        self.clock = clock

    async def queue_depth_history(
        self, since: Optional[datetime] = None, queue_name: Optional[str] = None
    ) -> List[DepthSample]:
        """Depth samples recorded by the dispatcher, oldest first."""
        return await self.job_log.list_depth_samples(
            queue_name or self.queue.name, as_utc(since)
        )

    async def run_outcomes(self, job_key: str) -> RunOutcome:
        """
        Classify every tenant seen for ``job_key`` by its latest state.

        A tenant with any ``completed`` row counts as completed (no-op rows
        are also counted in ``noop_count`` when they are the only completion).
        ``completion_ratio`` is completed tenants over tenants that reached
        a completed, failed or dead-lettered state.
        """
        entries = await self.job_log.list_entries(job_key=job_key)

        by_tenant: Dict[str, List[JobLogEntry]] = defaultdict(list)
        for entry in entries:
            by_tenant[entry.tenant_id].append(entry)

        outcome = RunOutcome(job_key=job_key, tenant_count=len(by_tenant))

        for tenant_entries in by_tenant.values():
            outcome.failed_attempt_count += sum(
                1 for e in tenant_entries if e.status == JobLogStatus.FAILED
            )
            completions = [e for e in tenant_entries if e.status == JobLogStatus.COMPLETED]
            latest = tenant_entries[-1].status

            if completions:
                outcome.completed_count += 1
                if all(e.noop for e in completions):
                    outcome.noop_count += 1
            elif any(e.status == JobLogStatus.DEAD_LETTERED for e in tenant_entries):
                outcome.dead_lettered_count += 1
            elif latest == JobLogStatus.FAILED:
                outcome.failed_count += 1
            else:
                outcome.in_flight_count += 1

        settled = outcome.completed_count + outcome.failed_count + outcome.dead_lettered_count
        if settled:
            outcome.completion_ratio = outcome.completed_count / settled
        return outcome

    async def duration_percentiles(
        self, job_key: Optional[str] = None, since: Optional[datetime] = None
    ) -> DurationPercentiles:
        """p50/p95/p99 of real attempt durations (completed and failed)."""
        entries = await self.job_log.list_entries(job_key=job_key, since=as_utc(since))
        durations = sorted(
            e.duration_ms
            for e in entries
            if e.duration_ms is not None
            and not e.noop
            and e.status in (JobLogStatus.COMPLETED, JobLogStatus.FAILED)
        )
        return DurationPercentiles(
            count=len(durations),
            p50=nearest_rank(durations, 50),
            p95=nearest_rank(durations, 95),
            p99=nearest_rank(durations, 99),
        )

    async def tenant_failure_leaderboard(
        self,
        job_key: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 10,
    ) -> List[TenantFailures]:
        """Tenants with the most failed attempts, worst first."""
        entries = await self.job_log.list_entries(job_key=job_key, since=as_utc(since))

        board: Dict[str, TenantFailures] = {}
        for entry in entries:
            if entry.status not in (JobLogStatus.FAILED, JobLogStatus.DEAD_LETTERED):
                continue
            row = board.setdefault(entry.tenant_id, TenantFailures(tenant_id=entry.tenant_id))
            if entry.status == JobLogStatus.FAILED:
                row.failure_count += 1
                row.last_error = entry.error_message
                row.last_failed_at = entry.created_at
            else:
                row.dead_lettered_count += 1

        ranked = sorted(
            board.values(),
            key=lambda r: (-r.failure_count, -r.dead_lettered_count, r.tenant_id),
        )
        return ranked[:limit]

    async def detect_stall(self, window_seconds: float) -> StallReport:
        """
        Flag a queue that holds messages while the job log has been idle.

        Any job log row counts as activity. With no rows at all the oldest
        message age, when known, stands in for the idle time.
        """
        queue_metrics = await self.queue.metrics()
        last_activity = await self.job_log.last_activity_at()

        idle_seconds = None
        if last_activity is not None:
            idle_seconds = (self.clock() - last_activity).total_seconds()
        elif queue_metrics.oldest_age is not None:
            idle_seconds = queue_metrics.oldest_age

        stalled = queue_metrics.pending_count > 0 and (
            idle_seconds is None or idle_seconds > window_seconds
        )
        return StallReport(
            stalled=stalled,
            pending_count=queue_metrics.pending_count,
            oldest_age=queue_metrics.oldest_age,
            last_activity_at=last_activity,
            idle_seconds=idle_seconds,
            window_seconds=window_seconds,
        )

    async def pipeline_status(self) -> PipelineStatus:
        primary = await self.queue.metrics()
        dead_letters = await self.dead_letter_queue.metrics()
        return PipelineStatus(
            queue_name=self.queue.name,
            pending_count=primary.pending_count,
            oldest_age=primary.oldest_age,
            dead_letter_queue_name=self.dead_letter_queue.name,
            dead_letter_count=dead_letters.pending_count,
            dead_letter_oldest_age=dead_letters.oldest_age,
        )
