"""In-memory storage backends for tests and single-process runs."""

import itertools
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Set, Tuple

from fanout_jobs.models import DepthSample, JobLogEntry, JobLogStatus, QueueMetrics
from fanout_jobs.storage.base import (
    DUPLICATE_COMPLETION_NOTE,
    CompletionRecords,
    JobLogStore,
    TenantSource,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryJobLog(JobLogStore):
    """Job log kept in a list."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self.entries: List[JobLogEntry] = []
        self.depth_samples: List[DepthSample] = []
        self._ids = itertools.count(1)

    async def append(
        self,
        tenant_id: str,
        job_key: str,
        status: JobLogStatus,
        attempt: int,
        message_id: Optional[str] = None,
        error_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
        noop: bool = False,
        note: Optional[str] = None,
    ) -> JobLogEntry:
        if status == JobLogStatus.COMPLETED and not noop and self._has_real_completion(
            tenant_id, job_key
        ):
            noop = True
            note = DUPLICATE_COMPLETION_NOTE

        entry = JobLogEntry(
            id=next(self._ids),
            tenant_id=tenant_id,
            job_key=job_key,
            status=status,
            attempt=attempt,
            message_id=message_id,
            error_message=error_message,
            duration_ms=duration_ms,
            noop=noop,
            note=note,
            created_at=self.clock(),
        )
        self.entries.append(entry)
        return entry

    def _has_real_completion(self, tenant_id: str, job_key: str) -> bool:
        return any(
            e.tenant_id == tenant_id
            and e.job_key == job_key
            and e.status == JobLogStatus.COMPLETED
            and not e.noop
            for e in self.entries
        )

    async def list_entries(
        self,
        tenant_id: Optional[str] = None,
        job_key: Optional[str] = None,
        status: Optional[JobLogStatus] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[JobLogEntry]:
        entries = [
            e
            for e in self.entries
            if (tenant_id is None or e.tenant_id == tenant_id)
            and (job_key is None or e.job_key == job_key)
            and (status is None or e.status == status)
            and (since is None or e.created_at >= since)
        ]
        return entries[:limit] if limit is not None else entries

    async def latest_error(self, tenant_id: str, job_key: str) -> Optional[str]:
        for entry in reversed(self.entries):
            if (
                entry.tenant_id == tenant_id
                and entry.job_key == job_key
                and entry.status == JobLogStatus.FAILED
            ):
                return entry.error_message
        return None

    async def last_activity_at(self) -> Optional[datetime]:
        return self.entries[-1].created_at if self.entries else None

    async def record_depth_sample(self, queue_name: str, metrics: QueueMetrics) -> None:
        self.depth_samples.append(
            DepthSample(
                queue_name=queue_name,
                pending_count=metrics.pending_count,
                oldest_age=metrics.oldest_age,
                sampled_at=self.clock(),
            )
        )

    async def list_depth_samples(
        self, queue_name: str, since: Optional[datetime] = None
    ) -> List[DepthSample]:
        return [
            s
            for s in self.depth_samples
            if s.queue_name == queue_name and (since is None or s.sampled_at >= since)
        ]


class InMemoryCompletionRecords(CompletionRecords):
    """Set of (tenant_id, job_key) pairs that are done."""

    def __init__(self, completed: Iterable[Tuple[str, str]] = ()):
        self.completed: Set[Tuple[str, str]] = set(completed)

    def mark(self, tenant_id: str, job_key: str) -> None:
        self.completed.add((tenant_id, job_key))

    async def exists(self, tenant_id: str, job_key: str) -> bool:
        return (tenant_id, job_key) in self.completed


class StaticTenantSource(TenantSource):
    """Fixed list of tenants."""

    def __init__(self, tenant_ids: Iterable[str]):
        self.tenant_ids = list(tenant_ids)

    async def list_tenants(self) -> List[str]:
        return list(self.tenant_ids)
