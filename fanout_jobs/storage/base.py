"""Storage contracts for the job log, completion records and tenant listing."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from fanout_jobs.models import DepthSample, JobLogEntry, JobLogStatus, QueueMetrics

DUPLICATE_COMPLETION_NOTE = "a real completion was already recorded; kept as no-op"


class JobLogStore(ABC):
    """
    Append-only record of job state transitions.

    At most one ``completed`` row per (tenant_id, job_key) has ``noop``
    false. A later real completion for the same pair, from a duplicate
    message that raced the first, is stored with ``noop`` true and
    ``DUPLICATE_COMPLETION_NOTE``.
    """

    @abstractmethod
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
        """Append one transition row."""

    @abstractmethod
    async def list_entries(
        self,
        tenant_id: Optional[str] = None,
        job_key: Optional[str] = None,
        status: Optional[JobLogStatus] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[JobLogEntry]:
        """List rows oldest first, with optional filters."""

    @abstractmethod
    async def latest_error(self, tenant_id: str, job_key: str) -> Optional[str]:
        """Return the error message of the newest failed row, if any."""

    @abstractmethod
    async def last_activity_at(self) -> Optional[datetime]:
        """Return when the newest row was written."""

    @abstractmethod
    async def record_depth_sample(self, queue_name: str, metrics: QueueMetrics) -> None:
        """Store a queue depth sample."""

    @abstractmethod
    async def list_depth_samples(
        self, queue_name: str, since: Optional[datetime] = None
    ) -> List[DepthSample]:
        """List depth samples oldest first."""


class CompletionRecords(ABC):
    """Read access to the domain table that marks a unit of work as done."""

    @abstractmethod
    async def exists(self, tenant_id: str, job_key: str) -> bool:
        """Return True if (tenant_id, job_key) already has a result."""


class TenantSource(ABC):
    """Lists the tenants a pass fans out to."""

    @abstractmethod
    async def list_tenants(self) -> List[str]:
        """Return tenant ids."""
