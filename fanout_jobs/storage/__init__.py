"""Storage backends for the job log, completion records and tenant listing."""

from fanout_jobs.storage.base import CompletionRecords, JobLogStore, TenantSource
from fanout_jobs.storage.memory import (
    InMemoryCompletionRecords,
    InMemoryJobLog,
    StaticTenantSource,
)
from fanout_jobs.storage.postgres import (
    PostgresCompletionRecords,
    PostgresJobLog,
    PostgresTenantSource,
)

__all__ = [
    "CompletionRecords",
    "JobLogStore",
    "TenantSource",
    "InMemoryCompletionRecords",
    "InMemoryJobLog",
    "StaticTenantSource",
    "PostgresCompletionRecords",
    "PostgresJobLog",
    "PostgresTenantSource",
]
