"""Postgres storage layer for the job log, completion records and tenants."""

from datetime import datetime
from typing import List, Optional

import asyncpg

from fanout_jobs.config import validate_identifier
from fanout_jobs.models import DepthSample, JobLogEntry, JobLogStatus, QueueMetrics
from fanout_jobs.storage.base import (
    DUPLICATE_COMPLETION_NOTE,
    CompletionRecords,
    JobLogStore,
    TenantSource,
)

INSERT_LOG_ROW_SQL = """
INSERT INTO job_log (
    tenant_id, job_key, status, attempt, message_id,
    error_message, duration_ms, noop, note
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
ON CONFLICT (tenant_id, job_key) WHERE status = 'completed' AND NOT noop
DO NOTHING
RETURNING *
"""


class PostgresJobLog(JobLogStore):
    """Job log stored in the ``job_log`` table."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

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
        """
        Insert a transition row.

        A second real ``completed`` row for the same pair hits the partial
        unique index ``idx_job_log_one_real_completion`` and is stored as a
        no-op instead.
        """
        params = [
            tenant_id,
            job_key,
            JobLogStatus(status).value,
            attempt,
            message_id,
            error_message,
            duration_ms,
            noop,
            note,
        ]

        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(INSERT_LOG_ROW_SQL, *params)
            if row is None:
                params[7] = True
                params[8] = DUPLICATE_COMPLETION_NOTE
                row = await conn.fetchrow(INSERT_LOG_ROW_SQL, *params)

        return self._row_to_entry(row)

    async def list_entries(
        self,
        tenant_id: Optional[str] = None,
        job_key: Optional[str] = None,
        status: Optional[JobLogStatus] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[JobLogEntry]:
        """List rows with optional filters."""
        query = "SELECT * FROM job_log WHERE 1=1"
        params = []
        param_idx = 1

        if tenant_id:
            query += f" AND tenant_id = ${param_idx}"
            params.append(tenant_id)
            param_idx += 1

        if job_key:
            query += f" AND job_key = ${param_idx}"
            params.append(job_key)
            param_idx += 1

        if status:
            query += f" AND status = ${param_idx}"
            params.append(JobLogStatus(status).value)
            param_idx += 1

        if since:
            query += f" AND created_at >= ${param_idx}"
            params.append(since)
            param_idx += 1

        query += " ORDER BY id ASC"

        if limit is not None:
            query += f" LIMIT ${param_idx}"
            params.append(limit)

        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [self._row_to_entry(row) for row in rows]

    async def latest_error(self, tenant_id: str, job_key: str) -> Optional[str]:
        async with self.db_pool.acquire() as conn:
            return await conn.fetchval(
                """
                SELECT error_message FROM job_log
                WHERE tenant_id = $1 AND job_key = $2 AND status = $3
                ORDER BY id DESC
                LIMIT 1
                """,
                tenant_id,
                job_key,
                JobLogStatus.FAILED.value,
            )

    async def last_activity_at(self) -> Optional[datetime]:
        async with self.db_pool.acquire() as conn:
            return await conn.fetchval("SELECT MAX(created_at) FROM job_log")

    async def record_depth_sample(self, queue_name: str, metrics: QueueMetrics) -> None:
        async with self.db_pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO job_queue_depth_samples (queue_name, pending_count, oldest_age)
                VALUES ($1, $2, $3)
                """,
                queue_name,
                metrics.pending_count,
                metrics.oldest_age,
            )

    async def list_depth_samples(
        self, queue_name: str, since: Optional[datetime] = None
    ) -> List[DepthSample]:
        async with self.db_pool.acquire() as conn:
            if since:
                rows = await conn.fetch(
                    """
                    SELECT * FROM job_queue_depth_samples
                    WHERE queue_name = $1 AND sampled_at >= $2
                    ORDER BY sampled_at ASC
                    """,
                    queue_name,
                    since,
                )
            else:
                rows = await conn.fetch(
                    """
                    SELECT * FROM job_queue_depth_samples
                    WHERE queue_name = $1
                    ORDER BY sampled_at ASC
                    """,
                    queue_name,
                )

        return [
            DepthSample(
                queue_name=row["queue_name"],
                pending_count=row["pending_count"],
                oldest_age=row["oldest_age"],
                sampled_at=row["sampled_at"],
            )
            for row in rows
        ]

    def _row_to_entry(self, row: asyncpg.Record) -> JobLogEntry:
        """Convert a database row to a JobLogEntry."""
        return JobLogEntry(
            id=row["id"],
            tenant_id=row["tenant_id"],
            job_key=row["job_key"],
            status=JobLogStatus(row["status"]),
            attempt=row["attempt"],
            message_id=row["message_id"],
            error_message=row["error_message"],
            duration_ms=row["duration_ms"],
            noop=row["noop"],
            note=row["note"],
            created_at=row["created_at"],
        )


class PostgresCompletionRecords(CompletionRecords):
    """
    Completion lookups against a domain table.

    Columns are compared as text so DATE or UUID keys work with string
    job keys and tenant ids.
    """

    def __init__(
        self,
        db_pool: asyncpg.Pool,
        table: str,
        tenant_column: str = "tenant_id",
        key_column: str = "job_key",
    ):
        self.db_pool = db_pool
        self.table = validate_identifier(table, "table")
        self.tenant_column = validate_identifier(tenant_column, "tenant_column")
        self.key_column = validate_identifier(key_column, "key_column")

    async def exists(self, tenant_id: str, job_key: str) -> bool:
        async with self.db_pool.acquire() as conn:
            found = await conn.fetchval(
                f"""
                SELECT EXISTS (
                    SELECT 1 FROM {self.table}
                    WHERE {self.tenant_column}::text = $1
                      AND {self.key_column}::text = $2
                )
                """,
                tenant_id,
                job_key,
            )
        return bool(found)


class PostgresTenantSource(TenantSource):
    """Distinct tenant ids read from a table column."""

    def __init__(self, db_pool: asyncpg.Pool, table: str = "tenants", column: str = "id"):
        self.db_pool = db_pool
        self.table = validate_identifier(table, "table")
        self.column = validate_identifier(column, "column")

    async def list_tenants(self) -> List[str]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT DISTINCT {self.column}::text AS tenant_id
                FROM {self.table}
                WHERE {self.column} IS NOT NULL
                ORDER BY 1
                """
            )
        return [row["tenant_id"] for row in rows]
