"""Postgres-backed job queue."""

import json
from typing import Any, Dict, List, Optional

import asyncpg

from fanout_jobs.models import Message, QueueMetrics
from fanout_jobs.queue.base import JobQueue


class PostgresJobQueue(JobQueue):
    """
    Job queue stored in the ``job_queue`` table.

    Several named queues share the table, so the primary queue and its
    dead-letter sibling are two instances with different ``name`` values.

    Example:
        ```python
        pool = await asyncpg.create_pool(dsn)
        queue = PostgresJobQueue(pool, "tenant_jobs")
        dead_letters = PostgresJobQueue(pool, "tenant_jobs_dlq")

        message_id = await queue.enqueue("tenant-1", "2026-10-11")
        messages = await queue.read_batch(max_count=10, visibility_timeout=300)
        ```
    """

    def __init__(self, db_pool: asyncpg.Pool, name: str):
        self.db_pool = db_pool
        self.name = name

    async def enqueue(
        self,
        tenant_id: str,
        job_key: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Insert a message and return its id."""
        async with self.db_pool.acquire() as conn:
            message_id = await conn.fetchval(
                """
                INSERT INTO job_queue (queue_name, tenant_id, job_key, payload)
                VALUES ($1, $2, $3, $4)
                RETURNING id
                """,
                self.name,
                tenant_id,
                job_key,
                json.dumps(payload or {}),
            )
        return str(message_id)

    async def read_batch(self, max_count: int, visibility_timeout: float) -> List[Message]:
        """
        Atomically lease visible messages.

        Uses FOR UPDATE SKIP LOCKED so concurrent readers never receive the
        same message, and pushes ``visible_at`` forward in the same statement.
        """
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                UPDATE job_queue
                SET visible_at = now() + make_interval(secs => $3),
                    delivery_count = delivery_count + 1
                WHERE id IN (
                    SELECT id FROM job_queue
                    WHERE queue_name = $1
                      AND visible_at <= now()
                    ORDER BY id ASC
                    LIMIT $2
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING *
                """,
                self.name,
                max_count,
                float(visibility_timeout),
            )

        messages = [self._row_to_message(row) for row in rows]
        messages.sort(key=lambda m: int(m.message_id))
        return messages

    async def ack(self, message_id: str, receipt: Optional[str] = None) -> None:
        """Delete a message. Unknown or malformed ids are ignored."""
        try:
            row_id = int(message_id)
        except (TypeError, ValueError):
            return

        async with self.db_pool.acquire() as conn:
            await conn.execute(
                "DELETE FROM job_queue WHERE queue_name = $1 AND id = $2",
                self.name,
                row_id,
            )

    async def move_to(
        self, message: Message, target: JobQueue, payload: Dict[str, Any]
    ) -> Optional[str]:
        """
        Move a message to a sibling queue in one statement.

        Both queues live in ``job_queue``, so the row is relabelled instead
        of copied. Falls back to enqueue-then-ack for any other target.
        """
        if not isinstance(target, PostgresJobQueue) or target.db_pool is not self.db_pool:
            return await super().move_to(message, target, payload)

        async with self.db_pool.acquire() as conn:
            moved_id = await conn.fetchval(
                """
                UPDATE job_queue
                SET queue_name = $3,
                    payload = $4,
                    delivery_count = 0,
                    enqueued_at = now(),
                    visible_at = now()
                WHERE queue_name = $1 AND id = $2
                RETURNING id
                """,
                self.name,
                int(message.message_id),
                target.name,
                json.dumps(payload),
            )
        return str(moved_id) if moved_id is not None else None

    async def metrics(self) -> QueueMetrics:
        """Count messages and measure the oldest one."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT COUNT(*) AS pending_count,
                       EXTRACT(EPOCH FROM now() - MIN(enqueued_at)) AS oldest_age
                FROM job_queue
                WHERE queue_name = $1
                """,
                self.name,
            )

        oldest_age = row["oldest_age"]
        return QueueMetrics(
            pending_count=row["pending_count"],
            oldest_age=float(oldest_age) if oldest_age is not None else None,
        )

    def _row_to_message(self, row: asyncpg.Record) -> Message:
        """Convert a database row to a Message."""
        return Message(
            message_id=str(row["id"]),
            tenant_id=row["tenant_id"],
            job_key=row["job_key"],
            enqueued_at=row["enqueued_at"],
            delivery_count=row["delivery_count"],
            visible_at=row["visible_at"],
            payload=json.loads(row["payload"])
            if isinstance(row["payload"], str)
            else row["payload"],
        )
