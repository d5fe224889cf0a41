"""Example operation: a weekly per-tenant summary.

Load it with ``FANOUT_JOBS_HANDLERS_MODULE=fanout_jobs.handlers.weekly_brief``
and ``FANOUT_JOBS_JOB_NAME=weekly_brief``. The ``weekly_brief`` table doubles
as the completion table (``COMPLETION_KEY_COLUMN=week_end``).
"""

import json
from datetime import date, datetime, time, timedelta, timezone

from fanout_jobs.registry import operation_registry

WEEKLY_BRIEF_DDL = """
CREATE TABLE IF NOT EXISTS weekly_brief (
    tenant_id TEXT NOT NULL,
    week_end DATE NOT NULL,
    metrics JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (tenant_id, week_end)
);
"""


@operation_registry.operation("weekly_brief")
async def build_weekly_brief(ctx, tenant_id, job_key):
    """
    Count the tenant's job log activity for the week ending on ``job_key``
    and upsert it as that week's brief.

    Args:
        ctx: JobContext with db_pool and logger
        tenant_id: Tenant identifier
        job_key: Week end date (YYYY-MM-DD)
    """
    week_end = date.fromisoformat(job_key)
    week_start = datetime.combine(week_end - timedelta(days=6), time.min, tzinfo=timezone.utc)
    week_stop = week_start + timedelta(days=7)

    async with ctx.db_pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT status, COUNT(*) AS total
            FROM job_log
            WHERE tenant_id = $1
              AND created_at >= $2
              AND created_at < $3
            GROUP BY status
            """,
            tenant_id,
            week_start,
            week_stop,
        )
        metrics = {row["status"]: row["total"] for row in rows}

        await conn.execute(
            """
            INSERT INTO weekly_brief (tenant_id, week_end, metrics)
            VALUES ($1, $2, $3)
            ON CONFLICT (tenant_id, week_end)
            DO UPDATE SET metrics = EXCLUDED.metrics
            """,
            tenant_id,
            week_end,
            json.dumps(metrics),
        )

    ctx.logger.info(f"Weekly brief stored for tenant {tenant_id} ({job_key})")
    return {"success": True}
