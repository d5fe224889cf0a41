"""Enqueue pass: fan one scheduled tick out to one message per tenant."""

import logging
from datetime import datetime
from typing import Callable, Optional

from fanout_jobs import metrics
from fanout_jobs.job_keys import compute_job_key
from fanout_jobs.models import EnqueueSummary, JobLogStatus
from fanout_jobs.queue.base import JobQueue
from fanout_jobs.storage.base import CompletionRecords, JobLogStore, TenantSource


class Enqueuer:
    """
    Computes the current job key and enqueues work for every tenant that
    has no completion record for it.

    Safe to run more than once per tick: a repeat run only re-enqueues
    tenants that are still not done, and the worker's idempotency guard
    absorbs the duplicates.
    """

    def __init__(
        self,
        queue: JobQueue,
        job_log: JobLogStore,
        completions: CompletionRecords,
        tenants: TenantSource,
        period: str = "weekly",
        week_end_weekday: int = 6,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.queue = queue
        self.job_log = job_log
        self.completions = completions
        self.tenants = tenants
        self.period = period
        self.week_end_weekday = week_end_weekday
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    def current_job_key(self) -> str:
        now = self.clock() if self.clock else None
        return compute_job_key(self.period, now, self.week_end_weekday)

    async def run(self, job_key: Optional[str] = None) -> EnqueueSummary:
        """
        Run one enqueue pass.

        Args:
            job_key: Explicit key to enqueue for; defaults to the most
                recently elapsed period

        Returns:
            EnqueueSummary with enqueued, skipped and failed tenant counts

        Raises:
            Whatever the tenant source raises; nothing is enqueued then.
        """
        job_key = job_key or self.current_job_key()

        # Tenant ids may repeat when read from a membership table.
        tenant_ids = list(dict.fromkeys(await self.tenants.list_tenants()))
        summary = EnqueueSummary(job_key=job_key, tenant_count=len(tenant_ids))

        self.logger.info(f"Enqueue pass for {job_key}: {len(tenant_ids)} tenants")

        for tenant_id in tenant_ids:
            try:
                if await self.completions.exists(tenant_id, job_key):
                    summary.skipped_count += 1
                    metrics.ENQUEUE_SKIPPED_TOTAL.inc()
                    self.logger.debug(f"Tenant {tenant_id} already done for {job_key}")
                    continue

                message_id = await self.queue.enqueue(tenant_id, job_key)
            except Exception as e:
                summary.error_count += 1
                summary.errors.append({"tenant_id": tenant_id, "error": str(e)})
                metrics.ENQUEUE_ERRORS_TOTAL.inc()
                self.logger.error(
                    f"Failed to enqueue tenant {tenant_id} for {job_key}: {str(e)}",
                    exc_info=True,
                )
                continue

            summary.enqueued_count += 1
            metrics.ENQUEUED_TOTAL.inc()
            await self._log_queued(tenant_id, job_key, message_id)

        self.logger.info(
            f"Enqueue pass for {job_key} done: enqueued={summary.enqueued_count} "
            f"skipped={summary.skipped_count} errors={summary.error_count}"
        )
        return summary

    async def _log_queued(self, tenant_id: str, job_key: str, message_id: str) -> None:
        # The message is already durable; a lost log row must not fail the tenant.
        try:
            await self.job_log.append(
                tenant_id=tenant_id,
                job_key=job_key,
                status=JobLogStatus.QUEUED,
                attempt=1,
                message_id=message_id,
            )
        except Exception as e:
            self.logger.warning(
                f"Failed to write queued log row for tenant {tenant_id}: {str(e)}"
            )
