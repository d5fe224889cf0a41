"""Worker: processes one (tenant, job_key) unit of work."""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, Optional

from fanout_jobs import metrics
from fanout_jobs.models import (
    ExecuteResult,
    JobContext,
    JobLogStatus,
    Message,
    WorkerOutcome,
    WorkerResult,
)
from fanout_jobs.queue.base import JobQueue
from fanout_jobs.storage.base import CompletionRecords, JobLogStore

ALREADY_COMPLETED_NOTE = "completion record already exists; operation skipped"
DIRECT_RUN_NOTE = "direct run, queue bypassed"


class Worker:
    """
    Runs the domain operation for one queued message.

    The completion record is checked first, so a redelivered or duplicated
    message is acked without running the operation again. A failed attempt
    leaves the message alone; it becomes visible again once its visibility
    timeout expires and is retried as a new attempt.
    """

    def __init__(
        self,
        queue: JobQueue,
        job_log: JobLogStore,
        completions: CompletionRecords,
        operation: Callable,
        db_pool: Any = None,
        operation_timeout_seconds: Optional[float] = None,
        verify_completion: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the worker.

        Args:
            queue: Queue the messages were read from (used to ack)
            job_log: Job log receiving state transitions
            completions: Completion records consulted by the idempotency guard
            operation: Async callable ``(ctx, tenant_id, job_key)`` doing the work
            db_pool: Passed to the operation through its context
            operation_timeout_seconds: Fail an attempt that runs longer than this
            verify_completion: Re-check the completion record after success
            logger: Logger instance
        """
        self.queue = queue
        self.job_log = job_log
        self.completions = completions
        self.operation = operation
        self.db_pool = db_pool
        self.operation_timeout_seconds = operation_timeout_seconds
        self.verify_completion = verify_completion
        self.logger = logger or logging.getLogger(__name__)

    async def process(self, message: Message) -> WorkerResult:
        """Process a message read from the queue."""
        return await self._run(
            tenant_id=message.tenant_id,
            job_key=message.job_key,
            attempt=max(message.delivery_count, 1),
            message=message,
        )

    async def run_direct(
        self, tenant_id: str, job_key: str, force: bool = False
    ) -> WorkerResult:
        """
        Process a tenant immediately without going through the queue.

        Args:
            tenant_id: Tenant to process
            job_key: Period to process
            force: Run the operation even if a completion record exists
        """
        return await self._run(
            tenant_id=tenant_id,
            job_key=job_key,
            attempt=1,
            message=None,
            force=force,
        )

    async def _run(
        self,
        tenant_id: str,
        job_key: str,
        attempt: int,
        message: Optional[Message],
        force: bool = False,
    ) -> WorkerResult:
        started = time.monotonic()
        message_id = message.message_id if message else None
        note = None if message else DIRECT_RUN_NOTE

        def result(status: WorkerOutcome, error: Optional[str] = None) -> WorkerResult:
            return WorkerResult(
                tenant_id=tenant_id,
                job_key=job_key,
                status=status,
                attempt=attempt,
                message_id=message_id,
                duration_ms=_elapsed_ms(started),
                error=error,
            )

        try:
            already_done = not force and await self.completions.exists(tenant_id, job_key)
        except Exception as e:
            error = f"Completion check failed: {str(e)}"
            self.logger.error(
                f"Completion check failed for tenant {tenant_id} ({job_key}): {str(e)}",
                exc_info=True,
            )
            return await self._fail(result(WorkerOutcome.FAILED, error), note)

        if already_done:
            if message:
                await self._ack(message)
            await self._safe_log(
                tenant_id,
                job_key,
                JobLogStatus.COMPLETED,
                attempt,
                message_id=message_id,
                duration_ms=_elapsed_ms(started),
                noop=True,
                note=ALREADY_COMPLETED_NOTE,
            )
            metrics.WORKER_RESULTS_TOTAL.labels(status=WorkerOutcome.SKIPPED.value).inc()
            self.logger.info(
                f"Tenant {tenant_id} already completed {job_key}, skipping (attempt {attempt})"
            )
            return result(WorkerOutcome.SKIPPED)

        await self._safe_log(
            tenant_id,
            job_key,
            JobLogStatus.PROCESSING,
            attempt,
            message_id=message_id,
            note=note,
        )

        self.logger.info(f"Processing tenant {tenant_id} for {job_key} (attempt {attempt})")

        outcome = await self._execute(tenant_id, job_key, attempt, message_id)
        if not outcome.success:
            return await self._fail(result(WorkerOutcome.FAILED, outcome.error), note)

        if message:
            await self._ack(message)

        completed = result(WorkerOutcome.COMPLETED)
        await self._safe_log(
            tenant_id,
            job_key,
            JobLogStatus.COMPLETED,
            attempt,
            message_id=message_id,
            duration_ms=completed.duration_ms,
            note=note,
        )
        metrics.WORKER_RESULTS_TOTAL.labels(status=WorkerOutcome.COMPLETED.value).inc()
        metrics.ATTEMPT_DURATION_SECONDS.observe(completed.duration_ms / 1000)
        self.logger.info(
            f"Tenant {tenant_id} completed {job_key} in {completed.duration_ms}ms"
        )
        return completed

    async def _execute(
        self, tenant_id: str, job_key: str, attempt: int, message_id: Optional[str]
    ) -> ExecuteResult:
        """Run the operation, turning exceptions and timeouts into failures."""
        ctx = JobContext(
            tenant_id=tenant_id,
            job_key=job_key,
            attempt=attempt,
            message_id=message_id,
            db_pool=self.db_pool,
            logger=self.logger,
        )

        try:
            call = self.operation(ctx, tenant_id, job_key)
            if self.operation_timeout_seconds:
                raw = await asyncio.wait_for(call, timeout=self.operation_timeout_seconds)
            else:
                raw = await call
            outcome = ExecuteResult.coerce(raw)
        except asyncio.TimeoutError:
            return ExecuteResult(
                success=False,
                error=f"Operation timed out after {self.operation_timeout_seconds}s",
            )
        except Exception as e:
            self.logger.error(
                f"Operation failed for tenant {tenant_id} ({job_key}): {str(e)}",
                exc_info=True,
            )
            return ExecuteResult(success=False, error=str(e) or type(e).__name__)

        if not outcome.success or not self.verify_completion:
            return outcome

        # Success is only final once the completion record is readable.
        try:
            recorded = await self.completions.exists(tenant_id, job_key)
        except Exception as e:
            return ExecuteResult(
                success=False, error=f"Completion check after success failed: {str(e)}"
            )
        if not recorded:
            return ExecuteResult(
                success=False,
                error="Operation reported success but no completion record was found",
            )
        return outcome

    async def _fail(self, failed: WorkerResult, note: Optional[str]) -> WorkerResult:
        await self._safe_log(
            failed.tenant_id,
            failed.job_key,
            JobLogStatus.FAILED,
            failed.attempt,
            message_id=failed.message_id,
            error_message=failed.error,
            duration_ms=failed.duration_ms,
            note=note,
        )
        metrics.WORKER_RESULTS_TOTAL.labels(status=WorkerOutcome.FAILED.value).inc()
        metrics.ATTEMPT_DURATION_SECONDS.observe(failed.duration_ms / 1000)
        self.logger.warning(
            f"Tenant {failed.tenant_id} failed {failed.job_key} "
            f"(attempt {failed.attempt}): {failed.error}"
        )
        return failed

    async def _ack(self, message: Message) -> None:
        # An unacked message is redelivered and then short-circuited by the guard.
        try:
            await self.queue.ack(message.message_id, message.receipt)
        except Exception as e:
            self.logger.warning(f"Failed to ack message {message.message_id}: {str(e)}")

    async def _safe_log(
        self,
        tenant_id: str,
        job_key: str,
        status: JobLogStatus,
        attempt: int,
        **fields: Any,
    ) -> None:
        # A failed log write must never mask or change the job's outcome.
        try:
            await self.job_log.append(
                tenant_id=tenant_id,
                job_key=job_key,
                status=status,
                attempt=attempt,
                **fields,
            )
        except Exception as e:
            self.logger.warning(
                f"Failed to write {status.value} log row for tenant {tenant_id}: {str(e)}"
            )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
