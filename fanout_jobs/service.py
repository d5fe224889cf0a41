"""High-level service layer wiring the pipeline components together."""

import logging
from collections.abc import Callable
from typing import Any, Optional

import asyncpg
import boto3

from fanout_jobs.alerts import AlertSink, PostgresAlertSink
from fanout_jobs.config import PipelineConfig
from fanout_jobs.dead_letter import DeadLetterHandler
from fanout_jobs.dispatcher import (
    Dispatcher,
    HttpWorkerInvoker,
    LocalWorkerInvoker,
    WorkerInvoker,
)
from fanout_jobs.enqueuer import Enqueuer
from fanout_jobs.http_client import PipelineHttpClient
from fanout_jobs.models import DispatchSummary, EnqueueSummary, Message, WorkerResult
from fanout_jobs.observability import ObservabilityViews
from fanout_jobs.queue import InMemoryJobQueue, JobQueue, PostgresJobQueue, SQSJobQueue
from fanout_jobs.registry import OperationRegistry, operation_registry
from fanout_jobs.storage import (
    CompletionRecords,
    JobLogStore,
    PostgresCompletionRecords,
    PostgresJobLog,
    PostgresTenantSource,
    TenantSource,
)
from fanout_jobs.worker import Worker


class PipelineService:
    """
    The two clock entry points plus manual runs and read views.

    Every entry point is safe to call again: the completion records decide
    what is left to do, not state held by this object.

    Example:
        ```python
        config = PipelineConfig.from_env()
        pool = await asyncpg.create_pool(config.db_dsn)
        service = PipelineService.from_config(config, pool)

        await service.run_enqueue_pass()   # weekly clock
        await service.run_dispatch_pass()  # every minute
        ```
    """

    def __init__(
        self,
        queue: JobQueue,
        dead_letter_queue: JobQueue,
        job_log: JobLogStore,
        completions: CompletionRecords,
        tenants: TenantSource,
        operation: Callable,
        alert_sink: AlertSink,
        invoker: Optional[WorkerInvoker] = None,
        db_pool: Any = None,
        period: str = "weekly",
        week_end_weekday: int = 6,
        batch_size: int = 10,
        visibility_timeout: float = 300,
        max_attempts: int = 3,
        operation_timeout_seconds: Optional[float] = None,
        alert_severity: str = "critical",
        logger: Optional[logging.Logger] = None,
    ):
        self.queue = queue
        self.dead_letter_queue = dead_letter_queue
        self.job_log = job_log
        self.logger = logger or logging.getLogger(__name__)

        self.worker = Worker(
            queue=queue,
            job_log=job_log,
            completions=completions,
            operation=operation,
            db_pool=db_pool,
            operation_timeout_seconds=operation_timeout_seconds,
            logger=self.logger,
        )
        self.invoker = invoker or LocalWorkerInvoker(self.worker, self.logger)
        self.enqueuer = Enqueuer(
            queue=queue,
            job_log=job_log,
            completions=completions,
            tenants=tenants,
            period=period,
            week_end_weekday=week_end_weekday,
            logger=self.logger,
        )
        self.dead_letter_handler = DeadLetterHandler(
            queue=queue,
            dead_letter_queue=dead_letter_queue,
            job_log=job_log,
            alert_sink=alert_sink,
            severity=alert_severity,
            logger=self.logger,
        )
        self.dispatcher = Dispatcher(
            queue=queue,
            dead_letter_handler=self.dead_letter_handler,
            invoker=self.invoker,
            job_log=job_log,
            batch_size=batch_size,
            visibility_timeout=visibility_timeout,
            max_attempts=max_attempts,
            logger=self.logger,
        )
        self.views = ObservabilityViews(job_log, queue, dead_letter_queue)

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        db_pool: asyncpg.Pool,
        registry: Optional[OperationRegistry] = None,
        sqs_client: Any = None,
        logger: Optional[logging.Logger] = None,
    ) -> "PipelineService":
        """
        Build a service from configuration.

        Raises:
            OperationNotFoundError: If ``config.job_name`` is not registered
        """
        registry = registry or operation_registry
        operation = registry.require(config.job_name)
        queue, dead_letter_queue = build_queues(config, db_pool, sqs_client)

        invoker = None
        if config.uses_http_worker:
            client = PipelineHttpClient(config.worker_url, auth_token=config.auth_token)
            invoker = HttpWorkerInvoker(client, logger)

        return cls(
            queue=queue,
            dead_letter_queue=dead_letter_queue,
            job_log=PostgresJobLog(db_pool),
            completions=PostgresCompletionRecords(
                db_pool,
                config.completion_table,
                tenant_column=config.completion_tenant_column,
                key_column=config.completion_key_column,
            ),
            tenants=PostgresTenantSource(
                db_pool, table=config.tenant_table, column=config.tenant_column
            ),
            operation=operation,
            alert_sink=PostgresAlertSink(db_pool),
            invoker=invoker,
            db_pool=db_pool,
            period=config.period,
            week_end_weekday=config.week_end_weekday,
            batch_size=config.batch_size,
            visibility_timeout=config.visibility_timeout_seconds,
            max_attempts=config.max_attempts,
            operation_timeout_seconds=config.operation_timeout_seconds,
            alert_severity=config.alert_severity,
            logger=logger,
        )

    async def run_enqueue_pass(self, job_key: Optional[str] = None) -> EnqueueSummary:
        """Entry point for the slow clock."""
        return await self.enqueuer.run(job_key)

    async def run_dispatch_pass(self) -> DispatchSummary:
        """Entry point for the fast clock."""
        return await self.dispatcher.run()

    async def run_tenant(
        self, tenant_id: str, job_key: Optional[str] = None, force: bool = False
    ) -> WorkerResult:
        """Process one tenant now, bypassing the queue."""
        job_key = job_key or self.enqueuer.current_job_key()
        self.logger.info(f"Direct run for tenant {tenant_id} ({job_key}, force={force})")
        return await self.worker.run_direct(tenant_id, job_key, force=force)

    async def process_message(self, message: Message) -> WorkerResult:
        """Process a message handed over by a remote dispatcher."""
        return await self.worker.process(message)

    async def drain(self) -> None:
        """Wait for in-process worker tasks to finish."""
        await self.invoker.drain()


def build_queues(
    config: PipelineConfig, db_pool: Any = None, sqs_client: Any = None
) -> tuple[JobQueue, JobQueue]:
    """Create the primary and dead-letter queues for the configured backend."""
    if config.queue_backend == "sqs":
        client = sqs_client or boto3.client("sqs")
        return (
            SQSJobQueue(config.sqs_queue_url, sqs_client=client),
            SQSJobQueue(config.sqs_dead_letter_queue_url, sqs_client=client),
        )

    if config.queue_backend == "memory":
        return (
            InMemoryJobQueue(config.queue_name),
            InMemoryJobQueue(config.dead_letter_queue_name),
        )

    return (
        PostgresJobQueue(db_pool, config.queue_name),
        PostgresJobQueue(db_pool, config.dead_letter_queue_name),
    )
