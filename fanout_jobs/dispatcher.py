"""Dispatch pass: read a bounded batch and fan it out to worker invocations."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Set

from fanout_jobs import metrics
from fanout_jobs.dead_letter import DeadLetterHandler
from fanout_jobs.errors import DispatchError, RemoteHttpError
from fanout_jobs.http_client import PipelineHttpClient
from fanout_jobs.models import DispatchSummary, Message
from fanout_jobs.queue.base import JobQueue
from fanout_jobs.storage.base import JobLogStore
from fanout_jobs.worker import Worker


class WorkerInvoker(ABC):
    """Starts a worker invocation without waiting for it to finish."""

    @abstractmethod
    async def invoke(self, message: Message) -> None:
        """Hand a message to a worker. Raises DispatchError if it cannot."""

    async def drain(self) -> None:
        """Wait for invocations still running in this process."""


class LocalWorkerInvoker(WorkerInvoker):
    """Runs the worker as asyncio tasks in the current event loop."""

    def __init__(self, worker: Worker, logger: Optional[logging.Logger] = None):
        self.worker = worker
        self.logger = logger or logging.getLogger(__name__)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def running(self) -> int:
        return len(self._tasks)

    async def invoke(self, message: Message) -> None:
        try:
            task = asyncio.create_task(
                self.worker.process(message),
                name=f"fanout-worker-{message.message_id}",
            )
        except RuntimeError as e:
            raise DispatchError(message.message_id, str(e)) from e

        # Keep a reference so the task is not garbage collected mid-run.
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    async def drain(self) -> None:
        if self._tasks:
            self.logger.info(f"Waiting for {len(self._tasks)} running worker tasks")
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.logger.warning(f"Worker task {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            self.logger.error(
                f"Worker task {task.get_name()} crashed: {str(error)}",
                exc_info=error,
            )


class HttpWorkerInvoker(WorkerInvoker):
    """POSTs each message to a remote worker endpoint."""

    def __init__(self, client: PipelineHttpClient, logger: Optional[logging.Logger] = None):
        self.client = client
        self.logger = logger or logging.getLogger(__name__)

    async def invoke(self, message: Message) -> None:
        try:
            await self.client.invoke_worker(message)
        except RemoteHttpError as e:
            raise DispatchError(
                message.message_id,
                f"Failed to invoke worker for message {message.message_id}: {str(e)}",
            ) from e


class Dispatcher:
    """
    Reads up to ``batch_size`` messages and routes each one.

    Messages read more than ``max_attempts`` times go to the dead-letter
    handler; the rest are handed to the invoker. A malformed message is
    never handed to a worker. It is left to time out until its attempts run
    out and it is dead-lettered like any other. The dispatcher never waits
    for a worker to finish, and a failure on one message never stops the
    rest of the batch.
    """

    def __init__(
        self,
        queue: JobQueue,
        dead_letter_handler: DeadLetterHandler,
        invoker: WorkerInvoker,
        job_log: Optional[JobLogStore] = None,
        batch_size: int = 10,
        visibility_timeout: float = 300,
        max_attempts: int = 3,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            queue: Primary queue
            dead_letter_handler: Handler for exhausted messages
            invoker: Starts worker invocations
            job_log: Receives a depth sample each pass when set
            batch_size: Max messages read per pass (the concurrency cap)
            visibility_timeout: Seconds a read message stays hidden
            max_attempts: Deliveries allowed before dead-lettering
            logger: Logger instance
        """
        self.queue = queue
        self.dead_letter_handler = dead_letter_handler
        self.invoker = invoker
        self.job_log = job_log
        self.batch_size = batch_size
        self.visibility_timeout = visibility_timeout
        self.max_attempts = max_attempts
        self.logger = logger or logging.getLogger(__name__)

    async def run(self) -> DispatchSummary:
        """Run one dispatch pass."""
        summary = DispatchSummary()

        messages = await self.queue.read_batch(self.batch_size, self.visibility_timeout)
        summary.read_count = len(messages)

        if messages:
            self.logger.info(f"Read {len(messages)} messages from {self.queue.name}")

        for message in messages:
            try:
                if message.delivery_count > self.max_attempts:
                    if await self.dead_letter_handler.handle(message) is not None:
                        summary.dead_lettered_count += 1
                elif message.malformed:
                    summary.held_count += 1
                    self.logger.warning(
                        f"Holding malformed message {message.message_id} "
                        f"(delivery {message.delivery_count} of {self.max_attempts})"
                    )
                else:
                    await self.invoker.invoke(message)
                    summary.dispatched_count += 1
                    metrics.DISPATCHED_TOTAL.inc()
            except Exception as e:
                summary.error_count += 1
                metrics.DISPATCH_ERRORS_TOTAL.inc()
                self.logger.error(
                    f"Failed to dispatch message {message.message_id} "
                    f"(tenant {message.tenant_id}): {str(e)}",
                    exc_info=True,
                )

        await self._sample_depth()

        if messages:
            self.logger.info(
                f"Dispatch pass done: dispatched={summary.dispatched_count} "
                f"dead_lettered={summary.dead_lettered_count} held={summary.held_count} "
                f"errors={summary.error_count}"
            )
        return summary

    async def _sample_depth(self) -> None:
        try:
            queue_metrics = await self.queue.metrics()
            metrics.QUEUE_DEPTH.labels(queue=self.queue.name).set(queue_metrics.pending_count)
            if self.job_log is not None:
                await self.job_log.record_depth_sample(self.queue.name, queue_metrics)
        except Exception as e:
            self.logger.warning(f"Failed to sample depth of {self.queue.name}: {str(e)}")


async def run_dispatcher_loop(
    dispatcher: Dispatcher,
    logger: logging.Logger,
    loop_interval_seconds: float = 60,
    shutdown_event: asyncio.Event = None,
) -> None:
    """
    Run dispatch passes until shutdown.

    Args:
        dispatcher: Dispatcher to run
        logger: Logger instance
        loop_interval_seconds: Time to sleep between passes
        shutdown_event: Optional event to signal shutdown
    """
    logger.info(f"Starting dispatcher loop for queue {dispatcher.queue.name}")

    while True:
        # Check for shutdown signal
        if shutdown_event and shutdown_event.is_set():
            logger.info("Shutdown signal received, exiting dispatcher loop")
            break

        try:
            await dispatcher.run()
        except Exception as e:
            logger.error(f"Error in dispatcher loop: {str(e)}", exc_info=True)

        # Sleep before next pass, waking early on shutdown
        if shutdown_event:
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=loop_interval_seconds)
            except asyncio.TimeoutError:
                pass
        else:
            await asyncio.sleep(loop_interval_seconds)

    await dispatcher.invoker.drain()
