"""Dead-letter handling for messages that exhausted their attempts."""

import logging
from typing import Optional

from fanout_jobs import metrics
from fanout_jobs.alerts import AlertSink
from fanout_jobs.models import Alert, JobLogStatus, Message
from fanout_jobs.queue.base import JobQueue
from fanout_jobs.storage.base import JobLogStore


class DeadLetterHandler:
    """
    Moves a message from the primary queue to the dead-letter queue.

    The move goes through ``JobQueue.move_to``. The Postgres backend
    relabels the row in one statement. Other backends write the copy before
    acking the original, so a crash in between leaves a duplicate in the
    dead-letter queue rather than losing the message. Logging and alerting
    are best-effort once the move succeeded.
    """

    def __init__(
        self,
        queue: JobQueue,
        dead_letter_queue: JobQueue,
        job_log: JobLogStore,
        alert_sink: AlertSink,
        severity: str = "critical",
        logger: Optional[logging.Logger] = None,
    ):
        self.queue = queue
        self.dead_letter_queue = dead_letter_queue
        self.job_log = job_log
        self.alert_sink = alert_sink
        self.severity = severity
        self.logger = logger or logging.getLogger(__name__)

    async def handle(self, message: Message) -> Optional[str]:
        """
        Dead-letter a message.

        Args:
            message: Message read from the primary queue

        Returns:
            Id of the message in the dead-letter queue, or None if the
            original had already left the primary queue

        Raises:
            Whatever the move raises; the original message is left in place
            and will be read again.
        """
        payload = dict(message.payload)
        payload.update(
            {
                "original_message_id": message.message_id,
                "delivery_count": message.delivery_count,
            }
        )
        dead_letter_id = await self.queue.move_to(message, self.dead_letter_queue, payload)
        if dead_letter_id is None:
            self.logger.info(
                f"Message {message.message_id} left {self.queue.name} before it could be dead-lettered"
            )
            return None

        metrics.DEAD_LETTERED_TOTAL.inc()
        self.logger.warning(
            f"Dead-lettered tenant {message.tenant_id} ({message.job_key}) "
            f"after {message.delivery_count} deliveries"
        )

        latest_error = await self._latest_error(message)
        await self._log(message, dead_letter_id, latest_error)
        await self._alert(message, dead_letter_id, latest_error)
        return dead_letter_id

    async def _latest_error(self, message: Message) -> Optional[str]:
        try:
            return await self.job_log.latest_error(message.tenant_id, message.job_key)
        except Exception as e:
            self.logger.warning(
                f"Could not read latest error for tenant {message.tenant_id}: {str(e)}"
            )
            return None

    async def _log(
        self, message: Message, dead_letter_id: str, latest_error: Optional[str]
    ) -> None:
        try:
            await self.job_log.append(
                tenant_id=message.tenant_id,
                job_key=message.job_key,
                status=JobLogStatus.DEAD_LETTERED,
                attempt=message.delivery_count,
                message_id=message.message_id,
                error_message=latest_error,
                note=f"moved to {self.dead_letter_queue.name} as {dead_letter_id}",
            )
        except Exception as e:
            self.logger.warning(
                f"Failed to write dead_lettered log row for tenant {message.tenant_id}: {str(e)}"
            )

    async def _alert(
        self, message: Message, dead_letter_id: str, latest_error: Optional[str]
    ) -> None:
        if message.malformed:
            title = f"Malformed message {message.message_id} dead-lettered"
            description = (
                f"Message {message.message_id} could not be parsed after "
                f"{message.delivery_count} deliveries and was moved to the dead-letter queue."
            )
        else:
            title = f"Job {message.job_key} dead-lettered"
            description = (
                f"Job {message.job_key} for tenant {message.tenant_id} failed "
                f"{message.delivery_count} times and was moved to the dead-letter queue."
            )
        if latest_error:
            description += f" Last error: {latest_error}"

        alert = Alert(
            tenant_id=message.tenant_id,
            title=title,
            description=description,
            severity=self.severity,
            meta={
                "job_key": message.job_key,
                "attempts": message.delivery_count,
                "message_id": message.message_id,
                "dead_letter_message_id": dead_letter_id,
                "dead_letter_queue": self.dead_letter_queue.name,
                "last_error": latest_error,
            },
        )

        try:
            await self.alert_sink.send(alert)
        except Exception as e:
            self.logger.error(
                f"Failed to send dead-letter alert for tenant {message.tenant_id}: {str(e)}",
                exc_info=True,
            )
