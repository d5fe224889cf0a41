"""Job queue contract shared by every backend."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from fanout_jobs.models import Message, QueueMetrics

logger = logging.getLogger(__name__)


class JobQueue(ABC):
    """
    Durable message store with visibility-timeout reads.

    Every backend honours the same contract:

    - ``enqueue`` never deduplicates; suppressing duplicates is the
      enqueuer's job.
    - ``read_batch`` hides each returned message from other readers until
      ``visibility_timeout`` seconds pass or it is acked, and increments its
      ``delivery_count``.
    - ``ack`` removes a message for good and is a no-op for unknown ids.
    """

    name: str

    @abstractmethod
    async def enqueue(
        self,
        tenant_id: str,
        job_key: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Add a message and return its id."""

    @abstractmethod
    async def read_batch(self, max_count: int, visibility_timeout: float) -> List[Message]:
        """Lease up to ``max_count`` visible messages."""

    @abstractmethod
    async def ack(self, message_id: str, receipt: Optional[str] = None) -> None:
        """Remove a message permanently."""

    @abstractmethod
    async def metrics(self) -> QueueMetrics:
        """Return pending count and age of the oldest message in seconds."""

    async def move_to(
        self, message: Message, target: "JobQueue", payload: Dict[str, Any]
    ) -> Optional[str]:
        """
        Move a message to another queue.

        The copy is enqueued on ``target`` before the original is acked. A
        failed enqueue propagates and leaves the original in place; a failed
        ack is only logged. Backends that can move atomically override this.

        Returns:
            Id of the message in ``target``, or None if the original was
            already gone
        """
        new_id = await target.enqueue(message.tenant_id, message.job_key, payload)

        try:
            await self.ack(message.message_id, message.receipt)
        except Exception as e:
            logger.warning(
                f"Moved message {message.message_id} to {target.name} but failed to ack it: {str(e)}"
            )
        return new_id
