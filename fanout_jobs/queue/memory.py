"""In-memory job queue for tests and single-process runs."""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from fanout_jobs.models import Message, QueueMetrics
from fanout_jobs.queue.base import JobQueue


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryJobQueue(JobQueue):
    """
    Job queue held in a dict, ordered by enqueue time.

    Not durable across restarts. ``clock`` can be replaced to move time
    forward in tests, which is how visibility expiry is exercised.
    """

    def __init__(self, name: str = "tenant_jobs", clock: Callable[[], datetime] = utc_now):
        self.name = name
        self.clock = clock
        self._messages: Dict[str, Message] = {}
        self._ids = itertools.count(1)

    async def enqueue(
        self,
        tenant_id: str,
        job_key: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> str:
        now = self.clock()
        message_id = str(next(self._ids))
        self._messages[message_id] = Message(
            message_id=message_id,
            tenant_id=tenant_id,
            job_key=job_key,
            enqueued_at=now,
            delivery_count=0,
            visible_at=now,
            payload=dict(payload or {}),
        )
        return message_id

    async def read_batch(self, max_count: int, visibility_timeout: float) -> List[Message]:
        now = self.clock()
        hidden_until = now + timedelta(seconds=visibility_timeout)

        leased = []
        for message in self._messages.values():
            if len(leased) >= max_count:
                break
            if message.visible_at > now:
                continue
            message.delivery_count += 1
            message.visible_at = hidden_until
            leased.append(self._snapshot(message))

        return leased

    async def ack(self, message_id: str, receipt: Optional[str] = None) -> None:
        self._messages.pop(str(message_id), None)

    async def metrics(self) -> QueueMetrics:
        if not self._messages:
            return QueueMetrics(pending_count=0, oldest_age=None)

        oldest = min(m.enqueued_at for m in self._messages.values())
        return QueueMetrics(
            pending_count=len(self._messages),
            oldest_age=(self.clock() - oldest).total_seconds(),
        )

    def get(self, message_id: str) -> Optional[Message]:
        """Return a copy of a stored message, ignoring visibility."""
        message = self._messages.get(str(message_id))
        return self._snapshot(message) if message else None

    def __len__(self) -> int:
        return len(self._messages)

    @staticmethod
    def _snapshot(message: Message) -> Message:
        # Readers get copies so they cannot mutate stored state.
        return Message(
            message_id=message.message_id,
            tenant_id=message.tenant_id,
            job_key=message.job_key,
            enqueued_at=message.enqueued_at,
            delivery_count=message.delivery_count,
            visible_at=message.visible_at,
            payload=dict(message.payload),
        )
