"""Job queue backends."""

from fanout_jobs.queue.base import JobQueue
from fanout_jobs.queue.memory import InMemoryJobQueue
from fanout_jobs.queue.postgres import PostgresJobQueue
from fanout_jobs.queue.sqs import SQSJobQueue

__all__ = [
    "JobQueue",
    "InMemoryJobQueue",
    "PostgresJobQueue",
    "SQSJobQueue",
]
