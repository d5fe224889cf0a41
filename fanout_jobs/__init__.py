"""Scheduled per-tenant fan-out jobs with retries and dead-lettering."""

from fanout_jobs.alerts import AlertSink, InMemoryAlertSink, LoggingAlertSink, PostgresAlertSink
from fanout_jobs.config import PipelineConfig
from fanout_jobs.ddl import get_ddl
from fanout_jobs.dead_letter import DeadLetterHandler
from fanout_jobs.dispatcher import (
    Dispatcher,
    HttpWorkerInvoker,
    LocalWorkerInvoker,
    WorkerInvoker,
    run_dispatcher_loop,
)
from fanout_jobs.enqueuer import Enqueuer
from fanout_jobs.errors import (
    ConfigurationError,
    DispatchError,
    OperationNotFoundError,
    PipelineError,
    RemoteHttpError,
)
from fanout_jobs.http_client import PipelineHttpClient
from fanout_jobs.job_keys import compute_job_key
from fanout_jobs.models import (
    Alert,
    DispatchSummary,
    EnqueueSummary,
    ExecuteResult,
    JobContext,
    JobLogEntry,
    JobLogStatus,
    Message,
    WorkerOutcome,
    WorkerResult,
)
from fanout_jobs.observability import ObservabilityViews
from fanout_jobs.registry import OperationRegistry, operation_registry
from fanout_jobs.service import PipelineService
from fanout_jobs.worker import Worker

__version__ = "0.1.0"

__all__ = [
    "AlertSink",
    "InMemoryAlertSink",
    "LoggingAlertSink",
    "PostgresAlertSink",
    "PipelineConfig",
    "get_ddl",
    "DeadLetterHandler",
    "Dispatcher",
    "HttpWorkerInvoker",
    "LocalWorkerInvoker",
    "WorkerInvoker",
    "run_dispatcher_loop",
    "Enqueuer",
    "ConfigurationError",
    "DispatchError",
    "OperationNotFoundError",
    "PipelineError",
    "RemoteHttpError",
    "PipelineHttpClient",
    "compute_job_key",
    "Alert",
    "DispatchSummary",
    "EnqueueSummary",
    "ExecuteResult",
    "JobContext",
    "JobLogEntry",
    "JobLogStatus",
    "Message",
    "WorkerOutcome",
    "WorkerResult",
    "ObservabilityViews",
    "OperationRegistry",
    "operation_registry",
    "PipelineService",
    "Worker",
]
