"""Data models for queue messages, job log entries and pass summaries."""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field


class JobLogStatus(str, Enum):
    """Status values recorded in the job log."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTERED = "dead_lettered"


class WorkerOutcome(str, Enum):
    """Outcome of a single worker invocation."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class Message:
    """A message held by a job queue."""

    def __init__(
        self,
        message_id: str,
        tenant_id: str,
        job_key: str,
        enqueued_at: datetime,
        delivery_count: int = 0,
        visible_at: Optional[datetime] = None,
        payload: Optional[Dict[str, Any]] = None,
        receipt: Optional[str] = None,
    ):
        self.message_id = message_id
        self.tenant_id = tenant_id
        self.job_key = job_key
        self.enqueued_at = enqueued_at
        self.delivery_count = delivery_count
        self.visible_at = visible_at
        self.payload = payload or {}
        # SQS needs the receipt handle of the latest read to delete a message.
        self.receipt = receipt or message_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary for JSON serialization."""
        return {
            "message_id": self.message_id,
            "tenant_id": self.tenant_id,
            "job_key": self.job_key,
            "enqueued_at": self.enqueued_at.isoformat() if self.enqueued_at else None,
            "delivery_count": self.delivery_count,
            "visible_at": self.visible_at.isoformat() if self.visible_at else None,
            "payload": self.payload,
            "receipt": self.receipt,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        """Rebuild a message from its ``to_dict`` form."""
        enqueued_at = data.get("enqueued_at")
        visible_at = data.get("visible_at")
        return cls(
            message_id=str(data["message_id"]),
            tenant_id=data["tenant_id"],
            job_key=data["job_key"],
            enqueued_at=(
                datetime.fromisoformat(enqueued_at)
                if isinstance(enqueued_at, str)
                else enqueued_at
            ),
            delivery_count=int(data.get("delivery_count", 0)),
            visible_at=(
                datetime.fromisoformat(visible_at)
                if isinstance(visible_at, str)
                else visible_at
            ),
            payload=dict(data.get("payload") or {}),
            receipt=data.get("receipt"),
        )

    @property
    def malformed(self) -> bool:
        """True when the stored body did not name a tenant and job key."""
        return not self.tenant_id or not self.job_key

    def __repr__(self) -> str:
        return (
            f"Message(message_id={self.message_id}, tenant_id={self.tenant_id}, "
            f"job_key={self.job_key}, delivery_count={self.delivery_count})"
        )


class JobLogEntry:
    """One appended row of the job log."""

    def __init__(
        self,
        id: int,
        tenant_id: str,
        job_key: str,
        status: JobLogStatus,
        attempt: int,
        message_id: Optional[str] = None,
        error_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
        noop: bool = False,
        note: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ):
        self.id = id
        self.tenant_id = tenant_id
        self.job_key = job_key
        self.status = JobLogStatus(status) if isinstance(status, str) else status
        self.attempt = attempt
        self.message_id = message_id
        self.error_message = error_message
        self.duration_ms = duration_ms
        self.noop = noop
        self.note = note
        self.created_at = created_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert entry to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "job_key": self.job_key,
            "status": self.status.value,
            "attempt": self.attempt,
            "message_id": self.message_id,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
            "noop": self.noop,
            "note": self.note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class JobContext:
    """Context handed to a domain operation."""

    def __init__(
        self,
        tenant_id: str,
        job_key: str,
        attempt: int,
        message_id: Optional[str] = None,
        db_pool: Any = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.tenant_id = tenant_id
        self.job_key = job_key
        self.attempt = attempt
        self.message_id = message_id
        self.db_pool = db_pool
        self.logger = logger or logging.getLogger(__name__)


class ExecuteResult(BaseModel):
    """Result of a domain operation."""

    success: bool
    error: Optional[str] = None

    @classmethod
    def coerce(cls, value: Any) -> "ExecuteResult":
        """
        Normalize what an operation returned.

        ``None`` means success, a mapping is read for ``success``/``error``,
        and a bare boolean is taken as the success flag.
        """
        if value is None:
            return cls(success=True)
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls(success=value, error=None if value else "Operation reported failure")
        if isinstance(value, Mapping):
            success = bool(value.get("success", False))
            error = value.get("error")
            if not success and not error:
                error = "Operation reported failure"
            return cls(success=success, error=str(error) if error is not None else None)
        raise TypeError(f"Unsupported operation result type: {type(value).__name__}")


class QueueMetrics(BaseModel):
    """Point-in-time metrics of one queue."""

    pending_count: int
    oldest_age: Optional[float] = None


class DepthSample(BaseModel):
    """Queue depth sampled by the dispatcher."""

    queue_name: str
    pending_count: int
    oldest_age: Optional[float] = None
    sampled_at: datetime


class Alert(BaseModel):
    """Alert emitted when a job is dead-lettered."""

    tenant_id: str
    title: str
    description: str
    severity: str = "critical"
    meta: Dict[str, Any] = Field(default_factory=dict)


class EnqueueSummary(BaseModel):
    """Summary of one enqueue pass."""

    job_key: str
    tenant_count: int = 0
    enqueued_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    errors: List[Dict[str, str]] = Field(default_factory=list)


class DispatchSummary(BaseModel):
    """Summary of one dispatch pass."""

    read_count: int = 0
    dispatched_count: int = 0
    dead_lettered_count: int = 0
    held_count: int = 0
    error_count: int = 0


class WorkerResult(BaseModel):
    """Result of processing one (tenant, job_key) unit."""

    tenant_id: str
    job_key: str
    status: WorkerOutcome
    attempt: int = 1
    message_id: Optional[str] = None
    duration_ms: int = 0
    error: Optional[str] = None

    model_config = {
        "use_enum_values": True,
    }


class RunOutcome(BaseModel):
    """Per-tenant outcome counts for one job key."""

    job_key: str
    tenant_count: int = 0
    completed_count: int = 0
    noop_count: int = 0
    failed_count: int = 0
    dead_lettered_count: int = 0
    in_flight_count: int = 0
    failed_attempt_count: int = 0
    completion_ratio: Optional[float] = None


class DurationPercentiles(BaseModel):
    """Nearest-rank percentiles of attempt durations in milliseconds."""

    count: int = 0
    p50: Optional[int] = None
    p95: Optional[int] = None
    p99: Optional[int] = None


class TenantFailures(BaseModel):
    """One row of the tenant failure leaderboard."""

    tenant_id: str
    failure_count: int = 0
    dead_lettered_count: int = 0
    last_error: Optional[str] = None
    last_failed_at: Optional[datetime] = None


class StallReport(BaseModel):
    """Result of a stall check."""

    stalled: bool
    pending_count: int
    oldest_age: Optional[float] = None
    last_activity_at: Optional[datetime] = None
    idle_seconds: Optional[float] = None
    window_seconds: float


class PipelineStatus(BaseModel):
    """Point-in-time metrics of the primary and dead-letter queues."""

    queue_name: str
    pending_count: int
    oldest_age: Optional[float] = None
    dead_letter_queue_name: str
    dead_letter_count: int
    dead_letter_oldest_age: Optional[float] = None
