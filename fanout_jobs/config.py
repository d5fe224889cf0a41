"""Configuration for the fan-out job pipeline."""

import os
import re
from typing import Optional

from fanout_jobs.errors import ConfigurationError

ENV_PREFIX = "FANOUT_JOBS_"

QUEUE_BACKENDS = ("postgres", "sqs", "memory")
PERIODS = ("daily", "weekly", "monthly")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def validate_identifier(value: str, name: str) -> str:
    """Reject SQL identifiers that could not be safely interpolated."""
    if not value or not _IDENTIFIER_RE.match(value):
        raise ConfigurationError(f"Invalid SQL identifier for {name}: {value!r}")
    return value


class PipelineConfig:
    """Configuration object for the pipeline."""

    def __init__(
        self,
        db_dsn: str,
        job_name: str,
        completion_table: str,
        completion_tenant_column: str = "tenant_id",
        completion_key_column: str = "job_key",
        tenant_table: str = "tenants",
        tenant_column: str = "id",
        queue_backend: str = "postgres",
        queue_name: str = "tenant_jobs",
        dead_letter_queue_name: Optional[str] = None,
        sqs_queue_url: Optional[str] = None,
        sqs_dead_letter_queue_url: Optional[str] = None,
        period: str = "weekly",
        week_end_weekday: int = 6,
        batch_size: int = 10,
        visibility_timeout_seconds: int = 300,
        max_attempts: int = 3,
        dispatch_interval_seconds: int = 60,
        operation_timeout_seconds: Optional[float] = None,
        handlers_module: Optional[str] = None,
        worker_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        alert_severity: str = "critical",
    ):
        self.db_dsn = db_dsn
        self.job_name = job_name
        self.completion_table = completion_table
        self.completion_tenant_column = completion_tenant_column
        self.completion_key_column = completion_key_column
        self.tenant_table = tenant_table
        self.tenant_column = tenant_column
        self.queue_backend = queue_backend
        self.queue_name = queue_name
        self.dead_letter_queue_name = dead_letter_queue_name or f"{queue_name}_dlq"
        self.sqs_queue_url = sqs_queue_url
        self.sqs_dead_letter_queue_url = sqs_dead_letter_queue_url
        self.period = period
        self.week_end_weekday = week_end_weekday
        self.batch_size = batch_size
        self.visibility_timeout_seconds = visibility_timeout_seconds
        self.max_attempts = max_attempts
        self.dispatch_interval_seconds = dispatch_interval_seconds
        self.operation_timeout_seconds = operation_timeout_seconds
        self.handlers_module = handlers_module
        self.worker_url = worker_url
        self.auth_token = auth_token
        self.alert_severity = alert_severity

        self.validate()

    def validate(self) -> None:
        """Check cross-field constraints, raising ConfigurationError."""
        if not self.db_dsn:
            raise ConfigurationError("db_dsn is required")
        if not self.job_name:
            raise ConfigurationError("job_name is required")

        validate_identifier(self.completion_table, "completion_table")
        validate_identifier(self.completion_tenant_column, "completion_tenant_column")
        validate_identifier(self.completion_key_column, "completion_key_column")
        validate_identifier(self.tenant_table, "tenant_table")
        validate_identifier(self.tenant_column, "tenant_column")

        if self.queue_backend not in QUEUE_BACKENDS:
            raise ConfigurationError(
                f"queue_backend must be one of {QUEUE_BACKENDS}, got {self.queue_backend!r}"
            )
        if self.queue_backend == "sqs" and not (
            self.sqs_queue_url and self.sqs_dead_letter_queue_url
        ):
            raise ConfigurationError(
                "sqs_queue_url and sqs_dead_letter_queue_url are required for the sqs backend"
            )
        if self.queue_name == self.dead_letter_queue_name:
            raise ConfigurationError("dead_letter_queue_name must differ from queue_name")

        if self.period not in PERIODS:
            raise ConfigurationError(
                f"period must be one of {PERIODS}, got {self.period!r}"
            )
        if not 0 <= self.week_end_weekday <= 6:
            raise ConfigurationError("week_end_weekday must be between 0 (Monday) and 6")

        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.visibility_timeout_seconds < 1:
            raise ConfigurationError("visibility_timeout_seconds must be at least 1")
        if self.dispatch_interval_seconds < 1:
            raise ConfigurationError("dispatch_interval_seconds must be at least 1")
        if self.operation_timeout_seconds is not None:
            if self.operation_timeout_seconds <= 0:
                raise ConfigurationError("operation_timeout_seconds must be positive")
            # A running attempt must not become visible to another reader.
            if self.operation_timeout_seconds >= self.visibility_timeout_seconds:
                raise ConfigurationError(
                    "visibility_timeout_seconds must exceed operation_timeout_seconds"
                )

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Create config from environment variables."""
        db_dsn = _require("DB_DSN")
        job_name = _require("JOB_NAME")
        completion_table = _require("COMPLETION_TABLE")

        queue_backend = _get("QUEUE_BACKEND", "postgres")
        queue_name = _get("QUEUE_NAME", "tenant_jobs")

        operation_timeout = _get("OPERATION_TIMEOUT_SECONDS")

        return cls(
            db_dsn=db_dsn,
            job_name=job_name,
            completion_table=completion_table,
            completion_tenant_column=_get("COMPLETION_TENANT_COLUMN", "tenant_id"),
            completion_key_column=_get("COMPLETION_KEY_COLUMN", "job_key"),
            tenant_table=_get("TENANT_TABLE", "tenants"),
            tenant_column=_get("TENANT_COLUMN", "id"),
            queue_backend=queue_backend,
            queue_name=queue_name,
            dead_letter_queue_name=_get("DEAD_LETTER_QUEUE_NAME"),
            sqs_queue_url=_get("SQS_QUEUE_URL"),
            sqs_dead_letter_queue_url=_get("SQS_DEAD_LETTER_QUEUE_URL"),
            period=_get("PERIOD", "weekly"),
            week_end_weekday=_get_int("WEEK_END_WEEKDAY", 6),
            batch_size=_get_int("BATCH_SIZE", 10),
            visibility_timeout_seconds=_get_int("VISIBILITY_TIMEOUT_SECONDS", 300),
            max_attempts=_get_int("MAX_ATTEMPTS", 3),
            dispatch_interval_seconds=_get_int("DISPATCH_INTERVAL_SECONDS", 60),
            operation_timeout_seconds=(
                _parse_float("OPERATION_TIMEOUT_SECONDS", operation_timeout)
                if operation_timeout
                else None
            ),
            handlers_module=_get("HANDLERS_MODULE"),
            worker_url=_get("WORKER_URL"),
            auth_token=_get("AUTH_TOKEN"),
            alert_severity=_get("ALERT_SEVERITY", "critical"),
        )

    @property
    def uses_http_worker(self) -> bool:
        return bool(self.worker_url)


def _get(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value == "":
        return default
    return value


def _require(name: str) -> str:
    value = _get(name)
    if not value:
        raise ConfigurationError(
            f"{ENV_PREFIX}{name} environment variable is required"
        )
    return value


def _get_int(name: str, default: int) -> int:
    value = _get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid integer in {ENV_PREFIX}{name}: {value!r}"
        ) from e


def _parse_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid number in {ENV_PREFIX}{name}: {value!r}"
        ) from e
