"""Alert sinks for dead-lettered jobs."""

import json
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import asyncpg

from fanout_jobs.models import Alert


class AlertSink(ABC):
    """Receives alerts addressed to a tenant's owners."""

    @abstractmethod
    async def send(self, alert: Alert) -> None:
        """Deliver one alert."""


class LoggingAlertSink(AlertSink):
    """Writes alerts to the log."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def send(self, alert: Alert) -> None:
        self.logger.error(
            f"[{alert.severity}] {alert.title} (tenant {alert.tenant_id}): {alert.description}"
        )


class InMemoryAlertSink(AlertSink):
    """Collects alerts in a list."""

    def __init__(self):
        self.alerts: List[Alert] = []

    async def send(self, alert: Alert) -> None:
        self.alerts.append(alert)


class PostgresAlertSink(AlertSink):
    """Inserts alerts into the ``job_alerts`` inbox table."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def send(self, alert: Alert) -> None:
        async with self.db_pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO job_alerts (tenant_id, title, description, severity, meta)
                VALUES ($1, $2, $3, $4, $5)
                """,
                alert.tenant_id,
                alert.title,
                alert.description,
                alert.severity,
                json.dumps(alert.meta),
            )
