"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from fanout_jobs.alerts import InMemoryAlertSink
from fanout_jobs.queue import InMemoryJobQueue
from fanout_jobs.storage import InMemoryCompletionRecords, InMemoryJobLog, StaticTenantSource


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 10, 12, 6, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class RecordingOperation:
    """Domain operation that writes a completion record unless told to fail."""

    def __init__(self, completions):
        self.completions = completions
        self.calls = []
        self.failures = {}
        self.delay = 0

    async def __call__(self, ctx, tenant_id, job_key):
        self.calls.append((tenant_id, job_key, ctx.attempt))
        error = self.failures.get(tenant_id)
        if error:
            return {"success": False, "error": error}
        if self.delay:
            await asyncio.sleep(self.delay)
        self.completions.mark(tenant_id, job_key)
        return {"success": True}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(clock):
    return InMemoryJobQueue("tenant_jobs", clock=clock)


@pytest.fixture
def dead_letter_queue(clock):
    return InMemoryJobQueue("tenant_jobs_dlq", clock=clock)


@pytest.fixture
def job_log(clock):
    return InMemoryJobLog(clock=clock)


@pytest.fixture
def completions():
    return InMemoryCompletionRecords()


@pytest.fixture
def tenants():
    return StaticTenantSource(["tenant-a", "tenant-b", "tenant-c"])


@pytest.fixture
def alert_sink():
    return InMemoryAlertSink()


@pytest.fixture
def operation(completions):
    return RecordingOperation(completions)


@pytest.fixture
def sample_job_key():
    return "2026-10-11"
