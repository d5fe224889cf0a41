"""Prometheus metrics for the pipeline.

The write path updates these; expose them with ``render_latest()`` (served at
``/metrics`` by the router).
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

ENQUEUED_TOTAL = Counter(
    "fanout_jobs_enqueued_total", "Messages enqueued by enqueue passes"
)
ENQUEUE_SKIPPED_TOTAL = Counter(
    "fanout_jobs_enqueue_skipped_total", "Tenants skipped because a completion record exists"
)
ENQUEUE_ERRORS_TOTAL = Counter(
    "fanout_jobs_enqueue_errors_total", "Tenants that failed to enqueue"
)
DISPATCHED_TOTAL = Counter(
    "fanout_jobs_dispatched_total", "Messages handed to a worker invocation"
)
DISPATCH_ERRORS_TOTAL = Counter(
    "fanout_jobs_dispatch_errors_total", "Messages that could not be dispatched or dead-lettered"
)
DEAD_LETTERED_TOTAL = Counter(
    "fanout_jobs_dead_lettered_total", "Messages moved to the dead-letter queue"
)
WORKER_RESULTS_TOTAL = Counter(
    "fanout_jobs_worker_results_total", "Worker invocations by outcome", ["status"]
)
ATTEMPT_DURATION_SECONDS = Histogram(
    "fanout_jobs_attempt_duration_seconds",
    "Duration of one worker attempt",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)
QUEUE_DEPTH = Gauge(
    "fanout_jobs_queue_depth", "Messages held by a queue", ["queue"]
)


def render_latest() -> tuple[bytes, str]:
    """Return the exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
