"""Prometheus metrics definitions."""

from prometheus_client import Counter, Gauge, Histogram

from ordernotify.models.notification import QueueStats

# Queue metrics
JOBS_ENQUEUED = Counter(
    "ordernotify_jobs_enqueued_total",
    "Total notification jobs enqueued",
    ["kind"],
)

DELIVERY_ATTEMPTS = Counter(
    "ordernotify_delivery_attempts_total",
    "Delivery attempts by outcome",
    ["outcome"],
)

DELIVERY_LATENCY = Histogram(
    "ordernotify_delivery_latency_seconds",
    "Delivery attempt latency in seconds, destination lookup included",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

PASSES = Counter(
    "ordernotify_passes_total",
    "Processing passes by result",
    ["result"],
)

JOBS_BY_STATE = Gauge(
    "ordernotify_jobs",
    "Jobs currently held by the queue, per state; failed counts pending jobs awaiting retry",
    ["state"],
)


def observe_stats(stats: QueueStats) -> None:
    """Publish a stats snapshot to the per-state gauge."""
    JOBS_BY_STATE.labels(state="pending").set(stats.pending)
    JOBS_BY_STATE.labels(state="in_flight").set(stats.in_flight)
    JOBS_BY_STATE.labels(state="delivered").set(stats.delivered)
    JOBS_BY_STATE.labels(state="abandoned").set(stats.abandoned)
    JOBS_BY_STATE.labels(state="failed").set(stats.failed)
