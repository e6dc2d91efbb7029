"""
Prometheus metrics for the sync service.

Tracks HTTP traffic, mutation outcomes per phase, list queries and sweeps.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Request metrics
http_requests_total = Counter(
    "tutorsync_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "tutorsync_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Mutation metrics
mutations_total = Counter(
    "tutorsync_mutations_total",
    "Total mutations by kind, operation and outcome",
    ["kind", "operation", "outcome"],
)

mutation_duration_seconds = Histogram(
    "tutorsync_mutation_duration_seconds",
    "Mutation duration in seconds",
    ["kind", "operation"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# List metrics
list_queries_total = Counter(
    "tutorsync_list_queries_total", "Total list queries", ["kind", "status"]
)

list_query_duration_seconds = Histogram(
    "tutorsync_list_query_duration_seconds",
    "List query duration in seconds",
    ["kind"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

list_corrupt_hits_total = Counter(
    "tutorsync_list_corrupt_hits_total",
    "Index hits skipped because they failed validation",
    ["kind"],
)

# Sweep metrics
sync_runs_total = Counter(
    "tutorsync_sync_runs_total", "Total reconciliation sweeps", ["kind", "status"]
)

sync_documents_total = Counter(
    "tutorsync_sync_documents_total",
    "Index objects touched by reconciliation sweeps",
    ["kind", "action"],
)


def track_request_metrics(method: str, endpoint: str, status_code: int, duration: float):
    """Track HTTP request metrics."""
    http_requests_total.labels(method=method, endpoint=endpoint, status=status_code).inc()
    http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
        duration
    )


def track_mutation(kind: str, operation: str, outcome: str, duration: float):
    """
    Track a mutation.

    ``outcome`` is one of ``success``, ``validation_error``, ``store_error``
    or ``index_error`` (committed to the store, index write failed).
    """
    mutations_total.labels(kind=kind, operation=operation, outcome=outcome).inc()
    mutation_duration_seconds.labels(kind=kind, operation=operation).observe(duration)


def track_list_query(kind: str, success: bool, duration: float):
    status = "success" if success else "failure"
    list_queries_total.labels(kind=kind, status=status).inc()
    list_query_duration_seconds.labels(kind=kind).observe(duration)


def track_corrupt_hit(kind: str):
    list_corrupt_hits_total.labels(kind=kind).inc()


def track_sync_run(kind: str, success: bool, upserted: int = 0, removed: int = 0):
    """Track a reconciliation sweep."""
    status = "success" if success else "failure"
    sync_runs_total.labels(kind=kind, status=status).inc()
    if upserted:
        sync_documents_total.labels(kind=kind, action="upserted").inc(upserted)
    if removed:
        sync_documents_total.labels(kind=kind, action="removed").inc(removed)


def get_metrics() -> Response:
    """Render all metrics in the Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
