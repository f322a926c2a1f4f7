"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Transition metrics
transition_attempts = Counter(
    'admission_transition_attempts_total',
    'Total application transition requests',
    ['target', 'result']  # applied, noop, conflict, invalid, not_found, forbidden, error
)

transition_latency = Histogram(
    'admission_transition_latency_seconds',
    'Application transition latency',
    ['target'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0]
)

transition_retries = Counter(
    'admission_transition_retries_total',
    'Transition retries due to competing-set version conflicts'
)

auto_rejections = Counter(
    'admission_auto_rejections_total',
    'Sibling applications rejected by the approval cascade'
)

# Bulk metrics
bulk_items = Counter(
    'admission_bulk_items_total',
    'Items processed by bulk transitions',
    ['result']  # succeeded, failed
)

# Store metrics
store_operations = Counter(
    'admission_store_operations_total',
    'Application store operations',
    ['operation', 'result']  # get/query/write/count, ok/precondition_failed/error
)

# Event sink metrics
event_publish = Counter(
    'admission_event_publish_total',
    'Transition events published to the event sink',
    ['result']  # ok, failed, timeout
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_transition(target: str, result: str):
    """Record transition outcome."""
    transition_attempts.labels(target=target, result=result).inc()


def record_store_operation(operation: str, result: str):
    """Record store operation. Result: ok, precondition_failed, error"""
    store_operations.labels(operation=operation, result=result).inc()


def record_event_publish(result: str):
    """Record event publish outcome. Result: ok, failed, timeout"""
    event_publish.labels(result=result).inc()


def record_bulk_item(succeeded: bool):
    result = "succeeded" if succeeded else "failed"
    bulk_items.labels(result=result).inc()
