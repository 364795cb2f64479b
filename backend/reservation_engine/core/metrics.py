"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Lifecycle metrics
booking_transitions = Counter(
    'reservation_transitions_total',
    'Booking lifecycle transitions',
    ['transition', 'outcome']  # outcome: success, rejected, error
)

# Availability metrics
availability_checks = Counter(
    'availability_checks_total',
    'Availability checks',
    ['result']  # available, unavailable, rejected
)

availability_latency = Histogram(
    'availability_check_latency_seconds',
    'Availability computation latency',
    ['operation'],  # check, range, next
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

# Table assignment metrics
table_claim_conflicts = Counter(
    'table_claim_conflicts_total',
    'Table claims lost to a concurrent assignment'
)

# Waitlist metrics
waitlist_changes = Counter(
    'waitlist_changes_total',
    'Waitlist position changes',
    ['operation']  # added, reordered, moved, promoted, notified
)

waitlist_size = Gauge(
    'waitlist_size',
    'Waitlisted bookings for the most recently touched branch/date',
    ['branch_id']
)

# Event delivery metrics
notification_failures = Counter(
    'lifecycle_event_delivery_failures_total',
    'Lifecycle event handlers that raised',
    ['event_type']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set/invalidate, hit/miss/error
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


def record_transition(transition: str, outcome: str):
    """Record a lifecycle transition. Outcome: success, rejected, error"""
    booking_transitions.labels(transition=transition, outcome=outcome).inc()


def record_availability(result: str):
    availability_checks.labels(result=result).inc()


def record_waitlist_change(operation: str, count: int = 1):
    if count:
        waitlist_changes.labels(operation=operation).inc(count)


def record_cache_operation(operation: str, result: str):
    cache_operations.labels(operation=operation, result=result).inc()
