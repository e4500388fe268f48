"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reconciliation metrics
reconciliations = Counter(
    'reconciliations_total',
    'Payment events reconciled, by outcome',
    ['outcome']  # created, updated, already_confirmed, invalid_cart_data, no_bookings_created, ...
)

reconciliation_latency = Histogram(
    'reconciliation_latency_seconds',
    'Time spent reconciling one payment event',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

booking_lines = Counter(
    'booking_lines_total',
    'Cart lines processed by the materializer',
    ['result']  # created, reused, failed
)

# Notification metrics
notifications = Counter(
    'notifications_total',
    'Outbound notification requests',
    ['kind', 'result']  # customer_confirmation/admin_alert, sent/failed
)

# Settled-payment cache metrics
settled_cache_operations = Counter(
    'settled_cache_operations_total',
    'Settled payment cache lookups',
    ['result']  # hit, miss, error
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


def record_reconciliation(outcome: str):
    reconciliations.labels(outcome=outcome).inc()


def record_booking_line(result: str):
    """Record a materialized cart line. Result: created, reused, failed"""
    booking_lines.labels(result=result).inc()


def record_notification(kind: str, sent: bool):
    result = "sent" if sent else "failed"
    notifications.labels(kind=kind, result=result).inc()


def record_settled_cache(result: str):
    """Record settled cache lookup. Result: hit, miss, error"""
    settled_cache_operations.labels(result=result).inc()
