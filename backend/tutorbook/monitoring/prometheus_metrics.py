"""
Prometheus metrics for Tutorbook.

Service timings come from ``@BaseService.measure_operation``; HTTP timings
from the request middleware in ``tutorbook.main``. Domain counters track the
booking-to-payment funnel.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so test runs and reloads never collide with the default one
REGISTRY = CollectorRegistry()

http_request_duration_seconds = Histogram(
    "tutorbook_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path", "status"],
    registry=REGISTRY,
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

http_requests_total = Counter(
    "tutorbook_http_requests_total",
    "Total number of HTTP requests",
    ["method", "path", "status"],
    registry=REGISTRY,
)

service_operation_duration_seconds = Histogram(
    "tutorbook_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.025, 0.1, 0.5, 1.0, 5.0),
)

service_operations_total = Counter(
    "tutorbook_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "tutorbook_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

bookings_created_total = Counter(
    "tutorbook_bookings_created_total",
    "Bookings created, by kind (single, trial, recurring)",
    ["kind"],
    registry=REGISTRY,
)

checkout_sessions_total = Counter(
    "tutorbook_checkout_sessions_total",
    "Checkout session requests by outcome",
    ["outcome"],
    registry=REGISTRY,
)

payment_webhook_events_total = Counter(
    "tutorbook_payment_webhook_events_total",
    "Payment webhook events received, by event type and handling result",
    ["event_type", "result"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Recording helpers over the module-level collectors."""

    @staticmethod
    def record_http_request(method: str, path: str, duration: float, status_code: int) -> None:
        labels = {"method": method, "path": path, "status": str(status_code)}
        http_request_duration_seconds.labels(**labels).observe(duration)
        http_requests_total.labels(**labels).inc()

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Called by ``BaseService.measure_operation`` after every measured call.

        ``error_type`` is the exception class name and is only counted when
        ``status`` is ``error``.
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_booking_created(kind: str, count: int = 1) -> None:
        bookings_created_total.labels(kind=kind).inc(count)

    @staticmethod
    def record_checkout_session(outcome: str) -> None:
        checkout_sessions_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_webhook_event(event_type: str, result: str) -> None:
        payment_webhook_events_total.labels(event_type=event_type, result=result).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Metrics in Prometheus text exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
