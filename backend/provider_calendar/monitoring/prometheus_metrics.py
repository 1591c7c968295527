"""
Prometheus metrics for the provider calendar core.

Service timings come from ``@BaseService.measure_operation``; the domain
counters track notification dispatch and automation runs.
"""

from threading import Lock
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so tests and embedding apps do not collide with the default one
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "provider_calendar_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "provider_calendar_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "provider_calendar_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

notifications_dispatched_total = Counter(
    "provider_calendar_notifications_dispatched_total",
    "Notifications handed to the dispatcher, by outcome",
    ["notification_type", "status"],  # status: sent | failed
    registry=REGISTRY,
)

automation_runs_total = Counter(
    "provider_calendar_automation_runs_total",
    "Automation ticks by outcome",
    ["status"],  # success | partial
    registry=REGISTRY,
)

automation_items_total = Counter(
    "provider_calendar_automation_items_total",
    "Reservations flagged by automation scans",
    ["scan"],  # reminder | lateness
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _lock: Lock = Lock()

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'AvailabilityService')
            operation: Operation/method name (e.g., 'create_availability')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_notification(notification_type: str, status: str) -> None:
        notifications_dispatched_total.labels(
            notification_type=notification_type, status=status
        ).inc()

    @staticmethod
    def record_automation_run(reminders: int, lateness_alerts: int, errors: int) -> None:
        """Record one automation tick and how many reservations it flagged."""
        automation_runs_total.labels(status="partial" if errors else "success").inc()
        if reminders:
            automation_items_total.labels(scan="reminder").inc(reminders)
        if lateness_alerts:
            automation_items_total.labels(scan="lateness").inc(lateness_alerts)

    @staticmethod
    def get_metrics() -> bytes:
        """Generate metrics in Prometheus exposition format."""
        with PrometheusMetrics._lock:
            return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


# Singleton instance
prometheus_metrics = PrometheusMetrics()
