"""
Prometheus metrics for the scheduling engine.

Service timings come from the ``@BaseService.measure_operation`` decorator;
domain counters are bumped by the services themselves. Everything lives on a
private registry so embedding applications can expose or ignore it.
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

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "cadence_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "cadence_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "cadence_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

# Domain-specific counters
reservations_total = Counter(
    "cadence_reservations_total",
    "Reservation attempts by outcome",
    ["call_type", "outcome"],  # outcome: reserved | SLOT_ALREADY_TAKEN | WEEKLY_LIMIT_REACHED ...
    registry=REGISTRY,
)

task_instances_materialized_total = Counter(
    "cadence_task_instances_materialized_total",
    "Task instances created by materialization",
    ["frequency"],
    registry=REGISTRY,
)

empty_expansions_total = Counter(
    "cadence_empty_expansions_total",
    "Expansions that produced zero dates",
    ["frequency"],
    registry=REGISTRY,
)

strikes_total = Counter(
    "cadence_strikes_total",
    "Missed check-ins recorded",
    ["outcome"],  # counted | suspended
    registry=REGISTRY,
)

notifications_enqueued_total = Counter(
    "cadence_notifications_enqueued_total",
    "Notification intents written to the outbox",
    ["event_type"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None

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
            service: Service name (e.g., 'SlotReservationService')
            operation: Operation/method name (e.g., 'reserve')
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
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_reservation(call_type: str, outcome: str) -> None:
        reservations_total.labels(call_type=call_type, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_materialized(frequency: str, count: int) -> None:
        if count > 0:
            task_instances_materialized_total.labels(frequency=frequency).inc(count)
            PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_empty_expansion(frequency: str) -> None:
        empty_expansions_total.labels(frequency=frequency).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_strike(outcome: str) -> None:
        strikes_total.labels(outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_notification(event_type: str) -> None:
        notifications_enqueued_total.labels(event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        with PrometheusMetrics._cache_lock:
            if PrometheusMetrics._cache_payload is None:
                PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
