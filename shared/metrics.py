"""
Shared metrics configuration for the Warehouse Access Layer.
"""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, REGISTRY
from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_access_metrics()

    def _setup_access_metrics(self):
        """Set up rate limiting and authorization metrics."""
        self._metrics["rate_limit_decisions_total"] = Counter(
            "rate_limit_decisions_total",
            "Total rate limit decisions",
            ["policy", "decision"],
            registry=self.registry
        )

        self._metrics["rate_limit_store_failures_total"] = Counter(
            "rate_limit_store_failures_total",
            "Quota store failures absorbed by failing open",
            ["policy"],
            registry=self.registry
        )

        self._metrics["quota_store_duration_seconds"] = Histogram(
            "quota_store_duration_seconds",
            "Quota store round-trip duration in seconds",
            ["operation"],
            registry=self.registry
        )

        self._metrics["authorization_checks_total"] = Counter(
            "authorization_checks_total",
            "Total role permission checks",
            ["resource", "action", "decision"],
            registry=self.registry
        )

        self._metrics["route_guard_outcomes_total"] = Counter(
            "route_guard_outcomes_total",
            "Route guard terminal states",
            ["state"],
            registry=self.registry
        )

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_rate_limit_decision(self, policy: str, allowed: bool):
        self._metrics["rate_limit_decisions_total"].labels(
            policy=policy,
            decision="allowed" if allowed else "denied"
        ).inc()

    def record_store_failure(self, policy: str):
        self._metrics["rate_limit_store_failures_total"].labels(policy=policy).inc()

    def record_authorization(self, resource: str, action: str, allowed: bool):
        self._metrics["authorization_checks_total"].labels(
            resource=resource,
            action=action,
            decision="allowed" if allowed else "denied"
        ).inc()

    def record_route_guard(self, state: str):
        self._metrics["route_guard_outcomes_total"].labels(state=state).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            if operation_name in self._metrics:
                self._metrics[operation_name].labels(**labels).observe(duration)


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Collectors bound to the default registry are cached per service name, since
    prometheus_client refuses to register the same metric twice.
    """
    if registry is not None:
        return MetricsCollector(service_name, registry)

    with _collectors_lock:
        if service_name not in _collectors:
            _collectors[service_name] = MetricsCollector(service_name)
        return _collectors[service_name]
