"""
Shared metrics configuration for the products platform.
"""

from typing import Any, Dict, Optional, Sequence, Tuple

from prometheus_client import CollectorRegistry, Counter, Histogram, Info

# Metrics only one service records: name -> (type, documentation, labels).
SERVICE_METRICS: Dict[str, Dict[str, Tuple[type, str, Sequence[str]]]] = {
    "gateway": {
        "proxy_requests_total": (
            Counter, "Total requests forwarded to downstream services", ("service", "status_code"),
        ),
        "proxy_request_duration_seconds": (
            Histogram, "Downstream round-trip time in seconds", ("service",),
        ),
        "token_verifications_total": (
            Counter, "Total bearer token verifications", ("result",),
        ),
    },
    "auth": {
        "keycloak_requests_total": (
            Counter, "Total identity provider calls", ("operation", "outcome"),
        ),
    },
    "products": {
        "db_queries_total": (
            Counter, "Total database queries", ("operation", "status"),
        ),
        "db_query_duration_seconds": (
            Histogram, "Database query time in seconds", ("operation",),
        ),
    },
}


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several service instances can live in
    one process (tests build a fresh app per case).
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None, version: str = "1.0.0"):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}

        info = Info("service_info", "Service information", registry=self.registry)
        info.info({"service": service_name, "version": version})

        self._register(Counter, "http_requests_total", "Total HTTP requests", ("method", "endpoint", "status_code"))
        self._register(Histogram, "http_request_duration_seconds", "HTTP request duration in seconds", ("method", "endpoint"))
        self._register(Counter, "health_check_total", "Total health check requests", ("status",))
        self._register(Counter, "errors_total", "Total errors", ("error_type", "service"))

        for name, (metric_type, documentation, labels) in SERVICE_METRICS.get(service_name, {}).items():
            self._register(metric_type, name, documentation, labels)

    def _register(self, metric_type: type, name: str, documentation: str, labels: Sequence[str]) -> None:
        self._metrics[name] = metric_type(name, documentation, list(labels), registry=self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code),
        ).inc()
        self._metrics["http_request_duration_seconds"].labels(method=method, endpoint=endpoint).observe(duration)

    def record_health_check(self, status: str):
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        self._metrics["errors_total"].labels(error_type=error_type, service=service or self.service_name).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric; names this service does not record are ignored."""
        metric = self._metrics.get(metric_name)
        if isinstance(metric, Counter):
            metric.labels(**labels).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram sample; names this service does not record are ignored."""
        metric = self._metrics.get(metric_name)
        if isinstance(metric, Histogram):
            metric.labels(**labels).observe(value)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
