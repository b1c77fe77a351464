"""
Shared metrics configuration for the AAD authentication service.
"""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry
from typing import Dict, Any, Optional
import threading


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self._registry_kwarg()
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
            registry=self._registry_kwarg()
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self._registry_kwarg()
        )

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self._registry_kwarg()
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self._registry_kwarg()
        )

        self._setup_auth_metrics()

    def _setup_auth_metrics(self):
        """Set up authentication-flow metrics."""
        self._metrics["auth_callbacks_total"] = Counter(
            "auth_callbacks_total",
            "Total authentication callbacks",
            ["outcome"],
            registry=self._registry_kwarg()
        )

        self._metrics["token_validations_total"] = Counter(
            "token_validations_total",
            "Total token validations",
            ["status"],
            registry=self._registry_kwarg()
        )

        self._metrics["jwks_refresh_total"] = Counter(
            "jwks_refresh_total",
            "Total JWKS refreshes",
            ["status"],
            registry=self._registry_kwarg()
        )

        self._metrics["jwks_refresh_duration_seconds"] = Histogram(
            "jwks_refresh_duration_seconds",
            "JWKS refresh duration in seconds",
            registry=self._registry_kwarg()
        )

        self._metrics["group_fetch_total"] = Counter(
            "group_fetch_total",
            "Total directory group membership fetches",
            ["status"],
            registry=self._registry_kwarg()
        )

        self._metrics["group_fetch_pages"] = Histogram(
            "group_fetch_pages",
            "Directory pages requested per membership fetch",
            buckets=(1, 2, 3, 5, 10, 25, 50),
            registry=self._registry_kwarg()
        )

    def _registry_kwarg(self):
        # prometheus_client treats registry=None as "do not register", so the
        # default registry has to be passed through explicitly.
        if self.registry is None:
            from prometheus_client import REGISTRY
            return REGISTRY
        return self.registry

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
        self._metrics["errors_total"].labels(
            error_type=error_type,
            service=service or self.service_name
        ).inc()

    def record_callback(self, outcome: str):
        """Record the outcome of an authentication callback."""
        self._metrics["auth_callbacks_total"].labels(outcome=outcome).inc()

    def record_token_validation(self, status: str):
        self._metrics["token_validations_total"].labels(status=status).inc()

    def record_jwks_refresh(self, status: str, duration: Optional[float] = None):
        self._metrics["jwks_refresh_total"].labels(status=status).inc()
        if duration is not None:
            self._metrics["jwks_refresh_duration_seconds"].observe(duration)

    def record_group_fetch(self, status: str, pages: int):
        self._metrics["group_fetch_total"].labels(status=status).inc()
        self._metrics["group_fetch_pages"].observe(pages)


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Collectors bound to the default registry are cached per process, since
    prometheus_client refuses to register the same metric name twice.
    """
    if registry is not None:
        return MetricsCollector(service_name, registry)

    with _collectors_lock:
        if service_name not in _collectors:
            _collectors[service_name] = MetricsCollector(service_name)
        return _collectors[service_name]
