"""
Shared metrics configuration for the spell metadata cache.
"""

from typing import Dict, Any, Optional, Tuple
import threading

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
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

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        if self.service_name == "spells":
            self._setup_spell_cache_metrics()

    def _setup_spell_cache_metrics(self):
        """Set up spell cache metrics."""
        self._metrics["spell_cache_lookups_total"] = Counter(
            "spell_cache_lookups_total",
            "Spell cache lookups by freshness outcome",
            ["result"],
            registry=self.registry
        )

        self._metrics["spell_upstream_fetches_total"] = Counter(
            "spell_upstream_fetches_total",
            "Upstream spell fetches by outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["spell_upstream_fetch_duration_seconds"] = Histogram(
            "spell_upstream_fetch_duration_seconds",
            "Upstream spell fetch duration in seconds",
            registry=self.registry
        )

        self._metrics["spell_background_refresh_failures_total"] = Counter(
            "spell_background_refresh_failures_total",
            "Background refreshes that failed and left the stale record in place",
            ["reason"],
            registry=self.registry
        )

        self._metrics["spell_inflight_fetches"] = Gauge(
            "spell_inflight_fetches",
            "Upstream fetches currently in flight",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

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

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).inc()

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).set(value)

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).observe(value)


_collectors: Dict[Tuple[str, int], MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get the metrics collector for a service.

    Collectors are cached per (service, registry) because prometheus_client
    refuses to register the same metric name twice in one registry.
    """
    key = (service_name, id(registry if registry is not None else REGISTRY))
    with _collectors_lock:
        collector = _collectors.get(key)
        if collector is None:
            collector = MetricsCollector(service_name, registry)
            _collectors[key] = collector
        return collector

