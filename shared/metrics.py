"""
Shared metrics configuration for the rules engine.
"""

from typing import Dict, Any, Optional
import time
import threading
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Info, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for the engine.

    Metrics are only registered when a registry is supplied, so several
    engines (and test cases) can each own a collector without name clashes.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up engine metrics."""

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

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_engine_metrics()

    def _setup_engine_metrics(self):
        """Set up rule/fact evaluation metrics."""
        self._metrics["rule_evaluations_total"] = Counter(
            "rule_evaluations_total",
            "Total rule evaluations",
            ["result"],
            registry=self.registry
        )

        self._metrics["fact_computations_total"] = Counter(
            "fact_computations_total",
            "Total dynamic fact computations",
            ["fact"],
            registry=self.registry
        )

        self._metrics["fact_cache_hits_total"] = Counter(
            "fact_cache_hits_total",
            "Total fact cache hits",
            ["fact"],
            registry=self.registry
        )

        self._metrics["engine_runs_total"] = Counter(
            "engine_runs_total",
            "Total engine runs",
            ["status"],
            registry=self.registry
        )

        self._metrics["engine_run_duration_seconds"] = Histogram(
            "engine_run_duration_seconds",
            "Engine run duration in seconds",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            self.observe_histogram(operation_name, duration, **labels)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            with self._lock:
                (metric.labels(**labels) if labels else metric).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            metric = self._metrics[metric_name]
            (metric.labels(**labels) if labels else metric).observe(value)


# one collector per registry; metric names may only be registered once
_collectors: Dict[CollectorRegistry, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Without a registry the collector is private and unregistered. With one,
    the first collector created for that registry is reused.
    """
    if registry is None:
        return MetricsCollector(service_name)
    with _collectors_lock:
        collector = _collectors.get(registry)
        if collector is None:
            collector = MetricsCollector(service_name, registry)
            _collectors[registry] = collector
        return collector
