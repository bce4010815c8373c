"""
Prometheus metrics for the Mentorly access layer.
"""

from typing import Dict, Optional, Sequence, Tuple

from prometheus_client import CollectorRegistry, Counter, Histogram, Info

# name -> (help text, label names)
COUNTERS: Dict[str, Tuple[str, Sequence[str]]] = {
    "http_requests_total": ("Total HTTP requests", ("method", "endpoint", "status_code")),
    "health_check_total": ("Health check results", ("status",)),
    "errors_total": ("Errors by type", ("error_type", "service")),
    "business_events_total": ("Mentor login and status outcomes", ("event_type", "service")),
    "gate_decisions_total": ("Request gate outcomes", ("outcome",)),
    "rate_limit_rejections_total": ("Requests rejected by the rate limiter", ("policy",)),
    "counter_store_fallbacks_total": ("Rate limit checks served by the fallback store", ("reason",)),
    "token_verifications_total": ("Bearer token verification results", ("status",)),
}


class MetricsCollector:
    """Per-service metrics bound to a private registry.

    Each collector owns its registry so several service instances (tests,
    workers) can coexist in one process without duplicate registrations.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()

        self.counters: Dict[str, Counter] = {
            name: Counter(name, help_text, list(labels), registry=self.registry)
            for name, (help_text, labels) in COUNTERS.items()
        }
        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry,
        )
        Info("service", "Service information", registry=self.registry).info(
            {"service": service_name, "version": "1.0.0"}
        )

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        return self.registry.get_sample_value(name, labels or {})

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self.increment_counter("http_requests_total", method=method, endpoint=endpoint, status_code=str(status_code))
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_health_check(self, status: str):
        self.increment_counter("health_check_total", status=status)

    def record_error(self, error_type: str, service: Optional[str] = None):
        self.increment_counter("errors_total", error_type=error_type, service=service or self.service_name)

    def record_business_event(self, event_type: str, service: Optional[str] = None):
        self.increment_counter("business_events_total", event_type=event_type, service=service or self.service_name)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a known counter; unknown names are ignored."""
        counter = self.counters.get(metric_name)
        if counter is not None:
            counter.labels(**labels).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    return MetricsCollector(service_name, registry)
