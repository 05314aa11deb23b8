"""Prometheus metrics for the gateway.

A :class:`GatewayMetrics` instance owns its own :class:`CollectorRegistry`. It is
created once per process and handed to :func:`keiko_contracts.api.create_app`, so
tests can build isolated registries without colliding on metric names.
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)


class GatewayMetrics:
    """HTTP and contract-download metrics bound to a dedicated registry."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        ProcessCollector(registry=self.registry)
        PlatformCollector(registry=self.registry)
        GCCollector(registry=self.registry)

        self.http_request_duration = Histogram(
            'http_request_duration_seconds',
            'Duration of HTTP requests in seconds',
            ['method', 'route', 'status_code'],
            buckets=(0.1, 0.5, 1.0, 2.0, 5.0),
            registry=self.registry,
        )
        self.http_requests_total = Counter(
            'http_requests_total',
            'Total number of HTTP requests',
            ['method', 'route', 'status_code'],
            registry=self.registry,
        )
        self.spec_downloads_total = Counter(
            'api_spec_downloads_total',
            'Total number of API specification downloads',
            ['spec_type', 'spec_name'],
            registry=self.registry,
        )

    def observe_request(self, method: str, route: str, status_code: int, duration: float) -> None:
        labels = {'method': method, 'route': route, 'status_code': str(status_code)}
        self.http_request_duration.labels(**labels).observe(duration)
        self.http_requests_total.labels(**labels).inc()

    def record_download(self, spec_type: str, spec_name: str) -> None:
        self.spec_downloads_total.labels(spec_type=spec_type, spec_name=spec_name).inc()

    def render(self) -> bytes:
        """Return the text exposition of every registered collector."""
        return generate_latest(self.registry)
