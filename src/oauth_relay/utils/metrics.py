"""Prometheus metrics for the OAuth relay."""

import logging

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

logger = logging.getLogger("oauth-relay.utils.metrics")

UNMATCHED_ROUTE = "unmatched_route"


class MetricsCollector:
    """Process-wide request metrics exposed in Prometheus text format.

    Each collector owns its registry, so several apps (or tests) in one
    process never share series.
    """

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        include_process_metrics: bool = True,
    ) -> None:
        """Initialize the collector.

        Args:
            registry: Registry to register metrics in. A new one is created
                if not provided.
            include_process_metrics: Also export process, platform and GC
                metrics.
        """
        self.registry = registry or CollectorRegistry()

        if include_process_metrics:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

        self.http_requests = Counter(
            "http_requests_total",
            "Total number of HTTP requests",
            ["method", "route", "status_code"],
            registry=self.registry,
        )

    def record_request(self, method: str, route: str | None, status_code: int) -> None:
        """Count one completed request.

        Args:
            method: HTTP method.
            route: Matched route pattern, or None if no route matched.
            status_code: Final response status.
        """
        self.http_requests.labels(
            method=method,
            route=route or UNMATCHED_ROUTE,
            status_code=str(status_code),
        ).inc()

    def request_count(self, method: str, route: str, status_code: int) -> float:
        """Return the current value of one request series (0 if absent)."""
        value = self.registry.get_sample_value(
            "http_requests_total",
            {"method": method, "route": route, "status_code": str(status_code)},
        )
        return value or 0.0

    def generate_metrics(self) -> tuple[bytes, str]:
        """Render every registered metric.

        Returns:
            Tuple of (payload, content_type).
        """
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
