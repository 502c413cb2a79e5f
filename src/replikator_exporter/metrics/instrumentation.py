from __future__ import annotations

"""
replikator_exporter.metrics.instrumentation
===========================================

Request instrumentation for the exporter's own HTTP endpoint.

`RequestMetrics` groups the counter and histogram observed by the WSGI app.
These are cumulative for the process lifetime; collection never resets them.
"""

from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Counter, Histogram

__all__ = ["DURATION_BUCKETS", "RequestMetrics"]

DURATION_BUCKETS: tuple[float, ...] = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


@dataclass
class RequestMetrics:
    requests_total: Counter
    request_duration: Histogram

    @classmethod
    def create(cls, registry: CollectorRegistry) -> RequestMetrics:
        return cls(
            requests_total=Counter(
                "http_requests_total",
                "Count of all HTTP requests",
                labelnames=("code", "method"),
                registry=registry,
            ),
            request_duration=Histogram(
                "http_request_duration_seconds",
                "Duration of HTTP requests in seconds, including collection",
                labelnames=("method",),
                registry=registry,
                buckets=DURATION_BUCKETS,
            ),
        )

    def observe(self, *, method: str, code: int | str, duration_s: float) -> None:
        # lowercase keeps "GET" and "get" in one series
        m = method.lower()
        self.requests_total.labels(code=str(code), method=m).inc()
        self.request_duration.labels(method=m).observe(duration_s)
