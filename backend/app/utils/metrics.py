"""Prometheus metrics for vendor calls and caches."""

from prometheus_client import Counter, Histogram

from backend.app.adapters.gateway import VendorMetrics

vendor_latency_ms = Histogram(
    "vendor_latency_ms",
    "Vendor call latency in milliseconds",
    ["endpoint", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000],
)

vendor_calls_total = Counter(
    "vendor_calls_total",
    "Total vendor calls",
    ["endpoint", "outcome"],
)

route_cache_hits_total = Counter(
    "route_cache_hits_total",
    "Total route/coordinate cache hits",
    ["cache"],
)


class PrometheusVendorMetrics(VendorMetrics):
    """Prometheus-based vendor metrics implementation."""

    def record_call(self, endpoint: str, success: bool, latency_ms: float) -> None:
        """Record one vendor call."""
        outcome = "success" if success else "error"
        vendor_latency_ms.labels(endpoint=endpoint, outcome=outcome).observe(latency_ms)
        vendor_calls_total.labels(endpoint=endpoint, outcome=outcome).inc()

    def inc_cache_hit(self, cache: str) -> None:
        """Increment cache hit counter."""
        route_cache_hits_total.labels(cache=cache).inc()
