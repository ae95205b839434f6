"""Async request abstraction over the same-origin vendor gateway.

Every vendor call goes through ``VendorGateway.get_json``:
- Same-origin paths only (the proxy injects vendor credentials)
- Hard deadline per call, expressed as ``timeout_ms``
- Result-or-error: returns decoded JSON or raises VendorTimeoutError/VendorError
- Metrics and structured logging through injected sinks
"""

import asyncio
import json
import time
from typing import Any

import httpx


class VendorTimeoutError(Exception):
    """Vendor call exceeded its deadline."""

    def __init__(self, endpoint: str, timeout_ms: int) -> None:
        super().__init__(f"{endpoint} timed out after {timeout_ms}ms")
        self.endpoint = endpoint
        self.timeout_ms = timeout_ms


class VendorError(Exception):
    """Vendor call failed (transport, HTTP status, payload or error envelope)."""

    def __init__(self, endpoint: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{endpoint}: {message}")
        self.endpoint = endpoint
        self.status_code = status_code


# Metrics interface (implemented by utils.metrics.PrometheusVendorMetrics)
class VendorMetrics:
    """Interface for vendor-call metrics."""

    def record_call(self, endpoint: str, success: bool, latency_ms: float) -> None:
        """Record one vendor call."""
        pass

    def inc_cache_hit(self, cache: str) -> None:
        """Increment cache hit counter."""
        pass


# Logging interface (implemented by utils.logging.StructuredVendorLogger)
class VendorLogger:
    """Interface for structured vendor logging."""

    def log_attempt(
        self,
        endpoint: str,
        outcome: str,
        latency_ms: float,
        cache_hit: bool = False,
        error_reason: str | None = None,
    ) -> None:
        """Log vendor call attempt."""
        pass


class VendorGateway:
    """HTTP client bound to the same-origin vendor proxy."""

    def __init__(
        self,
        base_url: str,
        timeout_ms: int = 4000,
        client: httpx.AsyncClient | None = None,
        metrics: VendorMetrics | None = None,
        logger: VendorLogger | None = None,
    ) -> None:
        """Initialize gateway.

        Args:
            base_url: Root of the same-origin proxy
            timeout_ms: Default deadline per call
            client: Optional httpx client (for testing with mocks)
            metrics: Metrics sink (optional, defaults to no-op)
            logger: Structured logger (optional, defaults to no-op)
        """
        self._base_url = base_url.rstrip("/")
        self._timeout_ms = timeout_ms
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_ms / 1000)
        self.metrics = metrics or VendorMetrics()
        self.logger = logger or VendorLogger()

    def url_for(self, path: str) -> str:
        """Build a same-origin URL for a proxy path."""
        if "://" in path or not path.startswith("/"):
            raise ValueError(f"gateway paths must be same-origin absolute paths: {path!r}")
        return f"{self._base_url}{path}"

    async def get_json(
        self,
        endpoint: str,
        path: str,
        params: dict[str, Any],
        *,
        timeout_ms: int | None = None,
    ) -> dict[str, Any]:
        """GET a proxy path and decode its JSON body.

        Args:
            endpoint: Logical endpoint name for metrics/logs (e.g. "kakao.directions")
            path: Same-origin proxy path
            params: Query parameters
            timeout_ms: Deadline override for this call

        Returns:
            Decoded JSON object

        Raises:
            VendorTimeoutError: Deadline exceeded
            VendorError: Transport failure, non-2xx status or non-JSON body
        """
        deadline_ms = timeout_ms or self._timeout_ms
        url = self.url_for(path)
        start = time.monotonic()

        try:
            response = await asyncio.wait_for(
                self._client.get(url, params=params), timeout=deadline_ms / 1000
            )
        except (TimeoutError, httpx.TimeoutException) as e:
            self._record(endpoint, False, start, "timeout")
            raise VendorTimeoutError(endpoint, deadline_ms) from e
        except httpx.HTTPError as e:
            self._record(endpoint, False, start, type(e).__name__)
            raise VendorError(endpoint, f"transport error: {type(e).__name__}") from e

        if response.status_code >= 400:
            self._record(endpoint, False, start, f"http_{response.status_code}")
            raise VendorError(
                endpoint, f"HTTP {response.status_code}", status_code=response.status_code
            )

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            self._record(endpoint, False, start, "invalid_json")
            raise VendorError(endpoint, "invalid JSON body", status_code=response.status_code) from e

        if not isinstance(data, dict):
            self._record(endpoint, False, start, "invalid_json")
            raise VendorError(endpoint, "expected JSON object", status_code=response.status_code)

        self._record(endpoint, True, start)
        return data

    def _record(
        self, endpoint: str, success: bool, start: float, error_reason: str | None = None
    ) -> None:
        elapsed_ms = (time.monotonic() - start) * 1000
        self.metrics.record_call(endpoint, success, elapsed_ms)
        self.logger.log_attempt(
            endpoint,
            "success" if success else "error",
            elapsed_ms,
            error_reason=error_reason,
        )

    def record_cache_hit(self, cache: str) -> None:
        """Count and log a lookup answered from ``cache`` without a vendor call."""
        self.metrics.inc_cache_hit(cache)
        self.logger.log_attempt(f"{cache}_cache", "cache_hit", 0.0, cache_hit=True)

    async def aclose(self) -> None:
        """Close the underlying client if the gateway created it."""
        if self._owns_client:
            await self._client.aclose()
