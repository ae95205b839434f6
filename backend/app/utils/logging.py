"""Structured logging for vendor calls."""

import logging
from typing import Any

from backend.app.adapters.gateway import VendorLogger

logger = logging.getLogger(__name__)


class StructuredVendorLogger(VendorLogger):
    """Structured logger for vendor calls."""

    def log_attempt(
        self,
        endpoint: str,
        outcome: str,
        latency_ms: float,
        cache_hit: bool = False,
        error_reason: str | None = None,
    ) -> None:
        """Log vendor call attempt with structured data."""
        log_data: dict[str, Any] = {
            "endpoint": endpoint,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
            "cache_hit": cache_hit,
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Vendor call: {endpoint} - {outcome}"

        if outcome in ("success", "cache_hit"):
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
