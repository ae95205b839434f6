"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes:
    - vendor_latency_ms{endpoint, outcome}
    - vendor_calls_total{endpoint, outcome}
    - route_cache_hits_total{cache}
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
