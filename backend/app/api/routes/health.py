"""Health check endpoints.

- Checks DB and Redis connectivity
- Optional vendor gateway reachability check
- Returns honest status with component details
"""

import json
from typing import Any

import httpx
import redis.asyncio as aioredis
from fastapi import APIRouter, Response
from sqlalchemy import text

from backend.app.config import Settings, get_settings
from backend.app.db.engine import create_async_engine_from_settings

router = APIRouter()


async def check_db(settings: Settings) -> tuple[bool, str]:
    """Check database connectivity.

    Returns:
        (is_ok, status_message)
    """
    try:
        engine = create_async_engine_from_settings(settings)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        finally:
            await engine.dispose()
        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")


async def check_redis(settings: Settings) -> tuple[bool, str]:
    """Check Redis connectivity (the collaboration channel).

    Returns:
        (is_ok, status_message)
    """
    if not settings.redis_url:
        return (True, "not_configured")

    try:
        client = aioredis.from_url(settings.redis_url, decode_responses=True)
        try:
            await client.ping()
        finally:
            await client.aclose()
        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")


async def check_gateway(settings: Settings) -> tuple[bool, str]:
    """Check optional vendor gateway reachability.

    Returns:
        (is_ok, status_message)
    """
    if not settings.enable_outbound_healthcheck:
        return (True, "disabled")

    try:
        async with httpx.AsyncClient(timeout=settings.vendor_timeout_ms / 1000.0) as client:
            response = await client.get(settings.gateway_base_url)
        if response.status_code >= 500:
            return (False, f"error: status {response.status_code}")
        return (True, "ok")
    except httpx.HTTPError as e:
        return (False, f"error: {type(e).__name__}")


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz() -> dict[str, Any] | Response:
    """Health check endpoint.

    Returns:
        200 with component status if core systems ok
        503 if DB or Redis fail (gateway is reported but not critical)
    """
    settings = get_settings()

    db_ok, db_status = await check_db(settings)
    redis_ok, redis_status = await check_redis(settings)
    _, gateway_status = await check_gateway(settings)

    core_ok = db_ok and redis_ok

    response_body = {
        "status": "ok" if core_ok else "degraded",
        "components": {
            "db": db_status,
            "redis": redis_status,
            "gateway": gateway_status,
        },
    }

    if not core_ok:
        return Response(
            content=json.dumps(response_body),
            status_code=503,
            media_type="application/json",
        )

    return response_body
