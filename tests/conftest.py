"""Shared pytest fixtures for all test suites."""

import os
from collections import Counter
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from backend.app.adapters.gateway import VendorGateway, VendorMetrics
from backend.app.config import Settings
from backend.app.db.inmemory import InMemoryCoordinateCache, InMemoryRouteCache
from backend.app.db.models import Base
from backend.app.routing.coordinates import CoordinateResolver
from backend.app.routing.routes import RouteResolver


def _doc(name: str, lat: float, lng: float) -> dict[str, str]:
    # x/y are strings in vendor A documents
    return {"place_name": name, "address_name": name, "x": str(lng), "y": str(lat)}


DIRECTIONS_OK: dict[str, Any] = {
    "routes": [
        {
            "result_code": 0,
            "result_msg": "길찾기 성공",
            "summary": {
                "duration": 1260,
                "distance": 8420,
                "fare": {"taxi": 11200, "toll": 0},
            },
            "sections": [
                {
                    "roads": [
                        {"vertexes": [127.4343, 36.3324, 127.4201, 36.3410]},
                        {"vertexes": [127.4012, 36.3598, 127.3868, 36.3765]},
                    ]
                }
            ],
        }
    ]
}


def _bus_leg(bus_no: str, minutes: int, bus_type: int = 1) -> dict[str, Any]:
    return {
        "trafficType": 2,
        "sectionTime": minutes,
        "distance": 8500,
        "stationCount": 14,
        "startName": "대전역",
        "endName": "엑스포과학공원",
        "startX": 127.4343,
        "startY": 36.3324,
        "endX": 127.3868,
        "endY": 36.3765,
        "lane": [{"busNo": bus_no, "type": bus_type}],
        "passStopList": {
            "stations": [
                {"stationName": "대전역", "x": "127.4343", "y": "36.3324"},
                {"stationName": "중앙시장", "x": "127.4297", "y": "36.3347"},
                {"stationName": "엑스포과학공원", "x": "127.3868", "y": "36.3765"},
            ]
        },
    }


TRANSIT_OK: dict[str, Any] = {
    "result": {
        "path": [
            {
                "pathType": 2,
                "info": {
                    "totalTime": 34,
                    "totalDistance": 9120,
                    "payment": 1500,
                    "busTransitCount": 1,
                    "subwayTransitCount": 0,
                },
                "subPath": [
                    {"trafficType": 3, "sectionTime": 5, "distance": 320},
                    _bus_leg("606", 24),
                    {"trafficType": 3, "sectionTime": 5, "distance": 300},
                ],
            },
            {
                "pathType": 2,
                "info": {
                    "totalTime": 41,
                    "totalDistance": 9870,
                    "payment": 1500,
                    "busTransitCount": 1,
                    "subwayTransitCount": 0,
                },
                "subPath": [
                    {"trafficType": 3, "sectionTime": 8, "distance": 540},
                    _bus_leg("급행2", 28, bus_type=4),
                    {"trafficType": 3, "sectionTime": 5, "distance": 310},
                ],
            },
        ]
    }
}

TRANSIT_EMPTY: dict[str, Any] = {"result": {"path": []}}

Handler = Callable[[httpx.Request], Any]


class FakeVendor:
    """Programmable vendor behind the gateway, routed by proxy path.

    Geocoding answers come from ``address`` / ``keyword`` (query -> documents);
    directions and transit return ``directions`` / ``transit``. ``overrides``
    maps a path fragment to a handler that takes precedence (errors, delays).
    """

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.address: dict[str, list[dict[str, str]]] = {}
        self.keyword: dict[str, list[dict[str, str]]] = {}
        self.directions: dict[str, Any] = DIRECTIONS_OK
        self.transit: dict[str, Any] = TRANSIT_OK
        self.overrides: dict[str, Handler] = {}

    def add_address(self, query: str, name: str, lat: float, lng: float) -> None:
        self.address.setdefault(query, []).append(_doc(name, lat, lng))

    def add_keyword(self, query: str, name: str, lat: float, lng: float) -> None:
        self.keyword.setdefault(query, []).append(_doc(name, lat, lng))

    def handler(self, request: httpx.Request) -> Any:
        self.calls.append(request)
        path = request.url.path
        for fragment, override in self.overrides.items():
            if fragment in path:
                return override(request)

        if path.endswith("address.json"):
            docs = self.address.get(request.url.params["query"], [])
            return httpx.Response(200, json={"documents": docs})
        if path.endswith("keyword.json"):
            docs = self.keyword.get(request.url.params["query"], [])
            return httpx.Response(200, json={"documents": docs})
        if "directions" in path:
            return httpx.Response(200, json=self.directions)
        if "odsay" in path:
            return httpx.Response(200, json=self.transit)
        return httpx.Response(404, json={"error": "unknown path"})

    def count(self, fragment: str) -> int:
        """Number of calls whose path contains ``fragment``."""
        return sum(1 for r in self.calls if fragment in r.url.path)

    def queries(self, fragment: str) -> list[str]:
        """``query`` params of geocoding calls whose path contains ``fragment``."""
        return [r.url.params["query"] for r in self.calls if fragment in r.url.path]


class RecordingMetrics(VendorMetrics):
    """Metrics sink that keeps calls for assertions."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, bool]] = []
        self.cache_hits: Counter[str] = Counter()

    def record_call(self, endpoint: str, success: bool, latency_ms: float) -> None:
        self.calls.append((endpoint, success))

    def inc_cache_hit(self, cache: str) -> None:
        self.cache_hits[cache] += 1


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults and no external services."""
    return Settings(database_url="sqlite+aiosqlite:///:memory:", redis_url=None)


@pytest.fixture
def vendor() -> FakeVendor:
    return FakeVendor()


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest_asyncio.fixture
async def gateway(
    vendor: FakeVendor, metrics: RecordingMetrics, settings: Settings
) -> AsyncGenerator[VendorGateway, None]:
    """Gateway whose HTTP client is served by ``vendor``."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(vendor.handler))
    yield VendorGateway(
        settings.gateway_base_url,
        timeout_ms=settings.vendor_timeout_ms,
        client=client,
        metrics=metrics,
    )
    await client.aclose()


@pytest.fixture
def route_cache() -> InMemoryRouteCache:
    return InMemoryRouteCache()


@pytest.fixture
def coordinate_cache() -> InMemoryCoordinateCache:
    return InMemoryCoordinateCache()


@pytest.fixture
def coordinates(
    gateway: VendorGateway, coordinate_cache: InMemoryCoordinateCache, settings: Settings
) -> CoordinateResolver:
    return CoordinateResolver(gateway, coordinate_cache, settings)


@pytest.fixture
def routes(
    gateway: VendorGateway,
    route_cache: InMemoryRouteCache,
    coordinates: CoordinateResolver,
    settings: Settings,
) -> RouteResolver:
    return RouteResolver(gateway, route_cache, coordinates, settings)


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the schema created.

    StaticPool keeps a single connection so every session sees the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_session(postgres_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create async session for PostgreSQL integration tests."""
    async with AsyncSession(postgres_engine) as session:
        yield session
        await session.rollback()
