"""FastAPI dependencies: repositories, resolvers and the collaboration channel.

Process-wide singletons (gateway, resolvers, channel) are cached with
``lru_cache``; per-request repositories wrap the request's DB session. Tests
replace any of these through ``app.dependency_overrides``.
"""

import uuid
from collections.abc import Callable
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.adapters.gateway import VendorGateway
from backend.app.collaboration.channel import (
    ChangeChannel,
    InMemoryChangeChannel,
    RedisChangeChannel,
)
from backend.app.collaboration.invites import InviteService
from backend.app.collaboration.synchronizer import (
    FullReloadStrategy,
    PlanSynchronizer,
    ReloadListener,
)
from backend.app.config import get_settings
from backend.app.db.engine import get_session, get_session_factory
from backend.app.db.repositories import CollaboratorRepository, PlanRepository
from backend.app.db.sql_repositories import (
    SqlCollaboratorRepository,
    SqlCoordinateCache,
    SqlPlanRepository,
    SqlRouteCache,
)
from backend.app.itinerary.editor import ItineraryEditor
from backend.app.itinerary.recompute import EdgeRecomputer
from backend.app.models.itinerary import Plan
from backend.app.routing.coordinates import CoordinateResolver
from backend.app.routing.routes import RouteResolver
from backend.app.utils.logging import StructuredVendorLogger
from backend.app.utils.metrics import PrometheusVendorMetrics


async def get_plan_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PlanRepository:
    return SqlPlanRepository(session)


async def get_collaborator_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CollaboratorRepository:
    return SqlCollaboratorRepository(session)


@lru_cache
def get_gateway() -> VendorGateway:
    settings = get_settings()
    return VendorGateway(
        settings.gateway_base_url,
        timeout_ms=settings.vendor_timeout_ms,
        metrics=PrometheusVendorMetrics(),
        logger=StructuredVendorLogger(),
    )


@lru_cache
def get_route_resolver() -> RouteResolver:
    """Resolver backed by the SQL caches shared across sessions."""
    settings = get_settings()
    gateway = get_gateway()
    sessions = get_session_factory()
    coordinates = CoordinateResolver(gateway, SqlCoordinateCache(sessions), settings)
    return RouteResolver(gateway, SqlRouteCache(sessions), coordinates, settings)


@lru_cache
def get_channel() -> ChangeChannel:
    """Redis pub/sub when configured, otherwise an in-process channel."""
    settings = get_settings()
    if settings.redis_url:
        return RedisChangeChannel.from_url(settings.redis_url)
    return InMemoryChangeChannel()


def get_editor() -> ItineraryEditor:
    return ItineraryEditor(default_mode=get_settings().default_transport_mode)


def get_recomputer(
    routes: Annotated[RouteResolver, Depends(get_route_resolver)],
) -> EdgeRecomputer:
    return EdgeRecomputer(routes, get_settings())


def get_invite_service(
    repo: Annotated[CollaboratorRepository, Depends(get_collaborator_repository)],
) -> InviteService:
    return InviteService(repo, get_settings())


SynchronizerFactory = Callable[[uuid.UUID, ReloadListener | None], PlanSynchronizer]


def get_synchronizer_factory(
    channel: Annotated[ChangeChannel, Depends(get_channel)],
    sessions: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> SynchronizerFactory:
    """Build synchronizers for long-lived sessions such as SSE streams.

    Loaders open a short DB session per call; the request session is closed
    long before the stream ends.
    """
    settings = get_settings()

    async def load(plan_id: uuid.UUID) -> Plan | None:
        async with sessions() as session:
            return await SqlPlanRepository(session).get_plan(plan_id)

    async def fingerprint(plan_id: uuid.UUID) -> int | None:
        async with sessions() as session:
            return await SqlPlanRepository(session).place_count(plan_id)

    def create(plan_id: uuid.UUID, on_reload: ReloadListener | None = None) -> PlanSynchronizer:
        return PlanSynchronizer(
            plan_id,
            channel,
            FullReloadStrategy(load),
            fingerprint,
            poll_interval_sec=settings.sync_poll_interval_sec,
            on_reload=on_reload,
        )

    return create
