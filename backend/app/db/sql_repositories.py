"""SQL implementations of repository interfaces."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import TypeAdapter
from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from backend.app.db.inmemory import summarize
from backend.app.db.repositories import PlanCounter
from backend.app.db.models import (
    CoordinateCache,
    RouteCache,
    TripCollaborator,
    TripDay,
    TripInvite,
    TripPlace,
    TripPlan,
)
from backend.app.models.collaboration import Collaborator, Invite
from backend.app.models.common import Coordinate, Permission, TransportMode
from backend.app.models.itinerary import Day, Lodging, Place, Plan, PlanSummary, TransportEdge
from backend.app.models.route import CacheableRoute, RouteCacheEntry

_route_adapter: TypeAdapter[CacheableRoute] = TypeAdapter(CacheableRoute)


_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


async def _upsert(
    session: AsyncSession, model: type, values: dict[str, Any], keys: tuple[str, ...]
) -> None:
    """INSERT ... ON CONFLICT DO UPDATE in one statement.

    Concurrent writers of the same key never see a unique violation; the
    later statement overwrites the non-key columns.
    """
    dialect = session.get_bind().dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Upsert is not supported on {dialect}")
    stmt = insert(model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(keys),
        set_={name: stmt.excluded[name] for name in values if name not in keys},
    )
    await session.execute(stmt)
    await session.commit()


def _edge_json(edge: TransportEdge | None) -> dict | None:
    return edge.model_dump(mode="json") if edge is not None else None


def _edge_model(data: dict | None) -> TransportEdge | None:
    return TransportEdge.model_validate(data) if data is not None else None


def _plan_from_row(row: TripPlan) -> Plan:
    days = []
    for day_row in row.days:
        places = [
            Place(
                id=p.place_id,
                day_id=p.day_id,
                name=p.name,
                address=p.address,
                coordinate=(
                    Coordinate(lat=p.lat, lng=p.lng)
                    if p.lat is not None and p.lng is not None
                    else None
                ),
                order_index=p.order_index,
                edge=_edge_model(p.transport_to_next),
                place_type=p.place_type,
                description=p.description,
                image_url=p.image_url,
                visit_time=p.visit_time,
                stay_minutes=p.stay_minutes,
                memo=p.memo,
            )
            for p in sorted(day_row.places, key=lambda p: p.order_index)
        ]
        days.append(
            Day(
                id=day_row.day_id,
                plan_id=day_row.plan_id,
                day_number=day_row.day_number,
                date=day_row.date,
                places=places,
                lodging_edge=_edge_model(day_row.lodging_edge),
            )
        )

    return Plan(
        id=row.plan_id,
        owner_id=row.owner_id,
        title=row.title,
        description=row.description,
        start_date=row.start_date,
        end_date=row.end_date,
        lodging=Lodging.model_validate(row.lodging) if row.lodging else None,
        is_public=row.is_public,
        like_count=row.like_count,
        view_count=row.view_count,
        created_at=row.created_at,
        days=sorted(days, key=lambda d: d.day_number),
    )


def _fill_place_row(row: TripPlace, place: Place) -> None:
    row.name = place.name
    row.address = place.address
    row.lat = place.coordinate.lat if place.coordinate else None
    row.lng = place.coordinate.lng if place.coordinate else None
    row.order_index = place.order_index
    row.transport_to_next = _edge_json(place.edge)
    row.place_type = place.place_type
    row.description = place.description
    row.image_url = place.image_url
    row.visit_time = place.visit_time.isoformat() if place.visit_time else None
    row.stay_minutes = place.stay_minutes
    row.memo = place.memo


class SqlPlanRepository:
    """SQL implementation of PlanRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _load(self, plan_id: uuid.UUID) -> TripPlan | None:
        result = await self._session.execute(
            select(TripPlan)
            .where(TripPlan.plan_id == plan_id)
            .options(selectinload(TripPlan.days).selectinload(TripDay.places))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_plan(self, plan_id: uuid.UUID) -> Plan | None:
        """Load a full plan."""
        row = await self._load(plan_id)
        return _plan_from_row(row) if row else None

    async def save_plan(self, plan: Plan) -> None:
        """Insert or update a plan, diffing days and places by id.

        Rows are reused by primary key so a place can move between days without
        a delete/insert of the same identity.
        """
        row = await self._load(plan.id)
        if row is None:
            row = TripPlan(plan_id=plan.id, created_at=plan.created_at, days=[])
            self._session.add(row)

        row.owner_id = plan.owner_id
        row.title = plan.title
        row.description = plan.description
        row.start_date = plan.start_date
        row.end_date = plan.end_date
        row.lodging = plan.lodging.model_dump(mode="json") if plan.lodging else None
        row.is_public = plan.is_public
        row.like_count = plan.like_count
        row.view_count = plan.view_count
        row.updated_at = datetime.utcnow()

        day_rows = {d.day_id: d for d in row.days}
        place_rows = {p.place_id: p for d in row.days for p in d.places}

        new_days = []
        for day in plan.days:
            day_row = day_rows.pop(day.id, None) or TripDay(day_id=day.id, places=[])
            day_row.day_number = day.day_number
            day_row.date = day.date
            day_row.lodging_edge = _edge_json(day.lodging_edge)

            new_places = []
            for place in day.places:
                place_row = place_rows.pop(place.id, None) or TripPlace(place_id=place.id)
                _fill_place_row(place_row, place)
                new_places.append(place_row)
            day_row.places = new_places
            new_days.append(day_row)

        # Places of removed days that were not moved elsewhere
        for orphan in place_rows.values():
            await self._session.delete(orphan)
        row.days = new_days

        await self._session.commit()

    async def delete_plan(self, plan_id: uuid.UUID) -> bool:
        """Delete a plan with its days, places, collaborators and invites."""
        result = await self._session.execute(
            select(TripPlan)
            .where(TripPlan.plan_id == plan_id)
            .options(
                selectinload(TripPlan.days).selectinload(TripDay.places),
                selectinload(TripPlan.collaborators),
                selectinload(TripPlan.invites),
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return False
        await self._session.delete(row)
        await self._session.commit()
        return True

    async def list_plans(
        self, owner_id: uuid.UUID, extra_plan_ids: list[uuid.UUID] | None = None
    ) -> list[PlanSummary]:
        """List owned and collaborating plans, newest first."""
        condition = TripPlan.owner_id == owner_id
        if extra_plan_ids:
            condition = or_(condition, TripPlan.plan_id.in_(extra_plan_ids))

        result = await self._session.execute(
            select(TripPlan)
            .where(condition)
            .options(selectinload(TripPlan.days).selectinload(TripDay.places))
            .order_by(TripPlan.created_at.desc())
        )
        return [summarize(_plan_from_row(row)) for row in result.scalars().all()]

    async def place_count(self, plan_id: uuid.UUID) -> int | None:
        """Total place count of a plan."""
        exists = await self._session.scalar(
            select(TripPlan.plan_id).where(TripPlan.plan_id == plan_id)
        )
        if exists is None:
            return None
        count = await self._session.scalar(
            select(func.count(TripPlace.place_id))
            .join(TripDay, TripPlace.day_id == TripDay.day_id)
            .where(TripDay.plan_id == plan_id)
        )
        return int(count or 0)

    async def increment_counter(self, plan_id: uuid.UUID, counter: PlanCounter) -> int | None:
        """UPDATE trip_plan SET <counter> = <counter> + 1, leaving days and places alone."""
        column = getattr(TripPlan, counter)
        result = await self._session.execute(
            update(TripPlan)
            .where(TripPlan.plan_id == plan_id)
            .values({column: column + 1})
            .returning(column)
            .execution_options(synchronize_session=False)
        )
        value = result.scalar_one_or_none()
        await self._session.commit()
        return value


class SqlCollaboratorRepository:
    """SQL implementation of CollaboratorRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @staticmethod
    def _collaborator(row: TripCollaborator) -> Collaborator:
        return Collaborator(
            plan_id=row.plan_id,
            user_id=row.user_id,
            permission=Permission(row.permission),
            joined_at=row.joined_at,
        )

    async def add_collaborator(self, collaborator: Collaborator) -> None:
        """Insert or update a collaborator."""
        row = await self._session.get(
            TripCollaborator, (collaborator.plan_id, collaborator.user_id)
        )
        if row is None:
            row = TripCollaborator(plan_id=collaborator.plan_id, user_id=collaborator.user_id)
            self._session.add(row)
        row.permission = collaborator.permission.value
        row.joined_at = collaborator.joined_at
        await self._session.commit()

    async def get_collaborator(
        self, plan_id: uuid.UUID, user_id: uuid.UUID
    ) -> Collaborator | None:
        """Get a collaborator."""
        row = await self._session.get(TripCollaborator, (plan_id, user_id))
        return self._collaborator(row) if row else None

    async def list_collaborators(self, plan_id: uuid.UUID) -> list[Collaborator]:
        """List collaborators of a plan, oldest first."""
        result = await self._session.execute(
            select(TripCollaborator)
            .where(TripCollaborator.plan_id == plan_id)
            .order_by(TripCollaborator.joined_at)
        )
        return [self._collaborator(row) for row in result.scalars().all()]

    async def list_plan_ids_for_user(self, user_id: uuid.UUID) -> list[uuid.UUID]:
        """Plans a user collaborates on."""
        result = await self._session.execute(
            select(TripCollaborator.plan_id).where(TripCollaborator.user_id == user_id)
        )
        return list(result.scalars().all())

    async def save_invite(self, invite: Invite) -> None:
        """Insert or update an invite."""
        row = await self._session.get(TripInvite, invite.token)
        if row is None:
            row = TripInvite(token=invite.token)
            self._session.add(row)
        row.plan_id = invite.plan_id
        row.created_by = invite.created_by
        row.permission = invite.permission.value
        row.expires_at = invite.expires_at
        row.max_uses = invite.max_uses
        row.use_count = invite.use_count
        await self._session.commit()

    async def get_invite(self, token: str) -> Invite | None:
        """Get an invite."""
        row = await self._session.get(TripInvite, token)
        if row is None:
            return None
        return Invite(
            token=row.token,
            plan_id=row.plan_id,
            created_by=row.created_by,
            permission=Permission(row.permission),
            expires_at=row.expires_at,
            max_uses=row.max_uses,
            use_count=row.use_count,
        )


class SqlRouteCache:
    """SQL implementation of RouteCacheStore.

    Opens a short session per call: route lookups for one plan run
    concurrently and an AsyncSession must not be shared between tasks.
    """

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get(
        self, origin_key: str, destination_key: str, mode: TransportMode
    ) -> RouteCacheEntry | None:
        """Get a cached route."""
        async with self._sessions() as session:
            row = await session.get(RouteCache, (origin_key, destination_key, mode.value))
            if row is None:
                return None
            return RouteCacheEntry(
                origin_key=row.origin_key,
                destination_key=row.destination_key,
                mode=TransportMode(row.mode),
                result=_route_adapter.validate_python(row.result),
                created_at=row.created_at,
            )

    async def put(self, entry: RouteCacheEntry) -> None:
        """Store a route (last write wins, safe under concurrent writers)."""
        async with self._sessions() as session:
            await _upsert(
                session,
                RouteCache,
                {
                    "origin_key": entry.origin_key,
                    "destination_key": entry.destination_key,
                    "mode": entry.mode.value,
                    "result": _route_adapter.dump_python(entry.result, mode="json"),
                    "is_estimate": entry.result.kind == "estimate",
                },
                keys=("origin_key", "destination_key", "mode"),
            )


class SqlCoordinateCache:
    """SQL implementation of CoordinateCacheStore (one session per call)."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get(self, query: str) -> Coordinate | None:
        """Get a cached coordinate."""
        async with self._sessions() as session:
            row = await session.get(CoordinateCache, query)
            return Coordinate(lat=row.lat, lng=row.lng) if row else None

    async def put(self, query: str, coordinate: Coordinate) -> None:
        """Store a coordinate (last write wins, safe under concurrent writers)."""
        async with self._sessions() as session:
            await _upsert(
                session,
                CoordinateCache,
                {"query": query, "lat": coordinate.lat, "lng": coordinate.lng},
                keys=("query",),
            )
