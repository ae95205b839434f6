"""Plan endpoints - CRUD, days, places, transport edges, publishing and change stream.

Every mutation follows the same path: load, check permission, apply the edit
through ItineraryEditor, resolve the edges it made stale, save, then publish a
PlanChange so other sessions reload.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, time
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from backend.app.api.auth import get_current_context
from backend.app.api.deps import (
    SynchronizerFactory,
    get_channel,
    get_collaborator_repository,
    get_editor,
    get_invite_service,
    get_plan_repository,
    get_recomputer,
    get_synchronizer_factory,
)
from backend.app.api.errors import http_errors
from backend.app.collaboration.channel import ChangeChannel
from backend.app.collaboration.invites import InviteService
from backend.app.db.context import RequestContext
from backend.app.db.repositories import CollaboratorRepository, PlanRepository
from backend.app.itinerary.editor import EdgeKey, ItineraryEditor
from backend.app.itinerary.recompute import EdgeRecomputer
from backend.app.models.collaboration import ChangeType, PlanChange
from backend.app.models.common import Coordinate, Permission, TransportMode
from backend.app.models.itinerary import Lodging, Place, Plan, PlanSummary

logger = logging.getLogger(__name__)

router = APIRouter(tags=["plans"])

HEARTBEAT_SEC = 15.0


class CreatePlanRequest(BaseModel):
    """Request body for POST /plans."""

    title: str = Field(..., min_length=1)
    description: str | None = None
    start_date: date
    end_date: date
    lodging: Lodging | None = None


class UpdatePlanRequest(BaseModel):
    """Request body for PATCH /plans/{plan_id}."""

    title: str | None = Field(None, min_length=1)
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class AddDayRequest(BaseModel):
    date: date


class UpdateDayRequest(BaseModel):
    """Request body for PATCH /plans/{plan_id}/days/{day_id}."""

    date: date


class PlaceFields(BaseModel):
    """Optional descriptive fields shared by add and update."""

    place_type: str | None = None
    description: str | None = None
    image_url: str | None = None
    visit_time: time | None = None
    stay_minutes: int | None = Field(None, ge=0)
    memo: str | None = None


class AddPlaceRequest(PlaceFields):
    """Request body for POST /plans/{plan_id}/days/{day_id}/places."""

    name: str = Field(..., min_length=1)
    address: str = ""
    coordinate: Coordinate | None = None
    index: int | None = Field(None, ge=0, description="Insert position (append when omitted)")


class UpdatePlaceRequest(PlaceFields):
    name: str | None = Field(None, min_length=1)
    address: str | None = None


class MovePlaceRequest(BaseModel):
    to_index: int = Field(..., ge=0)
    to_day_id: uuid.UUID | None = None


class ReorderDayRequest(BaseModel):
    place_ids: list[uuid.UUID]


class SetModeRequest(BaseModel):
    mode: TransportMode


class SelectOptionRequest(BaseModel):
    index: int = Field(..., ge=0)


class FingerprintResponse(BaseModel):
    plan_id: uuid.UUID
    place_count: int


class PlanEditor:
    """Per-request bundle of everything a mutation needs."""

    def __init__(
        self,
        plans: Annotated[PlanRepository, Depends(get_plan_repository)],
        invites: Annotated[InviteService, Depends(get_invite_service)],
        editor: Annotated[ItineraryEditor, Depends(get_editor)],
        recomputer: Annotated[EdgeRecomputer, Depends(get_recomputer)],
        channel: Annotated[ChangeChannel, Depends(get_channel)],
        ctx: Annotated[RequestContext, Depends(get_current_context)],
    ) -> None:
        self.plans = plans
        self.invites = invites
        self.editor = editor
        self.recomputer = recomputer
        self.channel = channel
        self.ctx = ctx

    async def load(self, plan_id: uuid.UUID, needed: Permission) -> Plan:
        plan = await self.plans.get_plan(plan_id)
        if plan is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
        with http_errors():
            await self.invites.require(plan, self.ctx.user_id, needed)
        return plan

    async def commit(
        self,
        plan: Plan,
        dirty: set[EdgeKey],
        change_type: ChangeType,
        event: str,
        data: dict | None = None,
    ) -> Plan:
        if dirty:
            await self.recomputer.recompute(plan, dirty)
        await self.plans.save_plan(plan)
        await self.channel.publish(
            PlanChange(
                plan_id=plan.id,
                type=change_type,
                event=event,
                actor_id=self.ctx.user_id,
                data=data or {},
            )
        )
        return plan


Editing = Annotated[PlanEditor, Depends()]


# Plans


@router.post("/plans", response_model=Plan, status_code=status.HTTP_201_CREATED)
async def create_plan(request: CreatePlanRequest, edit: Editing) -> Plan:
    """Create an empty plan owned by the caller."""
    if request.end_date < request.start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="end_date is before start_date"
        )
    plan = Plan(
        owner_id=edit.ctx.user_id,
        title=request.title,
        description=request.description,
        start_date=request.start_date,
        end_date=request.end_date,
        lodging=request.lodging,
    )
    await edit.plans.save_plan(plan)
    logger.info("Plan created", extra={"structured": {"plan_id": str(plan.id)}})
    return plan


@router.get("/plans", response_model=list[PlanSummary])
async def list_plans(
    plans: Annotated[PlanRepository, Depends(get_plan_repository)],
    collaborators: Annotated[CollaboratorRepository, Depends(get_collaborator_repository)],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
) -> list[PlanSummary]:
    """List plans the caller owns or collaborates on."""
    shared = await collaborators.list_plan_ids_for_user(ctx.user_id)
    return await plans.list_plans(ctx.user_id, extra_plan_ids=shared)


@router.get("/plans/{plan_id}", response_model=Plan)
async def get_plan(plan_id: uuid.UUID, edit: Editing) -> Plan:
    """Load a plan; failed edges are retried before returning."""
    plan = await edit.load(plan_id, Permission.view)
    report = await edit.recomputer.refresh_failed(plan, edit.editor)
    if report.applied:
        await edit.plans.save_plan(plan)
    return plan


@router.patch("/plans/{plan_id}", response_model=Plan)
async def update_plan(plan_id: uuid.UUID, request: UpdatePlanRequest, edit: Editing) -> Plan:
    plan = await edit.load(plan_id, Permission.edit)
    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(plan, field, value)
    if plan.end_date < plan.start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="end_date is before start_date"
        )
    return await edit.commit(plan, set(), "plan", "plan_updated")


@router.put("/plans/{plan_id}/lodging", response_model=Plan)
async def set_lodging(plan_id: uuid.UUID, edit: Editing, lodging: Lodging | None = None) -> Plan:
    """Set or clear the lodging; every day-2+ lodging edge is re-resolved."""
    plan = await edit.load(plan_id, Permission.edit)
    dirty = edit.editor.set_lodging(plan, lodging)
    return await edit.commit(plan, dirty, "plan", "lodging_updated")


@router.delete("/plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_plan(plan_id: uuid.UUID, edit: Editing) -> Response:
    """Delete a plan (owner only)."""
    plan = await edit.load(plan_id, Permission.view)
    if plan.owner_id != edit.ctx.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner can delete")
    await edit.plans.delete_plan(plan_id)
    await edit.channel.publish(
        PlanChange(plan_id=plan_id, type="plan", event="plan_deleted", actor_id=edit.ctx.user_id)
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/plans/{plan_id}/publish", response_model=Plan)
async def publish_plan(plan_id: uuid.UUID, edit: Editing) -> Plan:
    """Mark a plan public. The public view reads the same data, nothing is forked."""
    plan = await edit.load(plan_id, Permission.admin)
    plan.is_public = True
    return await edit.commit(plan, set(), "plan", "plan_published")


@router.get("/public/plans/{plan_id}", response_model=Plan)
async def view_public_plan(
    plan_id: uuid.UUID, plans: Annotated[PlanRepository, Depends(get_plan_repository)]
) -> Plan:
    """Read a published plan and count the view."""
    plan = await plans.get_plan(plan_id)
    if plan is None or not plan.is_public:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
    # Counter only; the loaded aggregate is never written back
    view_count = await plans.increment_counter(plan_id, "view_count")
    if view_count is not None:
        plan.view_count = view_count
    return plan


@router.post("/public/plans/{plan_id}/like", response_model=dict[str, int])
async def like_plan(
    plan_id: uuid.UUID, plans: Annotated[PlanRepository, Depends(get_plan_repository)]
) -> dict[str, int]:
    plan = await plans.get_plan(plan_id)
    if plan is None or not plan.is_public:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
    like_count = await plans.increment_counter(plan_id, "like_count")
    if like_count is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
    return {"like_count": like_count}


# Days


@router.post("/plans/{plan_id}/days", response_model=Plan, status_code=status.HTTP_201_CREATED)
async def add_day(plan_id: uuid.UUID, request: AddDayRequest, edit: Editing) -> Plan:
    plan = await edit.load(plan_id, Permission.edit)
    day, dirty = edit.editor.add_day(plan, request.date)
    return await edit.commit(plan, dirty, "day", "day_added", {"day_id": str(day.id)})


@router.delete("/plans/{plan_id}/days/{day_id}", response_model=Plan)
async def remove_day(plan_id: uuid.UUID, day_id: uuid.UUID, edit: Editing) -> Plan:
    plan = await edit.load(plan_id, Permission.edit)
    with http_errors():
        dirty = edit.editor.remove_day(plan, day_id)
    return await edit.commit(plan, dirty, "day", "day_removed", {"day_id": str(day_id)})


@router.patch("/plans/{plan_id}/days/{day_id}", response_model=Plan)
async def update_day(
    plan_id: uuid.UUID, day_id: uuid.UUID, request: UpdateDayRequest, edit: Editing
) -> Plan:
    """Change a day's date; days are renumbered and lodging edges re-derived."""
    plan = await edit.load(plan_id, Permission.edit)
    with http_errors():
        dirty = edit.editor.update_day(plan, day_id, request.date)
    return await edit.commit(plan, dirty, "day", "day_updated", {"day_id": str(day_id)})


@router.put("/plans/{plan_id}/days/{day_id}/order", response_model=Plan)
async def reorder_day(
    plan_id: uuid.UUID, day_id: uuid.UUID, request: ReorderDayRequest, edit: Editing
) -> Plan:
    """Replace a day's place order (drag-and-drop result)."""
    plan = await edit.load(plan_id, Permission.edit)
    with http_errors():
        dirty = edit.editor.reorder_day(plan, day_id, request.place_ids)
    return await edit.commit(plan, dirty, "place", "places_reordered", {"day_id": str(day_id)})


# Places


@router.post(
    "/plans/{plan_id}/days/{day_id}/places",
    response_model=Plan,
    status_code=status.HTTP_201_CREATED,
)
async def add_place(
    plan_id: uuid.UUID, day_id: uuid.UUID, request: AddPlaceRequest, edit: Editing
) -> Plan:
    plan = await edit.load(plan_id, Permission.edit)
    place = Place(**request.model_dump(exclude={"index"}))
    with http_errors():
        dirty = edit.editor.add_place(plan, day_id, place, index=request.index)
    return await edit.commit(plan, dirty, "place", "place_added", {"place_id": str(place.id)})


@router.patch("/plans/{plan_id}/places/{place_id}", response_model=Plan)
async def update_place(
    plan_id: uuid.UUID, place_id: uuid.UUID, request: UpdatePlaceRequest, edit: Editing
) -> Plan:
    plan = await edit.load(plan_id, Permission.edit)
    fields = request.model_dump(exclude_unset=True)
    with http_errors():
        dirty = edit.editor.update_place(plan, place_id, **fields)
    return await edit.commit(plan, dirty, "place", "place_updated", {"place_id": str(place_id)})


@router.delete("/plans/{plan_id}/places/{place_id}", response_model=Plan)
async def remove_place(plan_id: uuid.UUID, place_id: uuid.UUID, edit: Editing) -> Plan:
    plan = await edit.load(plan_id, Permission.edit)
    with http_errors():
        dirty = edit.editor.remove_place(plan, place_id)
    return await edit.commit(plan, dirty, "place", "place_removed", {"place_id": str(place_id)})


@router.post("/plans/{plan_id}/places/{place_id}/move", response_model=Plan)
async def move_place(
    plan_id: uuid.UUID, place_id: uuid.UUID, request: MovePlaceRequest, edit: Editing
) -> Plan:
    plan = await edit.load(plan_id, Permission.edit)
    with http_errors():
        dirty = edit.editor.move_place(plan, place_id, request.to_index, request.to_day_id)
    return await edit.commit(plan, dirty, "place", "place_moved", {"place_id": str(place_id)})


# Transport edges


async def _set_mode(edit: PlanEditor, plan_id: uuid.UUID, key: EdgeKey, mode: TransportMode) -> Plan:
    plan = await edit.load(plan_id, Permission.edit)
    with http_errors():
        dirty = edit.editor.set_transport_mode(plan, key, mode)
    return await edit.commit(plan, dirty, "edge", "transport_mode_set", {"edge": str(key)})


async def _select_option(edit: PlanEditor, plan_id: uuid.UUID, key: EdgeKey, index: int) -> Plan:
    plan = await edit.load(plan_id, Permission.edit)
    with http_errors():
        edit.editor.select_transit_option(plan, key, index)
    return await edit.commit(plan, set(), "edge", "transit_option_selected", {"edge": str(key)})


@router.put("/plans/{plan_id}/places/{place_id}/transport", response_model=Plan)
async def set_place_transport(
    plan_id: uuid.UUID, place_id: uuid.UUID, request: SetModeRequest, edit: Editing
) -> Plan:
    """Choose the mode for the edge leaving a place."""
    return await _set_mode(edit, plan_id, EdgeKey.place(place_id), request.mode)


@router.put("/plans/{plan_id}/days/{day_id}/lodging-transport", response_model=Plan)
async def set_lodging_transport(
    plan_id: uuid.UUID, day_id: uuid.UUID, request: SetModeRequest, edit: Editing
) -> Plan:
    """Choose the mode for the lodging edge of a day."""
    return await _set_mode(edit, plan_id, EdgeKey.lodging(day_id), request.mode)


@router.put("/plans/{plan_id}/places/{place_id}/transport/option", response_model=Plan)
async def select_place_option(
    plan_id: uuid.UUID, place_id: uuid.UUID, request: SelectOptionRequest, edit: Editing
) -> Plan:
    """Switch to another retained transit itinerary (no vendor call)."""
    return await _select_option(edit, plan_id, EdgeKey.place(place_id), request.index)


@router.put("/plans/{plan_id}/days/{day_id}/lodging-transport/option", response_model=Plan)
async def select_lodging_option(
    plan_id: uuid.UUID, day_id: uuid.UUID, request: SelectOptionRequest, edit: Editing
) -> Plan:
    return await _select_option(edit, plan_id, EdgeKey.lodging(day_id), request.index)


# Synchronization


@router.get("/plans/{plan_id}/fingerprint", response_model=FingerprintResponse)
async def plan_fingerprint(
    plan_id: uuid.UUID,
    plans: Annotated[PlanRepository, Depends(get_plan_repository)],
    invites: Annotated[InviteService, Depends(get_invite_service)],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
) -> FingerprintResponse:
    """Structural fingerprint (total place count) for polling clients."""
    plan = await plans.get_plan(plan_id)
    if plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
    with http_errors():
        await invites.require(plan, ctx.user_id, Permission.view)
    return FingerprintResponse(plan_id=plan_id, place_count=plan.place_count)


@router.get("/plans/{plan_id}/events/stream")
async def stream_plan_events(
    plan_id: uuid.UUID,
    edit: Editing,
    synchronizers: Annotated[SynchronizerFactory, Depends(get_synchronizer_factory)],
) -> StreamingResponse:
    """Stream fresh plan snapshots via SSE.

    A server-side synchronizer reloads the plan on every collaboration push and
    whenever its poller sees the fingerprint change. Each reload is sent as a
    ``plan`` event; notification payloads never reach the client.
    """
    await edit.load(plan_id, Permission.view)

    async def event_generator() -> AsyncGenerator[str, None]:
        """Generate SSE events."""
        queue: asyncio.Queue[Plan | None] = asyncio.Queue()

        async def on_reload(plan: Plan | None) -> None:
            queue.put_nowait(plan)

        sync = synchronizers(plan_id, on_reload)
        await sync.start()
        try:
            while True:
                try:
                    plan = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SEC)
                except asyncio.TimeoutError:
                    yield "event: heartbeat\n"
                    yield f'data: {{"ts": "{datetime.utcnow().isoformat()}"}}\n\n'
                    continue

                if plan is None:
                    yield "event: done\n"
                    yield 'data: {"status": "deleted"}\n\n'
                    break
                yield "event: plan\n"
                yield f"data: {plan.model_dump_json()}\n\n"
        finally:
            await sync.stop()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
