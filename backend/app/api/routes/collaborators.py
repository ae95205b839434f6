"""Collaboration endpoints - invites, redemption and collaborator listing."""

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from backend.app.api.auth import get_current_context
from backend.app.api.deps import (
    get_channel,
    get_collaborator_repository,
    get_invite_service,
    get_plan_repository,
)
from backend.app.api.errors import http_errors
from backend.app.collaboration.channel import ChangeChannel
from backend.app.collaboration.invites import InviteService
from backend.app.db.context import RequestContext
from backend.app.db.repositories import CollaboratorRepository, PlanRepository
from backend.app.models.collaboration import Collaborator, PlanChange
from backend.app.models.common import Permission
from backend.app.models.itinerary import Plan

router = APIRouter(tags=["collaborators"])


class CreateInviteRequest(BaseModel):
    permission: Permission = Permission.edit
    max_uses: int | None = Field(None, ge=1)


class InviteResponse(BaseModel):
    token: str
    plan_id: uuid.UUID
    permission: Permission
    expires_at: datetime
    max_uses: int


async def _load(plans: PlanRepository, plan_id: uuid.UUID) -> Plan:
    plan = await plans.get_plan(plan_id)
    if plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
    return plan


@router.post(
    "/plans/{plan_id}/invites",
    response_model=InviteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_invite(
    plan_id: uuid.UUID,
    request: CreateInviteRequest,
    plans: Annotated[PlanRepository, Depends(get_plan_repository)],
    invites: Annotated[InviteService, Depends(get_invite_service)],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
) -> InviteResponse:
    """Create an invite token for a plan (edit permission or better)."""
    plan = await _load(plans, plan_id)
    with http_errors():
        invite = await invites.create_invite(
            plan, ctx.user_id, permission=request.permission, max_uses=request.max_uses
        )
    return InviteResponse(
        token=invite.token,
        plan_id=invite.plan_id,
        permission=invite.permission,
        expires_at=invite.expires_at,
        max_uses=invite.max_uses,
    )


@router.post("/invites/{token}/redeem", response_model=Collaborator)
async def redeem_invite(
    token: str,
    plans: Annotated[PlanRepository, Depends(get_plan_repository)],
    invites: Annotated[InviteService, Depends(get_invite_service)],
    channel: Annotated[ChangeChannel, Depends(get_channel)],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
) -> Collaborator:
    """Join a plan through an invite token."""
    with http_errors():
        invite = await invites.lookup(token)
        plan = await _load(plans, invite.plan_id)
        collaborator = await invites.redeem(invite, plan, ctx.user_id)

    await channel.publish(
        PlanChange(
            plan_id=plan.id,
            type="collaborator",
            event="collaborator_joined",
            actor_id=ctx.user_id,
            data={"user_id": str(ctx.user_id)},
        )
    )
    return collaborator


@router.get("/plans/{plan_id}/collaborators", response_model=list[Collaborator])
async def list_collaborators(
    plan_id: uuid.UUID,
    plans: Annotated[PlanRepository, Depends(get_plan_repository)],
    collaborators: Annotated[CollaboratorRepository, Depends(get_collaborator_repository)],
    invites: Annotated[InviteService, Depends(get_invite_service)],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
) -> list[Collaborator]:
    """List collaborators (the owner is not listed)."""
    plan = await _load(plans, plan_id)
    with http_errors():
        await invites.require(plan, ctx.user_id, Permission.view)
    return await collaborators.list_collaborators(plan_id)
