"""Tests for invites, redemption and permission checks."""

import uuid
from datetime import date, datetime, timedelta

import pytest

from backend.app.collaboration.invites import (
    InviteExhaustedError,
    InviteExpiredError,
    InviteNotFoundError,
    InviteService,
    PermissionDeniedError,
    PlanFullError,
)
from backend.app.config import Settings
from backend.app.db.inmemory import InMemoryCollaboratorRepository
from backend.app.models.collaboration import Collaborator
from backend.app.models.common import Permission
from backend.app.models.itinerary import Plan

OWNER = uuid.uuid4()
NOW = datetime(2025, 7, 1, 12, 0, 0)


@pytest.fixture
def repo() -> InMemoryCollaboratorRepository:
    return InMemoryCollaboratorRepository()


@pytest.fixture
def service(repo) -> InviteService:
    return InviteService(repo, Settings(max_collaborators=3, invite_ttl_hours=24, invite_max_uses=2))


@pytest.fixture
def plan() -> Plan:
    return Plan(owner_id=OWNER, title="가족 여행", start_date=date(2025, 8, 1), end_date=date(2025, 8, 3))


@pytest.mark.asyncio
async def test_owner_is_admin_and_strangers_have_nothing(service, plan) -> None:
    assert await service.permission_for(plan, OWNER) == Permission.admin
    assert await service.permission_for(plan, uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_invite_defaults(service, plan) -> None:
    invite = await service.create_invite(plan, OWNER, now=NOW)

    assert invite.plan_id == plan.id
    assert invite.permission == Permission.edit
    assert invite.expires_at == NOW + timedelta(hours=24)
    assert invite.max_uses == 2
    assert len(invite.token) >= 16
    assert await service.lookup(invite.token) == invite


@pytest.mark.asyncio
async def test_redeem_adds_collaborator_and_counts_use(service, repo, plan) -> None:
    invite = await service.create_invite(plan, OWNER, now=NOW)
    guest = uuid.uuid4()

    collaborator = await service.redeem(invite, plan, guest, now=NOW + timedelta(hours=1))

    assert collaborator.permission == Permission.edit
    assert await service.permission_for(plan, guest) == Permission.edit
    assert (await service.lookup(invite.token)).use_count == 1


@pytest.mark.asyncio
async def test_redeem_twice_is_idempotent(service, plan) -> None:
    invite = await service.create_invite(plan, OWNER, now=NOW)
    guest = uuid.uuid4()

    first = await service.redeem(invite, plan, guest, now=NOW)
    second = await service.redeem(await service.lookup(invite.token), plan, guest, now=NOW)

    assert first.user_id == second.user_id
    assert (await service.lookup(invite.token)).use_count == 1


@pytest.mark.asyncio
async def test_owner_redeeming_own_invite_consumes_nothing(service, repo, plan) -> None:
    invite = await service.create_invite(plan, OWNER, now=NOW)

    collaborator = await service.redeem(invite, plan, OWNER, now=NOW)

    assert collaborator.permission == Permission.admin
    assert await repo.list_collaborators(plan.id) == []
    assert (await service.lookup(invite.token)).use_count == 0


@pytest.mark.asyncio
async def test_expired_invite_is_rejected(service, plan) -> None:
    invite = await service.create_invite(plan, OWNER, now=NOW)

    with pytest.raises(InviteExpiredError):
        await service.redeem(invite, plan, uuid.uuid4(), now=NOW + timedelta(hours=24))


@pytest.mark.asyncio
async def test_exhausted_invite_is_rejected(service, plan) -> None:
    invite = await service.create_invite(plan, OWNER, max_uses=1, now=NOW)
    await service.redeem(invite, plan, uuid.uuid4(), now=NOW)

    with pytest.raises(InviteExhaustedError):
        await service.redeem(await service.lookup(invite.token), plan, uuid.uuid4(), now=NOW)


@pytest.mark.asyncio
async def test_participant_limit_counts_owner(service, repo, plan) -> None:
    # max_collaborators=3: owner + 2 collaborators fills the plan
    for _ in range(2):
        await repo.add_collaborator(
            Collaborator(plan_id=plan.id, user_id=uuid.uuid4(), permission=Permission.view)
        )
    invite = await service.create_invite(plan, OWNER, now=NOW)

    with pytest.raises(PlanFullError):
        await service.redeem(invite, plan, uuid.uuid4(), now=NOW)


@pytest.mark.asyncio
async def test_unknown_token(service) -> None:
    with pytest.raises(InviteNotFoundError):
        await service.lookup("nope")


@pytest.mark.asyncio
async def test_invite_for_other_plan_is_not_found(service, plan) -> None:
    invite = await service.create_invite(plan, OWNER, now=NOW)
    other = Plan(owner_id=OWNER, title="다른 여행", start_date=date(2025, 9, 1), end_date=date(2025, 9, 1))

    with pytest.raises(InviteNotFoundError):
        await service.redeem(invite, other, uuid.uuid4(), now=NOW)


@pytest.mark.asyncio
async def test_viewer_cannot_invite(service, repo, plan) -> None:
    viewer = uuid.uuid4()
    await repo.add_collaborator(Collaborator(plan_id=plan.id, user_id=viewer, permission=Permission.view))

    with pytest.raises(PermissionDeniedError) as exc_info:
        await service.create_invite(plan, viewer, now=NOW)

    assert exc_info.value.needed == Permission.edit


@pytest.mark.asyncio
async def test_editor_cannot_grant_admin(service, repo, plan) -> None:
    editor = uuid.uuid4()
    await repo.add_collaborator(Collaborator(plan_id=plan.id, user_id=editor, permission=Permission.edit))

    assert (await service.create_invite(plan, editor, now=NOW)).permission == Permission.edit
    with pytest.raises(PermissionDeniedError):
        await service.create_invite(plan, editor, permission=Permission.admin, now=NOW)


@pytest.mark.asyncio
async def test_require(service, repo, plan) -> None:
    viewer = uuid.uuid4()
    await repo.add_collaborator(Collaborator(plan_id=plan.id, user_id=viewer, permission=Permission.view))

    assert await service.require(plan, viewer, Permission.view) == Permission.view
    with pytest.raises(PermissionDeniedError):
        await service.require(plan, viewer, Permission.edit)
    with pytest.raises(PermissionDeniedError):
        await service.require(plan, uuid.uuid4(), Permission.view)
