"""Invites and permissions for shared plans."""

import logging
import secrets
import uuid
from datetime import datetime, timedelta

from backend.app.config import Settings, get_settings
from backend.app.db.repositories import CollaboratorRepository
from backend.app.models.collaboration import Collaborator, Invite
from backend.app.models.common import Permission
from backend.app.models.itinerary import Plan

logger = logging.getLogger(__name__)


class InviteNotFoundError(LookupError):
    """Unknown invite token."""

    pass


class InviteExpiredError(Exception):
    """Invite is past its expiry."""

    pass


class InviteExhaustedError(Exception):
    """Invite reached its max-use count."""

    pass


class PlanFullError(Exception):
    """Plan reached its participant limit."""

    pass


class PermissionDeniedError(Exception):
    """User lacks the permission an operation needs."""

    def __init__(self, user_id: uuid.UUID, plan_id: uuid.UUID, needed: Permission) -> None:
        self.user_id = user_id
        self.plan_id = plan_id
        self.needed = needed
        super().__init__(f"user {user_id} needs {needed.value} on plan {plan_id}")


class InviteService:
    """Creates and redeems invites; answers permission checks."""

    def __init__(self, repo: CollaboratorRepository, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._repo = repo
        self._max_participants = settings.max_collaborators
        self._ttl = timedelta(hours=settings.invite_ttl_hours)
        self._max_uses = settings.invite_max_uses

    async def permission_for(self, plan: Plan, user_id: uuid.UUID) -> Permission | None:
        """Effective permission of a user. The owner is implicitly admin."""
        if plan.owner_id == user_id:
            return Permission.admin
        collaborator = await self._repo.get_collaborator(plan.id, user_id)
        return collaborator.permission if collaborator else None

    async def require(self, plan: Plan, user_id: uuid.UUID, needed: Permission) -> Permission:
        """Raise PermissionDeniedError unless the user holds ``needed`` or better."""
        permission = await self.permission_for(plan, user_id)
        if permission is None or not permission.allows(needed):
            raise PermissionDeniedError(user_id, plan.id, needed)
        return permission

    async def create_invite(
        self,
        plan: Plan,
        created_by: uuid.UUID,
        permission: Permission = Permission.edit,
        max_uses: int | None = None,
        now: datetime | None = None,
    ) -> Invite:
        """Create an invite token. Requires edit; cannot grant above the creator's level."""
        creator_permission = await self.require(plan, created_by, Permission.edit)
        if not creator_permission.allows(permission):
            raise PermissionDeniedError(created_by, plan.id, permission)

        now = now or datetime.utcnow()
        invite = Invite(
            token=secrets.token_urlsafe(16),
            plan_id=plan.id,
            created_by=created_by,
            permission=permission,
            expires_at=now + self._ttl,
            max_uses=max_uses or self._max_uses,
        )
        await self._repo.save_invite(invite)
        logger.info(
            "Invite created",
            extra={"structured": {"plan_id": str(plan.id), "permission": permission.value}},
        )
        return invite

    async def lookup(self, token: str) -> Invite:
        """Get an invite by token or raise InviteNotFoundError."""
        invite = await self._repo.get_invite(token)
        if invite is None:
            raise InviteNotFoundError(token)
        return invite

    async def redeem(
        self, invite: Invite, plan: Plan, user_id: uuid.UUID, now: datetime | None = None
    ) -> Collaborator:
        """Redeem an invite for ``user_id``.

        Redeeming an invite for a plan the user already belongs to returns the
        existing membership without consuming a use.
        """
        if invite.plan_id != plan.id:
            raise InviteNotFoundError(invite.token)
        if user_id == plan.owner_id:
            return Collaborator(plan_id=plan.id, user_id=user_id, permission=Permission.admin)
        existing = await self._repo.get_collaborator(plan.id, user_id)
        if existing is not None:
            return existing

        now = now or datetime.utcnow()
        if invite.is_expired(now):
            raise InviteExpiredError(invite.token)
        if invite.exhausted:
            raise InviteExhaustedError(invite.token)

        # Owner counts as a participant
        participants = len(await self._repo.list_collaborators(plan.id)) + 1
        if participants >= self._max_participants:
            raise PlanFullError(str(plan.id))

        collaborator = Collaborator(
            plan_id=invite.plan_id, user_id=user_id, permission=invite.permission, joined_at=now
        )
        await self._repo.add_collaborator(collaborator)
        invite.use_count += 1
        await self._repo.save_invite(invite)
        logger.info(
            "Invite redeemed",
            extra={"structured": {"plan_id": str(invite.plan_id), "use_count": invite.use_count}},
        )
        return collaborator
