"""Collaboration models - collaborators, invites and change notifications."""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from backend.app.models.common import Permission


class Collaborator(BaseModel):
    """User granted access to a plan."""

    plan_id: uuid.UUID
    user_id: uuid.UUID
    permission: Permission
    joined_at: datetime = Field(default_factory=datetime.utcnow)


class Invite(BaseModel):
    """Short-lived token that creates a Collaborator when redeemed."""

    token: str
    plan_id: uuid.UUID
    created_by: uuid.UUID
    permission: Permission = Permission.edit
    expires_at: datetime
    max_uses: int
    use_count: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    @property
    def exhausted(self) -> bool:
        return self.use_count >= self.max_uses


ChangeType = Literal["plan", "day", "place", "edge", "collaborator"]


class PlanChange(BaseModel):
    """Notification published on a plan's collaboration channel.

    Receivers treat the payload as a hint only and always reload the plan.
    """

    plan_id: uuid.UUID
    type: ChangeType
    event: str
    actor_id: uuid.UUID | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    sent_at: datetime = Field(default_factory=datetime.utcnow)
