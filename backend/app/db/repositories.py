"""Repository protocol interfaces for data access."""

import uuid
from typing import Literal, Protocol

from backend.app.models.collaboration import Collaborator, Invite
from backend.app.models.common import Coordinate, TransportMode
from backend.app.models.itinerary import Plan, PlanSummary
from backend.app.models.route import RouteCacheEntry

PlanCounter = Literal["view_count", "like_count"]


class PlanRepository(Protocol):
    """Repository for plan aggregates (plan, days, places, edges)."""

    async def get_plan(self, plan_id: uuid.UUID) -> Plan | None:
        """Load a full plan with days, places and edges.

        Args:
            plan_id: Plan ID

        Returns:
            Plan or None if not found
        """
        ...

    async def save_plan(self, plan: Plan) -> None:
        """Insert or replace a full plan aggregate.

        Args:
            plan: Plan to persist
        """
        ...

    async def delete_plan(self, plan_id: uuid.UUID) -> bool:
        """Delete a plan and everything it owns.

        Returns:
            True if a plan was deleted
        """
        ...

    async def list_plans(
        self, owner_id: uuid.UUID, extra_plan_ids: list[uuid.UUID] | None = None
    ) -> list[PlanSummary]:
        """List plan summaries owned by ``owner_id`` or with an id in ``extra_plan_ids``.

        Results are ordered by creation time, newest first.
        """
        ...

    async def place_count(self, plan_id: uuid.UUID) -> int | None:
        """Structural fingerprint used by pollers.

        Returns:
            Total number of places, or None if the plan does not exist
        """
        ...

    async def increment_counter(self, plan_id: uuid.UUID, counter: PlanCounter) -> int | None:
        """Add one to a plan counter without touching the rest of the aggregate.

        Args:
            plan_id: Plan ID
            counter: Column to increment

        Returns:
            The new value, or None if the plan does not exist
        """
        ...


class CollaboratorRepository(Protocol):
    """Repository for collaborators and invites."""

    async def add_collaborator(self, collaborator: Collaborator) -> None:
        """Insert or update a collaborator row."""
        ...

    async def get_collaborator(
        self, plan_id: uuid.UUID, user_id: uuid.UUID
    ) -> Collaborator | None:
        """Get a collaborator row."""
        ...

    async def list_collaborators(self, plan_id: uuid.UUID) -> list[Collaborator]:
        """List collaborators of a plan."""
        ...

    async def list_plan_ids_for_user(self, user_id: uuid.UUID) -> list[uuid.UUID]:
        """Plans a user collaborates on."""
        ...

    async def save_invite(self, invite: Invite) -> None:
        """Insert or update an invite."""
        ...

    async def get_invite(self, token: str) -> Invite | None:
        """Get an invite by token."""
        ...


class RouteCacheStore(Protocol):
    """Append-mostly route cache keyed by (origin, destination, mode)."""

    async def get(
        self, origin_key: str, destination_key: str, mode: TransportMode
    ) -> RouteCacheEntry | None:
        """Get a cached route lookup."""
        ...

    async def put(self, entry: RouteCacheEntry) -> None:
        """Store a route lookup (last write wins)."""
        ...


class CoordinateCacheStore(Protocol):
    """Append-mostly coordinate cache keyed by normalized query."""

    async def get(self, query: str) -> Coordinate | None:
        """Get a cached coordinate."""
        ...

    async def put(self, query: str, coordinate: Coordinate) -> None:
        """Store a coordinate (last write wins)."""
        ...
