"""In-memory implementations of repository interfaces."""

import uuid

from backend.app.db.repositories import PlanCounter
from backend.app.models.collaboration import Collaborator, Invite
from backend.app.models.common import Coordinate, TransportMode
from backend.app.models.itinerary import Plan, PlanSummary
from backend.app.models.route import RouteCacheEntry


def summarize(plan: Plan) -> PlanSummary:
    """Build a listing summary from a full plan."""
    return PlanSummary(
        id=plan.id,
        owner_id=plan.owner_id,
        title=plan.title,
        start_date=plan.start_date,
        end_date=plan.end_date,
        day_count=len(plan.days),
        place_count=plan.place_count,
        is_public=plan.is_public,
        created_at=plan.created_at,
    )


class InMemoryPlanRepository:
    """In-memory implementation of PlanRepository.

    Plans are deep-copied on the way in and out so callers never share state.
    """

    def __init__(self) -> None:
        self._plans: dict[uuid.UUID, Plan] = {}

    async def get_plan(self, plan_id: uuid.UUID) -> Plan | None:
        """Load a full plan."""
        plan = self._plans.get(plan_id)
        return plan.model_copy(deep=True) if plan else None

    async def save_plan(self, plan: Plan) -> None:
        """Insert or replace a plan."""
        self._plans[plan.id] = plan.model_copy(deep=True)

    async def delete_plan(self, plan_id: uuid.UUID) -> bool:
        """Delete a plan."""
        return self._plans.pop(plan_id, None) is not None

    async def list_plans(
        self, owner_id: uuid.UUID, extra_plan_ids: list[uuid.UUID] | None = None
    ) -> list[PlanSummary]:
        """List owned and collaborating plans, newest first."""
        extra = set(extra_plan_ids or [])
        results = [
            summarize(plan)
            for plan in self._plans.values()
            if plan.owner_id == owner_id or plan.id in extra
        ]
        results.sort(key=lambda s: s.created_at, reverse=True)
        return results

    async def place_count(self, plan_id: uuid.UUID) -> int | None:
        """Total place count of a plan."""
        plan = self._plans.get(plan_id)
        return plan.place_count if plan else None

    async def increment_counter(self, plan_id: uuid.UUID, counter: PlanCounter) -> int | None:
        """Add one to a counter in place."""
        plan = self._plans.get(plan_id)
        if plan is None:
            return None
        value = getattr(plan, counter) + 1
        setattr(plan, counter, value)
        return value


class InMemoryCollaboratorRepository:
    """In-memory implementation of CollaboratorRepository."""

    def __init__(self) -> None:
        self._collaborators: dict[tuple[uuid.UUID, uuid.UUID], Collaborator] = {}
        self._invites: dict[str, Invite] = {}

    async def add_collaborator(self, collaborator: Collaborator) -> None:
        """Insert or update a collaborator."""
        key = (collaborator.plan_id, collaborator.user_id)
        self._collaborators[key] = collaborator.model_copy()

    async def get_collaborator(
        self, plan_id: uuid.UUID, user_id: uuid.UUID
    ) -> Collaborator | None:
        """Get a collaborator."""
        collaborator = self._collaborators.get((plan_id, user_id))
        return collaborator.model_copy() if collaborator else None

    async def list_collaborators(self, plan_id: uuid.UUID) -> list[Collaborator]:
        """List collaborators of a plan."""
        return [c.model_copy() for (pid, _), c in self._collaborators.items() if pid == plan_id]

    async def list_plan_ids_for_user(self, user_id: uuid.UUID) -> list[uuid.UUID]:
        """Plans a user collaborates on."""
        return [pid for (pid, uid) in self._collaborators if uid == user_id]

    async def save_invite(self, invite: Invite) -> None:
        """Insert or update an invite."""
        self._invites[invite.token] = invite.model_copy()

    async def get_invite(self, token: str) -> Invite | None:
        """Get an invite."""
        invite = self._invites.get(token)
        return invite.model_copy() if invite else None


class InMemoryRouteCache:
    """In-memory implementation of RouteCacheStore."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str, TransportMode], RouteCacheEntry] = {}

    async def get(
        self, origin_key: str, destination_key: str, mode: TransportMode
    ) -> RouteCacheEntry | None:
        """Get a cached route."""
        return self._entries.get((origin_key, destination_key, mode))

    async def put(self, entry: RouteCacheEntry) -> None:
        """Store a route."""
        self._entries[(entry.origin_key, entry.destination_key, entry.mode)] = entry

    def __len__(self) -> int:
        return len(self._entries)


class InMemoryCoordinateCache:
    """In-memory implementation of CoordinateCacheStore."""

    def __init__(self) -> None:
        self._entries: dict[str, Coordinate] = {}

    async def get(self, query: str) -> Coordinate | None:
        """Get a cached coordinate."""
        return self._entries.get(query)

    async def put(self, query: str, coordinate: Coordinate) -> None:
        """Store a coordinate."""
        self._entries[query] = coordinate

    def __len__(self) -> int:
        return len(self._entries)
