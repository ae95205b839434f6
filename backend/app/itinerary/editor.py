"""Itinerary structure and edge invalidation.

Every structural mutation runs through ``ItineraryEditor._mutate``:

1. snapshot the endpoints of every edge (``edge_endpoints``)
2. apply the change
3. renumber days (by date) and places (by list position) contiguously
4. diff endpoints: edges whose endpoints changed become pending, edges whose
   source node is no longer followed by a place are dropped

Diffing current endpoints instead of reasoning about the mutation keeps the
invalidated set minimal: moving B in [A, B, C] to the end touches only A->C and
C->B, and the lodging edge of a day is only touched when that day's first place
changes or the lodging itself changes.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Literal

from backend.app.models.common import EdgeStatus, TransportMode
from backend.app.models.itinerary import Day, Lodging, Place, Plan, TransportEdge
from backend.app.models.route import (
    CarRoute,
    EstimateRoute,
    NoRoute,
    RouteFailure,
    RouteResult,
    TransitRoute,
)

logger = logging.getLogger(__name__)


class ItineraryLookupError(LookupError):
    """Unknown day, place or edge id."""

    pass


class InvariantViolationError(Exception):
    """Order-index or day-number invariant broken."""

    pass


@dataclass(frozen=True)
class EdgeKey:
    """Edge identity: place id for place edges, day id for lodging edges."""

    kind: Literal["place", "lodging"]
    id: uuid.UUID

    @classmethod
    def place(cls, place_id: uuid.UUID) -> "EdgeKey":
        return cls("place", place_id)

    @classmethod
    def lodging(cls, day_id: uuid.UUID) -> "EdgeKey":
        return cls("lodging", day_id)

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"


@dataclass(frozen=True)
class EdgeEndpoints:
    """What an edge connects, including the location text of both nodes."""

    origin: str
    destination: str


def place_node(place: Place) -> str:
    return f"place|{place.id}|{place.name}|{place.address}"


def lodging_node(lodging: Lodging) -> str:
    return f"lodging|{lodging.name}|{lodging.address}"


def edge_endpoints(plan: Plan) -> dict[EdgeKey, EdgeEndpoints]:
    """Derive every edge that should exist from the current structure."""
    endpoints: dict[EdgeKey, EdgeEndpoints] = {}
    for day in plan.days:
        places = day.places
        for current, following in zip(places, places[1:]):
            endpoints[EdgeKey.place(current.id)] = EdgeEndpoints(
                origin=place_node(current), destination=place_node(following)
            )
        if plan.lodging is not None and day.day_number > 1 and places:
            endpoints[EdgeKey.lodging(day.id)] = EdgeEndpoints(
                origin=lodging_node(plan.lodging), destination=place_node(places[0])
            )
    return endpoints


def find_day(plan: Plan, day_id: uuid.UUID) -> Day:
    for day in plan.days:
        if day.id == day_id:
            return day
    raise ItineraryLookupError(f"day {day_id} not in plan {plan.id}")


def find_place(plan: Plan, place_id: uuid.UUID) -> tuple[Day, Place]:
    for day in plan.days:
        for place in day.places:
            if place.id == place_id:
                return day, place
    raise ItineraryLookupError(f"place {place_id} not in plan {plan.id}")


def get_edge(plan: Plan, key: EdgeKey) -> TransportEdge | None:
    if key.kind == "place":
        _, place = find_place(plan, key.id)
        return place.edge
    return find_day(plan, key.id).lodging_edge


def edge_nodes(plan: Plan, key: EdgeKey) -> tuple[Place | Lodging, Place]:
    """Origin and destination nodes of an existing edge."""
    if key.kind == "place":
        day, place = find_place(plan, key.id)
        index = day.places.index(place)
        if index + 1 >= len(day.places):
            raise ItineraryLookupError(f"edge {key} has no destination")
        return place, day.places[index + 1]

    day = find_day(plan, key.id)
    if plan.lodging is None or not day.places or day.day_number <= 1:
        raise ItineraryLookupError(f"edge {key} does not exist")
    return plan.lodging, day.places[0]


def renumber(plan: Plan) -> None:
    """Make day numbers and order indices contiguous.

    Days are ordered by date (stable), places by list position. Parent ids are
    re-stamped so edge identity is never ambiguous.
    """
    plan.days.sort(key=lambda d: d.date)
    for day_index, day in enumerate(plan.days):
        day.day_number = day_index + 1
        day.plan_id = plan.id
        for place_index, place in enumerate(day.places):
            place.order_index = place_index
            place.day_id = day.id


def normalize(plan: Plan) -> Plan:
    """Repair a loaded plan: sort places by stored order index, then renumber."""
    for day in plan.days:
        day.places.sort(key=lambda p: p.order_index)
    renumber(plan)
    return plan


def check_invariants(plan: Plan) -> None:
    """Raise InvariantViolationError if structure or edges are inconsistent."""
    day_numbers = [day.day_number for day in plan.days]
    if day_numbers != list(range(1, len(plan.days) + 1)):
        raise InvariantViolationError(f"day numbers not contiguous: {day_numbers}")
    dates = [day.date for day in plan.days]
    if dates != sorted(dates):
        raise InvariantViolationError("day numbers do not follow dates")

    expected = edge_endpoints(plan)
    for day in plan.days:
        indices = [place.order_index for place in day.places]
        if indices != list(range(len(day.places))):
            raise InvariantViolationError(f"order indices not contiguous in day {day.id}: {indices}")
        for place in day.places:
            has_edge = EdgeKey.place(place.id) in expected
            if has_edge and place.edge is None:
                raise InvariantViolationError(f"place {place.id} is missing its edge")
            if not has_edge and place.edge is not None:
                raise InvariantViolationError(f"last place {place.id} has an edge")
        has_lodging_edge = EdgeKey.lodging(day.id) in expected
        if has_lodging_edge != (day.lodging_edge is not None):
            raise InvariantViolationError(f"lodging edge mismatch on day {day.id}")


def apply_route_result(
    plan: Plan,
    key: EdgeKey,
    endpoints: EdgeEndpoints,
    mode: TransportMode,
    result: RouteResult,
) -> bool:
    """Write a route result into its edge unless the edge went stale meanwhile.

    The edge is re-derived from the current structure; if it no longer exists,
    connects different nodes, or has a different mode, the result is discarded.

    Returns:
        True if applied
    """
    if edge_endpoints(plan).get(key) != endpoints:
        logger.debug("Discarded route result for vanished/moved edge", extra={"structured": {"edge": str(key)}})
        return False
    edge = get_edge(plan, key)
    if edge is None or edge.mode != mode:
        logger.debug("Discarded route result for changed mode", extra={"structured": {"edge": str(key)}})
        return False

    if isinstance(result, CarRoute):
        edge.reset(EdgeStatus.resolved)
        edge.duration_min = result.duration_min
        edge.distance_km = result.distance_km
        edge.fare = result.fare
        edge.path = list(result.path)
    elif isinstance(result, TransitRoute):
        edge.reset(EdgeStatus.resolved)
        edge.options = list(result.options)
        _use_option(edge, 0)
    elif isinstance(result, EstimateRoute):
        edge.reset(EdgeStatus.resolved)
        edge.duration_min = result.duration_min
        edge.distance_km = result.distance_km
        edge.fare = 0
        edge.is_estimate = True
    elif isinstance(result, NoRoute):
        edge.reset(EdgeStatus.no_route)
        edge.message = result.message
    elif isinstance(result, RouteFailure):
        edge.reset(EdgeStatus.failed)
        edge.message = f"{result.failure.value}: {result.message}"
    return True


def _use_option(edge: TransportEdge, index: int) -> None:
    option = edge.options[index]
    edge.selected_option = index
    edge.duration_min = option.duration_min
    edge.distance_km = option.distance_km
    edge.fare = option.fare


class ItineraryEditor:
    """Applies mutations to a plan and reports which edges went stale."""

    def __init__(self, default_mode: TransportMode | None = TransportMode.car) -> None:
        self._default_mode = default_mode

    def _mutate(self, plan: Plan, change: Callable[[], None]) -> set[EdgeKey]:
        before = edge_endpoints(plan)
        change()
        renumber(plan)
        return self._sync_edges(plan, before)

    def _sync_edges(self, plan: Plan, before: dict[EdgeKey, EdgeEndpoints]) -> set[EdgeKey]:
        after = edge_endpoints(plan)
        dirty: set[EdgeKey] = set()

        for day in plan.days:
            for place in day.places:
                key = EdgeKey.place(place.id)
                if key not in after:
                    place.edge = None
                    continue
                if place.edge is None:
                    place.edge = TransportEdge(mode=self._default_mode)
                if before.get(key) != after[key] and self._invalidate(place.edge):
                    dirty.add(key)

            key = EdgeKey.lodging(day.id)
            if key not in after:
                day.lodging_edge = None
                continue
            if day.lodging_edge is None:
                day.lodging_edge = TransportEdge(mode=self._default_mode)
            if before.get(key) != after[key] and self._invalidate(day.lodging_edge):
                dirty.add(key)

        return dirty

    @staticmethod
    def _invalidate(edge: TransportEdge) -> bool:
        # Without a mode there is nothing to resolve; the edge stays unset
        if edge.mode is None:
            edge.reset(EdgeStatus.unset)
            return False
        edge.reset(EdgeStatus.pending)
        return True

    # Days

    def add_day(self, plan: Plan, day_date: date) -> tuple[Day, set[EdgeKey]]:
        """Add a day; day numbers follow date order."""
        day = Day(plan_id=plan.id, date=day_date)
        dirty = self._mutate(plan, lambda: plan.days.append(day))
        return day, dirty

    def remove_day(self, plan: Plan, day_id: uuid.UUID) -> set[EdgeKey]:
        """Remove a day and its places."""
        day = find_day(plan, day_id)
        return self._mutate(plan, lambda: plan.days.remove(day))

    def update_day(self, plan: Plan, day_id: uuid.UUID, day_date: date) -> set[EdgeKey]:
        """Change a day's date. Day numbers and lodging edges follow the new order."""
        day = find_day(plan, day_id)

        def change() -> None:
            day.date = day_date

        return self._mutate(plan, change)

    # Places

    def add_place(
        self, plan: Plan, day_id: uuid.UUID, place: Place, index: int | None = None
    ) -> set[EdgeKey]:
        """Insert a place into a day (appended when ``index`` is None)."""
        day = find_day(plan, day_id)
        position = len(day.places) if index is None else max(0, min(index, len(day.places)))
        place.edge = None
        return self._mutate(plan, lambda: day.places.insert(position, place))

    def remove_place(self, plan: Plan, place_id: uuid.UUID) -> set[EdgeKey]:
        """Remove a place; its own outgoing edge is discarded."""
        day, place = find_place(plan, place_id)
        return self._mutate(plan, lambda: day.places.remove(place))

    def move_place(
        self,
        plan: Plan,
        place_id: uuid.UUID,
        to_index: int,
        to_day_id: uuid.UUID | None = None,
    ) -> set[EdgeKey]:
        """Move a place within its day or into another day."""
        source_day, place = find_place(plan, place_id)
        target_day = source_day if to_day_id is None else find_day(plan, to_day_id)

        def change() -> None:
            source_day.places.remove(place)
            position = max(0, min(to_index, len(target_day.places)))
            target_day.places.insert(position, place)

        return self._mutate(plan, change)

    def reorder_day(self, plan: Plan, day_id: uuid.UUID, place_ids: list[uuid.UUID]) -> set[EdgeKey]:
        """Replace a day's order with ``place_ids`` (must be a permutation)."""
        day = find_day(plan, day_id)
        by_id = {place.id: place for place in day.places}
        if sorted(by_id, key=str) != sorted(place_ids, key=str):
            raise ItineraryLookupError(f"order for day {day_id} is not a permutation of its places")

        def change() -> None:
            day.places[:] = [by_id[pid] for pid in place_ids]

        return self._mutate(plan, change)

    def update_place(
        self,
        plan: Plan,
        place_id: uuid.UUID,
        *,
        name: str | None = None,
        address: str | None = None,
        **details: object,
    ) -> set[EdgeKey]:
        """Update place fields; a new name/address drops its coordinate and touching edges."""
        _, place = find_place(plan, place_id)

        def change() -> None:
            if (name is not None and name != place.name) or (
                address is not None and address != place.address
            ):
                place.coordinate = None
            if name is not None:
                place.name = name
            if address is not None:
                place.address = address
            for field, value in details.items():
                if field not in Place.model_fields or field in ("id", "day_id", "edge", "order_index"):
                    raise ValueError(f"cannot update place field {field!r}")
                setattr(place, field, value)

        return self._mutate(plan, change)

    # Lodging

    def set_lodging(self, plan: Plan, lodging: Lodging | None) -> set[EdgeKey]:
        """Set, change or clear the lodging; every day-2+ lodging edge follows."""

        def change() -> None:
            plan.lodging = lodging

        return self._mutate(plan, change)

    # Edges

    def set_transport_mode(self, plan: Plan, key: EdgeKey, mode: TransportMode) -> set[EdgeKey]:
        """Choose a mode for one edge.

        A new mode, or any mode on an unset/failed edge, makes the edge pending.
        """
        edge = get_edge(plan, key)
        if edge is None:
            raise ItineraryLookupError(f"edge {key} does not exist")
        if edge.mode == mode and edge.status not in (EdgeStatus.unset, EdgeStatus.failed):
            return set()
        edge.mode = mode
        edge.reset(EdgeStatus.pending)
        return {key}

    def select_transit_option(self, plan: Plan, key: EdgeKey, index: int) -> None:
        """Switch a resolved transit edge to another retained itinerary option."""
        edge = get_edge(plan, key)
        if edge is None or not edge.options:
            raise ItineraryLookupError(f"edge {key} has no transit options")
        if not 0 <= index < len(edge.options):
            raise ItineraryLookupError(f"edge {key} has no option {index}")
        _use_option(edge, index)

    def retry_candidates(self, plan: Plan) -> set[EdgeKey]:
        """Edges a reader should (re)resolve: failed ones plus pending leftovers."""
        keys: set[EdgeKey] = set()
        for key in edge_endpoints(plan):
            edge = get_edge(plan, key)
            if edge is not None and edge.mode is not None and edge.status in (
                EdgeStatus.failed,
                EdgeStatus.pending,
            ):
                keys.add(key)
        return keys
