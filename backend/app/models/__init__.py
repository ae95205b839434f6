"""Models package - re-exports for convenience."""

from backend.app.models.collaboration import Collaborator, Invite, PlanChange
from backend.app.models.common import Coordinate, EdgeStatus, Permission, TransportMode
from backend.app.models.itinerary import Day, Lodging, Place, Plan, PlanSummary, TransportEdge
from backend.app.models.route import (
    CarRoute,
    EstimateRoute,
    FailedSide,
    FailureKind,
    LegType,
    NoRoute,
    RouteCacheEntry,
    RouteFailure,
    RouteResult,
    StopPoint,
    TransitItinerary,
    TransitLeg,
    TransitRoute,
)

__all__ = [
    # Common
    "Coordinate",
    "TransportMode",
    "EdgeStatus",
    "Permission",
    # Itinerary
    "Plan",
    "PlanSummary",
    "Day",
    "Place",
    "Lodging",
    "TransportEdge",
    # Routes
    "RouteResult",
    "CarRoute",
    "TransitRoute",
    "EstimateRoute",
    "NoRoute",
    "RouteFailure",
    "FailureKind",
    "FailedSide",
    "TransitItinerary",
    "TransitLeg",
    "LegType",
    "StopPoint",
    "RouteCacheEntry",
    # Collaboration
    "Collaborator",
    "Invite",
    "PlanChange",
]
