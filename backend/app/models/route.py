"""Route result models.

A route lookup yields exactly one variant of ``RouteResult``, discriminated by
``kind``:

- ``CarRoute``: vendor A driving directions (car / taxi)
- ``TransitRoute``: vendor B itineraries (bus / subway), first option is primary
- ``EstimateRoute``: haversine estimate (walk / bicycle)
- ``NoRoute``: vendor B has no itinerary for a single-mode query (terminal)
- ``RouteFailure``: geocoding or vendor failure (retryable)
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from backend.app.models.common import Coordinate, TransportMode


class LegType(str, Enum):
    """Type of a single transit leg."""

    subway = "subway"
    bus = "bus"
    walk = "walk"


class StopPoint(BaseModel):
    """Intermediate stop along a subway/bus leg."""

    name: str
    coordinate: Coordinate


class TransitLeg(BaseModel):
    """One leg of a transit itinerary."""

    type: LegType
    duration_min: int
    distance_m: int = 0
    line_name: str | None = None
    line_color: str | None = None
    bus_type: int | None = None
    start_name: str | None = None
    end_name: str | None = None
    stop_count: int | None = None
    start: Coordinate | None = None
    end: Coordinate | None = None
    stops: list[StopPoint] = Field(default_factory=list)


class TransitItinerary(BaseModel):
    """One vendor-ranked itinerary option."""

    duration_min: int
    distance_km: float
    fare: int
    bus_transit_count: int = 0
    subway_transit_count: int = 0
    legs: list[TransitLeg] = Field(default_factory=list)


class FailureKind(str, Enum):
    """Why a route lookup failed."""

    not_found = "not_found"
    partial_failure = "partial_failure"
    vendor_timeout = "vendor_timeout"
    vendor_error = "vendor_error"


class FailedSide(str, Enum):
    """Which endpoint of a route pair failed to geocode."""

    origin = "origin"
    destination = "destination"


class CarRoute(BaseModel):
    kind: Literal["car"] = "car"
    duration_min: int
    distance_km: float
    fare: int = 0
    path: list[Coordinate] = Field(default_factory=list)


class TransitRoute(BaseModel):
    kind: Literal["transit"] = "transit"
    options: list[TransitItinerary] = Field(..., min_length=1)


class EstimateRoute(BaseModel):
    kind: Literal["estimate"] = "estimate"
    duration_min: int
    distance_km: float
    is_estimate: bool = True


class NoRoute(BaseModel):
    kind: Literal["no_route"] = "no_route"
    mode: TransportMode
    message: str = "no route available for this mode"


class RouteFailure(BaseModel):
    kind: Literal["failure"] = "failure"
    failure: FailureKind
    message: str = ""
    failed_side: FailedSide | None = None
    resolved_coordinate: Coordinate | None = None


RouteResult = Annotated[
    CarRoute | TransitRoute | EstimateRoute | NoRoute | RouteFailure,
    Field(discriminator="kind"),
]

# Variants that may be persisted to the route cache
CacheableRoute = Annotated[
    CarRoute | TransitRoute | EstimateRoute | NoRoute,
    Field(discriminator="kind"),
]


class RouteCacheEntry(BaseModel):
    """Persisted route lookup, reused indefinitely."""

    origin_key: str
    destination_key: str
    mode: TransportMode
    result: CacheableRoute
    created_at: datetime = Field(default_factory=datetime.utcnow)
