"""Common types and enums shared across all models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Coordinate(BaseModel):
    """Geographic coordinates (WGS84)."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class TransportMode(str, Enum):
    """Travel mode for a transport edge."""

    car = "car"
    taxi = "taxi"
    bus = "bus"
    subway = "subway"
    walk = "walk"
    bicycle = "bicycle"

    @property
    def is_transit(self) -> bool:
        return self in (TransportMode.bus, TransportMode.subway)

    @property
    def is_estimated(self) -> bool:
        return self in (TransportMode.walk, TransportMode.bicycle)


class EdgeStatus(str, Enum):
    """Lifecycle of a transport edge.

    unset -> pending -> resolved | no_route (transit only) | failed (retryable)
    """

    unset = "unset"
    pending = "pending"
    resolved = "resolved"
    no_route = "no_route"
    failed = "failed"


class Permission(str, Enum):
    """Collaborator permission, ordered view < edit < admin."""

    view = "view"
    edit = "edit"
    admin = "admin"

    @property
    def rank(self) -> int:
        return {"view": 0, "edit": 1, "admin": 2}[self.value]

    def allows(self, needed: "Permission") -> bool:
        return self.rank >= needed.rank
