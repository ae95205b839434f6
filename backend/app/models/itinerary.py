"""Itinerary models - Plan -> Day -> Place with transport edges."""

import datetime as dt
import uuid
from datetime import date, datetime, time

from pydantic import BaseModel, Field

from backend.app.models.common import Coordinate, EdgeStatus, TransportMode
from backend.app.models.route import TransitItinerary, TransitLeg


class TransportEdge(BaseModel):
    """Travel data from one node to the next place of the same day."""

    mode: TransportMode | None = None
    status: EdgeStatus = EdgeStatus.unset
    duration_min: int | None = None
    distance_km: float | None = None
    fare: int | None = None
    is_estimate: bool = False
    path: list[Coordinate] = Field(default_factory=list)
    options: list[TransitItinerary] = Field(default_factory=list)
    selected_option: int = 0
    message: str | None = None

    @property
    def legs(self) -> list[TransitLeg]:
        if not self.options:
            return []
        return self.options[self.selected_option].legs

    def reset(self, status: EdgeStatus) -> None:
        """Drop computed data and move to ``status``."""
        self.status = status
        self.duration_min = None
        self.distance_km = None
        self.fare = None
        self.is_estimate = False
        self.path = []
        self.options = []
        self.selected_option = 0
        self.message = None


class Lodging(BaseModel):
    """Accommodation used as the start node of day 2+."""

    name: str
    address: str
    coordinate: Coordinate | None = None


class Place(BaseModel):
    """Single visitable location within a day."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    day_id: uuid.UUID | None = None
    name: str
    address: str = ""
    coordinate: Coordinate | None = None
    order_index: int = 0
    edge: TransportEdge | None = None
    place_type: str | None = None
    description: str | None = None
    image_url: str | None = None
    visit_time: time | None = None
    stay_minutes: int | None = None
    memo: str | None = None


class Day(BaseModel):
    """One calendar day of a plan."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    plan_id: uuid.UUID | None = None
    day_number: int = 1
    date: dt.date
    places: list[Place] = Field(default_factory=list)
    lodging_edge: TransportEdge | None = None


class Plan(BaseModel):
    """Multi-day trip itinerary."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    owner_id: uuid.UUID
    title: str
    description: str | None = None
    start_date: date
    end_date: date
    lodging: Lodging | None = None
    is_public: bool = False
    like_count: int = 0
    view_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    days: list[Day] = Field(default_factory=list)

    @property
    def place_count(self) -> int:
        return sum(len(day.places) for day in self.days)


class PlanSummary(BaseModel):
    """Summary of a plan for listing."""

    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    start_date: date
    end_date: date
    day_count: int
    place_count: int
    is_public: bool
    created_at: datetime
