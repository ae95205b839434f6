"""SQLAlchemy ORM models for plans, collaboration and vendor caches."""

import datetime as dt
import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TripPlan(Base):
    """Plan table - one row per itinerary."""

    __tablename__ = "trip_plan"
    __table_args__ = (
        Index("idx_plan_owner", "owner_id", "created_at"),
        Index("idx_plan_public", "is_public"),
    )

    plan_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    # {"name", "address", "coordinate"} or null
    lodging: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    days: Mapped[list["TripDay"]] = relationship(
        "TripDay",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="TripDay.day_number",
    )
    collaborators: Mapped[list["TripCollaborator"]] = relationship(
        "TripCollaborator", back_populates="plan", cascade="all, delete-orphan"
    )
    invites: Mapped[list["TripInvite"]] = relationship(
        "TripInvite", back_populates="plan", cascade="all, delete-orphan"
    )


class TripDay(Base):
    """Day table - contiguous day numbers per plan."""

    __tablename__ = "trip_day"
    __table_args__ = (Index("idx_day_plan_number", "plan_id", "day_number"),)

    day_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trip_plan.plan_id", ondelete="CASCADE"), nullable=False
    )
    day_number: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    # TransportEdge from the plan lodging to the first place (day 2+)
    lodging_edge: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)

    # Relationships
    plan: Mapped["TripPlan"] = relationship("TripPlan", back_populates="days")
    places: Mapped[list["TripPlace"]] = relationship(
        "TripPlace",
        back_populates="day",
        cascade="all, delete-orphan",
        order_by="TripPlace.order_index",
    )


class TripPlace(Base):
    """Place table - ordered by order_index within a day."""

    __tablename__ = "trip_place"
    __table_args__ = (Index("idx_place_day_order", "day_id", "order_index"),)

    place_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    day_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trip_day.day_id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(Text, default="", nullable=False)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    # TransportEdge to the next place, null for the last place of a day
    transport_to_next: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
    place_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    visit_time: Mapped[str | None] = mapped_column(Text, nullable=True)
    stay_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    day: Mapped["TripDay"] = relationship("TripDay", back_populates="places")


class TripCollaborator(Base):
    """Collaborator table - one row per (plan, user)."""

    __tablename__ = "trip_collaborator"
    __table_args__ = (
        PrimaryKeyConstraint("plan_id", "user_id", name="pk_collaborator"),
        Index("idx_collaborator_user", "user_id"),
    )

    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trip_plan.plan_id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    permission: Mapped[str] = mapped_column(Text, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    plan: Mapped["TripPlan"] = relationship("TripPlan", back_populates="collaborators")


class TripInvite(Base):
    """Invite table - short-lived tokens."""

    __tablename__ = "trip_invite"

    token: Mapped[str] = mapped_column(Text, primary_key=True)
    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trip_plan.plan_id", ondelete="CASCADE"), nullable=False
    )
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    permission: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False)
    use_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    plan: Mapped["TripPlan"] = relationship("TripPlan", back_populates="invites")


class RouteCache(Base):
    """Route cache table - no expiry, last write wins."""

    __tablename__ = "route_cache"
    __table_args__ = (
        PrimaryKeyConstraint("origin_key", "destination_key", "mode", name="pk_route_cache"),
    )

    origin_key: Mapped[str] = mapped_column(Text, nullable=False)
    destination_key: Mapped[str] = mapped_column(Text, nullable=False)
    mode: Mapped[str] = mapped_column(Text, nullable=False)
    # Serialized RouteResult variant (car / transit / estimate / no_route)
    result: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False)
    is_estimate: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class CoordinateCache(Base):
    """Coordinate cache table keyed by normalized query."""

    __tablename__ = "coordinate_cache"

    query: Mapped[str] = mapped_column(Text, primary_key=True)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
