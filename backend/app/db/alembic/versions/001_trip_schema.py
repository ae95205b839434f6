"""Trip planner schema

Revision ID: 001
Revises:
Create Date: 2026-10-16

Creates:
- trip_plan, trip_day, trip_place
- trip_collaborator, trip_invite
- route_cache, coordinate_cache
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "trip_plan",
        sa.Column("plan_id", sa.Uuid(), primary_key=True),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("lodging", JSON, nullable=True),
        sa.Column("is_public", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("like_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("view_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_plan_owner", "trip_plan", ["owner_id", "created_at"])
    op.create_index("idx_plan_public", "trip_plan", ["is_public"])

    op.create_table(
        "trip_day",
        sa.Column("day_id", sa.Uuid(), primary_key=True),
        sa.Column("plan_id", sa.Uuid(), nullable=False),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("lodging_edge", JSON, nullable=True),
        sa.ForeignKeyConstraint(["plan_id"], ["trip_plan.plan_id"], ondelete="CASCADE"),
    )
    op.create_index("idx_day_plan_number", "trip_day", ["plan_id", "day_number"])

    op.create_table(
        "trip_place",
        sa.Column("place_id", sa.Uuid(), primary_key=True),
        sa.Column("day_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("address", sa.Text(), server_default="", nullable=False),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False),
        sa.Column("transport_to_next", JSON, nullable=True),
        sa.Column("place_type", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("visit_time", sa.Text(), nullable=True),
        sa.Column("stay_minutes", sa.Integer(), nullable=True),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["day_id"], ["trip_day.day_id"], ondelete="CASCADE"),
    )
    op.create_index("idx_place_day_order", "trip_place", ["day_id", "order_index"])

    op.create_table(
        "trip_collaborator",
        sa.Column("plan_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("permission", sa.Text(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("plan_id", "user_id", name="pk_collaborator"),
        sa.ForeignKeyConstraint(["plan_id"], ["trip_plan.plan_id"], ondelete="CASCADE"),
    )
    op.create_index("idx_collaborator_user", "trip_collaborator", ["user_id"])

    op.create_table(
        "trip_invite",
        sa.Column("token", sa.Text(), primary_key=True),
        sa.Column("plan_id", sa.Uuid(), nullable=False),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column("permission", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=False),
        sa.Column("use_count", sa.Integer(), server_default="0", nullable=False),
        sa.ForeignKeyConstraint(["plan_id"], ["trip_plan.plan_id"], ondelete="CASCADE"),
    )

    op.create_table(
        "route_cache",
        sa.Column("origin_key", sa.Text(), nullable=False),
        sa.Column("destination_key", sa.Text(), nullable=False),
        sa.Column("mode", sa.Text(), nullable=False),
        sa.Column("result", JSON, nullable=False),
        sa.Column("is_estimate", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("origin_key", "destination_key", "mode", name="pk_route_cache"),
    )

    op.create_table(
        "coordinate_cache",
        sa.Column("query", sa.Text(), primary_key=True),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("coordinate_cache")
    op.drop_table("route_cache")
    op.drop_table("trip_invite")
    op.drop_index("idx_collaborator_user", table_name="trip_collaborator")
    op.drop_table("trip_collaborator")
    op.drop_index("idx_place_day_order", table_name="trip_place")
    op.drop_table("trip_place")
    op.drop_index("idx_day_plan_number", table_name="trip_day")
    op.drop_table("trip_day")
    op.drop_index("idx_plan_public", table_name="trip_plan")
    op.drop_index("idx_plan_owner", table_name="trip_plan")
    op.drop_table("trip_plan")
