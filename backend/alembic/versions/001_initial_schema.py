"""Initial schema: branches, tables, time slots, blackouts and bookings.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Branches (owned by the merchant platform, read-only to the engine)
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("merchant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default=sa.text("'UTC'")),
        sa.Column("operating_hours", sa.JSON(), nullable=False),
        sa.Column("reservation_settings", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_branches_id", "branches", ["id"])
    op.create_index("ix_branches_merchant_id", "branches", ["merchant_id"])

    # Tables
    op.create_table(
        "tables",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("table_number", sa.String(20), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("location_type", sa.String(20), nullable=False, server_default=sa.text("'indoor'")),
        sa.Column("table_type", sa.String(20), nullable=False, server_default=sa.text("'standard'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'available'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint("branch_id", "table_number", name="uq_branch_table_number"),
        sa.CheckConstraint("capacity >= 1", name="check_table_capacity_positive"),
        sa.CheckConstraint(
            "status IN ('available', 'reserved', 'occupied', 'maintenance')", name="check_table_status"
        ),
    )
    op.create_index("ix_tables_id", "tables", ["id"])
    op.create_index("ix_tables_branch_id", "tables", ["branch_id"])
    # Candidate lookup: active tables of a branch seating at least N
    op.create_index("ix_tables_branch_active_capacity", "tables", ["branch_id", "is_active", "capacity"])

    # Time slot definitions
    op.create_table(
        "booking_time_slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("booking_interval_minutes", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("slot_name", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_slot_day_of_week"),
        sa.CheckConstraint("booking_interval_minutes > 0", name="check_slot_interval_positive"),
    )
    op.create_index("ix_booking_time_slots_id", "booking_time_slots", ["id"])
    op.create_index("ix_time_slots_branch_day", "booking_time_slots", ["branch_id", "day_of_week"])

    # Blackout windows
    op.create_table(
        "booking_blackout_dates",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("blackout_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("reason", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_booking_blackout_dates_id", "booking_blackout_dates", ["id"])
    op.create_index("ix_blackouts_branch_date", "booking_blackout_dates", ["branch_id", "blackout_date"])

    # Bookings
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("table_id", sa.Integer(), sa.ForeignKey("tables.id"), nullable=True),
        sa.Column("reference", sa.String(32), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("booking_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("90")),
        sa.Column("party_size", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("waitlist_position", sa.Integer(), nullable=True),
        sa.Column("waitlisted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_wait_minutes", sa.Integer(), nullable=True),
        sa.Column("notification_status", sa.String(20), nullable=True),
        sa.Column("last_notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("action_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("seating_preference", sa.String(20), nullable=True),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("occasion", sa.String(50), nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default=sa.text("'app'")),
        sa.Column("check_in_code", sa.String(6), nullable=False),
        sa.Column("status_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by_role", sa.String(20), nullable=True),
        sa.Column("late_cancellation", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("arrived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("seated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("departed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modified_by", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("branch_id", "reference", name="uq_branch_booking_reference"),
        sa.CheckConstraint("party_size > 0", name="check_booking_party_size_positive"),
        sa.CheckConstraint("duration_minutes > 0", name="check_booking_duration_positive"),
        sa.CheckConstraint(
            "status IN ('pending', 'waitlisted', 'approved', 'denied', 'seated', 'completed', 'cancelled')",
            name="check_booking_status",
        ),
        # A waitlist position exists exactly while the booking is waitlisted
        sa.CheckConstraint(
            "(status = 'waitlisted' AND waitlist_position IS NOT NULL AND waitlist_position >= 1)"
            " OR (status <> 'waitlisted' AND waitlist_position IS NULL)",
            name="check_waitlist_position_matches_status",
        ),
        sa.CheckConstraint(
            "table_id IS NULL OR status IN ('approved', 'seated', 'completed')",
            name="check_table_held_by_confirmed_booking",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"])
    op.create_index("ix_bookings_table_id", "bookings", ["table_id"])
    # Serves both the overlap scan (confirmed bookings of a branch around a
    # date) and the waitlist partition queries (waitlisted on a date)
    op.create_index("ix_bookings_branch_date_status", "bookings", ["branch_id", "booking_date", "status"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("booking_blackout_dates")
    op.drop_table("booking_time_slots")
    op.drop_table("tables")
    op.drop_table("branches")
