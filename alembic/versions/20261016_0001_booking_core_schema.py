"""Booking core schema

Revision ID: 20261016_0001
Revises:
Create Date: 2026-10-16 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261016_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


vehicle_size_enum = sa.Enum("S", "M", "L", "XL", name="vehicle_size_enum", native_enum=False)
booking_status_enum = sa.Enum(
    "pending",
    "confirmed",
    "in_progress",
    "completed",
    "cancelled",
    "no_show",
    "payment_failed",
    "declined",
    name="booking_status_enum",
    native_enum=False,
)
payment_status_enum = sa.Enum(
    "pending",
    "awaiting_payment",
    "paid",
    "payment_failed",
    "refunded",
    name="payment_status_enum",
    native_enum=False,
)
reschedule_status_enum = sa.Enum("pending", "approved", "rejected", name="reschedule_status_enum", native_enum=False)
reservation_status_enum = sa.Enum("active", "released", name="reservation_status_enum", native_enum=False)
outbox_status_enum = sa.Enum("pending", "processed", "failed", name="outbox_status_enum", native_enum=False)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        "services",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("name", name="uq_services_name"),
    )
    op.create_index("ix_services_category", "services", ["category"], unique=False)
    op.create_index("ix_services_is_active", "services", ["is_active"], unique=False)

    op.create_table(
        "time_slots",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("booked_count", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.UniqueConstraint("slot_date", "start_time", name="uq_time_slots_date_start"),
        sa.CheckConstraint("end_time > start_time", name="ck_time_slots_window_order"),
        sa.CheckConstraint("capacity >= 0", name="ck_time_slots_capacity_non_negative"),
        sa.CheckConstraint(
            "booked_count >= 0 AND booked_count <= capacity",
            name="ck_time_slots_booked_within_capacity",
        ),
    )
    op.create_index("ix_time_slots_slot_date", "time_slots", ["slot_date"], unique=False)

    op.create_table(
        "slot_reservations",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", reservation_status_enum, nullable=False),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_slot_reservations_slot_date", "slot_reservations", ["slot_date"], unique=False)
    op.create_index("ix_slot_reservations_status", "slot_reservations", ["status"], unique=False)

    op.create_table(
        "slot_reservation_units",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("reservation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("time_slot_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["reservation_id"],
            ["slot_reservations.id"],
            name="fk_slot_reservation_units_reservation_id_slot_reservations",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["time_slot_id"],
            ["time_slots.id"],
            name="fk_slot_reservation_units_time_slot_id_time_slots",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint("reservation_id", "time_slot_id", name="uq_slot_reservation_units_pair"),
    )
    op.create_index(
        "ix_slot_reservation_units_reservation_id",
        "slot_reservation_units",
        ["reservation_id"],
        unique=False,
    )
    op.create_index(
        "ix_slot_reservation_units_time_slot_id",
        "slot_reservation_units",
        ["time_slot_id"],
        unique=False,
    )

    op.create_table(
        "bookings",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("reference", sa.String(length=16), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("customer_email", sa.String(length=320), nullable=False),
        sa.Column("customer_phone", sa.String(length=32), nullable=False),
        sa.Column("vehicle", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("vehicle_size", vehicle_size_enum, nullable=False),
        sa.Column("address", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("services", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_start_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("reservation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("payment_status", payment_status_enum, nullable=False),
        sa.Column("service_subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("size_multiplier", sa.Numeric(4, 2), nullable=False),
        sa.Column("size_adjusted_subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("distance_miles", sa.Numeric(7, 2), nullable=False),
        sa.Column("travel_surcharge", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("payment_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=512), nullable=True),
        sa.Column("active_reschedule_request_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["reservation_id"],
            ["slot_reservations.id"],
            name="fk_bookings_reservation_id_slot_reservations",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint("reference", name="uq_bookings_reference"),
        sa.UniqueConstraint("active_reschedule_request_id", name="uq_bookings_active_reschedule_request_id"),
    )
    op.create_index("ix_bookings_reference", "bookings", ["reference"], unique=False)
    op.create_index("ix_bookings_customer_email", "bookings", ["customer_email"], unique=False)
    op.create_index("ix_bookings_scheduled_date", "bookings", ["scheduled_date"], unique=False)
    op.create_index("ix_bookings_reservation_id", "bookings", ["reservation_id"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)
    op.create_index("ix_bookings_payment_status", "bookings", ["payment_status"], unique=False)
    op.create_index("ix_bookings_payment_deadline", "bookings", ["payment_deadline"], unique=False)

    op.create_table(
        "reschedule_requests",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("requested_date", sa.Date(), nullable=False),
        sa.Column("requested_time", sa.Time(), nullable=False),
        sa.Column("original_date", sa.Date(), nullable=False),
        sa.Column("original_time", sa.Time(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", reschedule_status_enum, nullable=False),
        sa.Column("admin_response", sa.Text(), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["booking_id"],
            ["bookings.id"],
            name="fk_reschedule_requests_booking_id_bookings",
            ondelete="RESTRICT",
        ),
    )
    op.create_index("ix_reschedule_requests_booking_id", "reschedule_requests", ["booking_id"], unique=False)
    op.create_index("ix_reschedule_requests_status", "reschedule_requests", ["status"], unique=False)
    op.create_index(
        "uq_reschedule_requests_pending_booking",
        "reschedule_requests",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_foreign_key(
        "fk_bookings_active_reschedule_request_id_reschedule_requests",
        "bookings",
        "reschedule_requests",
        ["active_reschedule_request_id"],
        ["id"],
        ondelete="SET NULL",
    )

    op.create_table(
        "audit_logs",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=128), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=True),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"], unique=False)

    op.create_table(
        "outbox_events",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("aggregate_type", sa.String(length=128), nullable=False),
        sa.Column("aggregate_id", sa.String(length=128), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", outbox_status_enum, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_outbox_events_aggregate_type", "outbox_events", ["aggregate_type"], unique=False)
    op.create_index("ix_outbox_events_aggregate_id", "outbox_events", ["aggregate_id"], unique=False)
    op.create_index("ix_outbox_events_event_type", "outbox_events", ["event_type"], unique=False)
    op.create_index("ix_outbox_events_status", "outbox_events", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_outbox_events_status", table_name="outbox_events")
    op.drop_index("ix_outbox_events_event_type", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_id", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_type", table_name="outbox_events")
    op.drop_table("outbox_events")

    op.drop_index("ix_audit_logs_entity_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_constraint(
        "fk_bookings_active_reschedule_request_id_reschedule_requests",
        "bookings",
        type_="foreignkey",
    )
    op.drop_index("uq_reschedule_requests_pending_booking", table_name="reschedule_requests")
    op.drop_index("ix_reschedule_requests_status", table_name="reschedule_requests")
    op.drop_index("ix_reschedule_requests_booking_id", table_name="reschedule_requests")
    op.drop_table("reschedule_requests")

    op.drop_index("ix_bookings_payment_deadline", table_name="bookings")
    op.drop_index("ix_bookings_payment_status", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_reservation_id", table_name="bookings")
    op.drop_index("ix_bookings_scheduled_date", table_name="bookings")
    op.drop_index("ix_bookings_customer_email", table_name="bookings")
    op.drop_index("ix_bookings_reference", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_slot_reservation_units_time_slot_id", table_name="slot_reservation_units")
    op.drop_index("ix_slot_reservation_units_reservation_id", table_name="slot_reservation_units")
    op.drop_table("slot_reservation_units")

    op.drop_index("ix_slot_reservations_status", table_name="slot_reservations")
    op.drop_index("ix_slot_reservations_slot_date", table_name="slot_reservations")
    op.drop_table("slot_reservations")

    op.drop_index("ix_time_slots_slot_date", table_name="time_slots")
    op.drop_table("time_slots")

    op.drop_index("ix_services_is_active", table_name="services")
    op.drop_index("ix_services_category", table_name="services")
    op.drop_table("services")
