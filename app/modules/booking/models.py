"""Booking ORM models."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Time
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import BookingStatusEnum, PaymentStatusEnum, VehicleSizeEnum


class Booking(BaseModelMixin, Base):
    """Customer detailing booking."""

    __tablename__ = "bookings"

    reference: Mapped[str] = mapped_column(String(16), nullable=False, unique=True, index=True)

    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    customer_phone: Mapped[str] = mapped_column(String(32), nullable=False)

    vehicle: Mapped[dict] = mapped_column(JSONB, nullable=False)
    vehicle_size: Mapped[VehicleSizeEnum] = mapped_column(
        SAEnum(VehicleSizeEnum, name="vehicle_size_enum", native_enum=False),
        nullable=False,
    )
    address: Mapped[dict] = mapped_column(JSONB, nullable=False)
    services: Mapped[list[dict]] = mapped_column(JSONB, nullable=False)

    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    scheduled_start_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    reservation_id: Mapped[UUID] = mapped_column(
        ForeignKey("slot_reservations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    status: Mapped[BookingStatusEnum] = mapped_column(
        SAEnum(BookingStatusEnum, name="booking_status_enum", native_enum=False),
        default=BookingStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    payment_status: Mapped[PaymentStatusEnum] = mapped_column(
        SAEnum(PaymentStatusEnum, name="payment_status_enum", native_enum=False),
        default=PaymentStatusEnum.PENDING,
        nullable=False,
        index=True,
    )

    service_subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    size_multiplier: Mapped[Decimal] = mapped_column(Numeric(4, 2), nullable=False)
    size_adjusted_subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    distance_miles: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False)
    travel_surcharge: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GBP")

    special_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment_deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)

    active_reschedule_request_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("reschedule_requests.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
        unique=True,
    )

    @property
    def has_pending_reschedule(self) -> bool:
        return self.active_reschedule_request_id is not None
