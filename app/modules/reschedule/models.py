"""Reschedule request ORM models."""

from __future__ import annotations

from datetime import date, datetime, time
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, Text, Time, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import RescheduleStatusEnum


class RescheduleRequest(BaseModelMixin, Base):
    """Customer request to move a booking to another window."""

    __tablename__ = "reschedule_requests"
    __table_args__ = (
        Index(
            "uq_reschedule_requests_pending_booking",
            "booking_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
        ),
    )

    booking_id: Mapped[UUID] = mapped_column(
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    requested_date: Mapped[date] = mapped_column(Date, nullable=False)
    requested_time: Mapped[time] = mapped_column(Time, nullable=False)
    original_date: Mapped[date] = mapped_column(Date, nullable=False)
    original_time: Mapped[time] = mapped_column(Time, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[RescheduleStatusEnum] = mapped_column(
        SAEnum(RescheduleStatusEnum, name="reschedule_status_enum", native_enum=False),
        default=RescheduleStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    admin_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
