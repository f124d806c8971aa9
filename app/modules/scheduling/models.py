"""Scheduling ORM models."""

from __future__ import annotations

from datetime import date, datetime, time
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, Time, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, BaseModelMixin
from app.core.enums import ReservationStatusEnum


class TimeSlot(BaseModelMixin, Base):
    """Bookable slot unit with capacity for one business day."""

    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint("slot_date", "start_time", name="uq_time_slots_date_start"),
        CheckConstraint("end_time > start_time", name="window_order"),
        CheckConstraint("capacity >= 0", name="capacity_non_negative"),
        CheckConstraint("booked_count >= 0 AND booked_count <= capacity", name="booked_within_capacity"),
    )

    slot_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    booked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.booked_count, 0)


class SlotReservation(BaseModelMixin, Base):
    """Capacity held by one booking across contiguous slot units."""

    __tablename__ = "slot_reservations"

    slot_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ReservationStatusEnum] = mapped_column(
        SAEnum(ReservationStatusEnum, name="reservation_status_enum", native_enum=False),
        default=ReservationStatusEnum.ACTIVE,
        nullable=False,
        index=True,
    )
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    units: Mapped[list[SlotReservationUnit]] = relationship(
        back_populates="reservation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def slot_ids(self) -> list[UUID]:
        return [unit.time_slot_id for unit in self.units]


class SlotReservationUnit(BaseModelMixin, Base):
    """Link between a reservation and one spanned slot unit."""

    __tablename__ = "slot_reservation_units"
    __table_args__ = (
        UniqueConstraint("reservation_id", "time_slot_id", name="uq_slot_reservation_units_pair"),
    )

    reservation_id: Mapped[UUID] = mapped_column(
        ForeignKey("slot_reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    time_slot_id: Mapped[UUID] = mapped_column(
        ForeignKey("time_slots.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    reservation: Mapped[SlotReservation] = relationship(back_populates="units")
