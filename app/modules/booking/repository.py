"""Booking repository layer."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import BookingStatusEnum, PaymentStatusEnum
from app.modules.booking.models import Booking


class BookingRepository:
    """DB operations for booking domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_booking(self, **fields) -> Booking:
        booking = Booking(**fields)
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_booking_by_id(self, booking_id: UUID, for_update: bool = False) -> Booking | None:
        stmt = select(Booking).where(Booking.id == booking_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.session.scalar(stmt)

    async def get_booking_by_reference(self, reference: str) -> Booking | None:
        stmt = select(Booking).where(Booking.reference == reference)
        return await self.session.scalar(stmt)

    async def list_bookings(
        self,
        status: BookingStatusEnum | None,
        scheduled_date: date | None,
        customer_email: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        base_stmt: Select[tuple[Booking]] = select(Booking)
        if status is not None:
            base_stmt = base_stmt.where(Booking.status == status)
        if scheduled_date is not None:
            base_stmt = base_stmt.where(Booking.scheduled_date == scheduled_date)
        if customer_email is not None:
            base_stmt = base_stmt.where(func.lower(Booking.customer_email) == customer_email.lower())

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Booking.created_at.desc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def find_overdue_payments(self, now: datetime) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.status.in_((BookingStatusEnum.PENDING, BookingStatusEnum.PAYMENT_FAILED)),
                Booking.payment_status != PaymentStatusEnum.PAID,
                Booking.payment_deadline <= now,
            )
            .order_by(Booking.payment_deadline.asc())
            .with_for_update(skip_locked=True)
        )
        return list((await self.session.scalars(stmt)).all())

    async def save(self, booking: Booking) -> Booking:
        await self.session.flush()
        return booking
