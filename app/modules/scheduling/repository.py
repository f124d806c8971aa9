"""Scheduling repository layer."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time
from uuid import UUID

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import ReservationStatusEnum
from app.modules.scheduling.models import SlotReservation, SlotReservationUnit, TimeSlot


class _StaleSlotUnit(Exception):
    """Internal signal that rolls back a partial compare-and-increment."""


class SchedulingRepository:
    """DB access for slot units and capacity reservations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_slot(
        self,
        slot_date: date,
        start_time: time,
        end_time: time,
        capacity: int,
    ) -> TimeSlot:
        slot = TimeSlot(
            slot_date=slot_date,
            start_time=start_time,
            end_time=end_time,
            capacity=capacity,
            booked_count=0,
            version=0,
        )
        self.session.add(slot)
        await self.session.flush()
        return slot

    def savepoint(self):
        """Nested transaction; leaving it with an exception undoes its writes."""
        return self.session.begin_nested()

    async def get_slot_by_id(self, slot_id: UUID) -> TimeSlot | None:
        stmt = select(TimeSlot).where(TimeSlot.id == slot_id)
        return await self.session.scalar(stmt)

    async def list_slots_for_date(self, slot_date: date, for_update: bool = False) -> list[TimeSlot]:
        """Return fresh slot rows for one day.

        Locked reads order by id so concurrent lockers acquire rows in the
        same order as the compare-and-increment statements.
        """
        stmt = select(TimeSlot).where(TimeSlot.slot_date == slot_date)
        if for_update:
            stmt = stmt.order_by(TimeSlot.id.asc()).with_for_update()
        else:
            stmt = stmt.order_by(TimeSlot.start_time.asc())
        stmt = stmt.execution_options(populate_existing=True)
        return list((await self.session.scalars(stmt)).all())

    async def list_slots(
        self,
        date_from: date | None,
        date_to: date | None,
        limit: int,
        offset: int,
    ) -> tuple[list[TimeSlot], int]:
        base_stmt: Select[tuple[TimeSlot]] = select(TimeSlot)
        if date_from is not None:
            base_stmt = base_stmt.where(TimeSlot.slot_date >= date_from)
        if date_to is not None:
            base_stmt = base_stmt.where(TimeSlot.slot_date <= date_to)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = (
            base_stmt.order_by(TimeSlot.slot_date.asc(), TimeSlot.start_time.asc())
            .limit(limit)
            .offset(offset)
        )
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def try_increment_units(self, expected_versions: Mapping[UUID, int]) -> bool:
        """Increment every unit whose version still matches, or none of them.

        Runs inside a savepoint; a single stale or full unit rolls back the
        increments already applied in this call.
        """
        try:
            async with self.session.begin_nested():
                for slot_id in sorted(expected_versions):
                    stmt = (
                        update(TimeSlot)
                        .where(
                            TimeSlot.id == slot_id,
                            TimeSlot.version == expected_versions[slot_id],
                            TimeSlot.booked_count < TimeSlot.capacity,
                        )
                        .values(
                            booked_count=TimeSlot.booked_count + 1,
                            version=TimeSlot.version + 1,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    result = await self.session.execute(stmt)
                    if result.rowcount != 1:
                        raise _StaleSlotUnit()
        except _StaleSlotUnit:
            return False
        return True

    async def decrement_units(self, slot_ids: Iterable[UUID]) -> None:
        for slot_id in sorted(slot_ids):
            stmt = (
                update(TimeSlot)
                .where(TimeSlot.id == slot_id, TimeSlot.booked_count > 0)
                .values(
                    booked_count=TimeSlot.booked_count - 1,
                    version=TimeSlot.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            await self.session.execute(stmt)

    async def update_capacity(self, slot_id: UUID, capacity: int) -> bool:
        """Set capacity unless it would drop below the booked count."""
        stmt = (
            update(TimeSlot)
            .where(TimeSlot.id == slot_id, TimeSlot.booked_count <= capacity)
            .values(capacity=capacity, version=TimeSlot.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def create_reservation(
        self,
        slot_date: date,
        start_time: time,
        duration_minutes: int,
        slot_ids: Iterable[UUID],
    ) -> SlotReservation:
        reservation = SlotReservation(
            slot_date=slot_date,
            start_time=start_time,
            duration_minutes=duration_minutes,
            status=ReservationStatusEnum.ACTIVE,
            units=[SlotReservationUnit(time_slot_id=slot_id) for slot_id in slot_ids],
        )
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def get_reservation_by_id(self, reservation_id: UUID) -> SlotReservation | None:
        stmt = select(SlotReservation).where(SlotReservation.id == reservation_id)
        return await self.session.scalar(stmt)

    async def mark_reservation_released(self, reservation_id: UUID, released_at: datetime) -> bool:
        """Flip an active reservation to released; False when already released."""
        stmt = (
            update(SlotReservation)
            .where(
                SlotReservation.id == reservation_id,
                SlotReservation.status == ReservationStatusEnum.ACTIVE,
            )
            .values(status=ReservationStatusEnum.RELEASED, released_at=released_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
