"""Slot configuration business logic layer."""

from __future__ import annotations

import logging
from datetime import date, time

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.modules.audit.repository import AuditRepository
from app.modules.scheduling.models import TimeSlot
from app.modules.scheduling.repository import SchedulingRepository
from app.modules.scheduling.schemas import DaySlotsCreate, SlotCreate
from app.shared.exceptions import ConflictException, NotFoundException, ValidationException
from app.shared.utils import add_minutes, local_start_at, minutes_of_day, utc_now

logger = logging.getLogger(__name__)


def _overlaps(slot: TimeSlot, start_time: time, end_time: time) -> bool:
    return slot.start_time < end_time and slot.end_time > start_time


class SchedulingService:
    """Capacity configuration for business days."""

    def __init__(
        self,
        repository: SchedulingRepository,
        audit_repository: AuditRepository,
        business_timezone: str = "Europe/London",
    ) -> None:
        self.repository = repository
        self.audit_repository = audit_repository
        self.business_timezone = business_timezone

    def _ensure_future(self, slot_date: date, start_time: time) -> None:
        if local_start_at(slot_date, start_time, self.business_timezone) <= utc_now():
            raise ValidationException("Time slots must start in the future")

    async def create_slot(self, payload: SlotCreate) -> TimeSlot:
        """Add one slot unit to a day."""
        self._ensure_future(payload.slot_date, payload.start_time)

        existing = await self.repository.list_slots_for_date(payload.slot_date)
        if any(_overlaps(slot, payload.start_time, payload.end_time) for slot in existing):
            raise ConflictException("Time slot overlaps an existing slot")

        slot = await self.repository.create_slot(
            payload.slot_date,
            payload.start_time,
            payload.end_time,
            payload.capacity,
        )
        await self._audit("scheduling.slot.create", [slot])
        return slot

    async def bulk_create_day(self, payload: DaySlotsCreate) -> list[TimeSlot]:
        """Split a working day into contiguous units of equal length."""
        self._ensure_future(payload.slot_date, payload.first_start)

        span = minutes_of_day(payload.last_end) - minutes_of_day(payload.first_start)
        if span % payload.unit_minutes != 0:
            raise ValidationException("Working day must divide evenly into slot units")

        existing = await self.repository.list_slots_for_date(payload.slot_date)
        if any(_overlaps(slot, payload.first_start, payload.last_end) for slot in existing):
            raise ConflictException("Day already has time slots in this window")

        created: list[TimeSlot] = []
        start = payload.first_start
        for _ in range(span // payload.unit_minutes):
            end = add_minutes(start, payload.unit_minutes)
            created.append(await self.repository.create_slot(payload.slot_date, start, end, payload.capacity))
            start = end

        await self._audit("scheduling.day.create", created)
        logger.info("Created %s slot units for %s", len(created), payload.slot_date)
        return created

    async def set_day_capacity(self, slot_date: date, capacity: int) -> list[TimeSlot]:
        """Change capacity for every unit of a day, never below its booked count."""
        slots = await self.repository.list_slots_for_date(slot_date, for_update=True)
        if not slots:
            raise NotFoundException(f"No time slots configured for {slot_date.isoformat()}")

        for slot in slots:
            if not await self.repository.update_capacity(slot.id, capacity):
                raise ConflictException(
                    f"Capacity {capacity} is below {slot.booked_count} existing bookings "
                    f"at {slot.start_time.isoformat(timespec='minutes')}",
                )

        refreshed = sorted(
            await self.repository.list_slots_for_date(slot_date),
            key=lambda slot: slot.start_time,
        )
        await self._audit("scheduling.day.capacity", refreshed)
        logger.info("Capacity for %s set to %s", slot_date, capacity)
        return refreshed

    async def list_slots(
        self,
        date_from: date | None,
        date_to: date | None,
        limit: int,
        offset: int,
    ) -> tuple[list[TimeSlot], int]:
        """List configured slot units."""
        if date_from is not None and date_to is not None and date_to < date_from:
            raise ValidationException("date_to must not be before date_from")
        return await self.repository.list_slots(date_from, date_to, limit, offset)

    async def _audit(self, action: str, slots: list[TimeSlot]) -> None:
        if not slots:
            return
        await self.audit_repository.create_audit_log(
            actor="admin",
            action=action,
            entity_type="time_slot",
            entity_id=str(slots[0].slot_date),
            payload={
                "slots": [
                    {
                        "id": str(slot.id),
                        "start_time": slot.start_time.isoformat(),
                        "end_time": slot.end_time.isoformat(),
                        "capacity": slot.capacity,
                    }
                    for slot in slots
                ],
            },
        )


async def get_scheduling_service(session: AsyncSession = Depends(get_db_session)) -> SchedulingService:
    """Dependency provider for scheduling service."""
    return SchedulingService(
        SchedulingRepository(session),
        AuditRepository(session),
        business_timezone=get_settings().business_timezone,
    )
