"""Slot availability manager.

Owns the capacity invariant ``0 <= booked_count <= capacity`` for every slot
unit. A booking window starts exactly at a unit's start time and spans the
contiguous units needed to cover its duration. Reservation increments every
spanned unit or none of them.

Reservation is optimistic: the units are read without locks and incremented
with a compare-and-increment on ``(id, version)``. A lost race re-reads and
retries; the final attempt reads with ``FOR UPDATE`` so losing every optimistic
race never turns into a refusal while capacity exists.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, time, timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.metrics import record_slot_reservation
from app.modules.scheduling.models import SlotReservation, TimeSlot
from app.modules.scheduling.repository import SchedulingRepository
from app.shared.exceptions import NotFoundException, SlotFullException, ValidationException
from app.shared.utils import add_minutes, local_start_at, minutes_of_day, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Availability:
    slot_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    remaining: int

    @property
    def available(self) -> bool:
        return self.remaining > 0


def find_span(slots: Sequence[TimeSlot], start_time: time, duration_minutes: int) -> list[TimeSlot] | None:
    """Return contiguous units covering the window, or None when not covered.

    Raises NotFoundException when no unit starts at ``start_time``.
    """
    by_start = {slot.start_time: slot for slot in slots}
    current = by_start.get(start_time)
    if current is None:
        raise NotFoundException(f"No time slot starts at {start_time.isoformat(timespec='minutes')}")

    window_end = minutes_of_day(start_time) + duration_minutes
    span = [current]
    while minutes_of_day(current.end_time) < window_end:
        current = by_start.get(current.end_time)
        if current is None:
            return None
        span.append(current)
    return span


def span_remaining(span: Sequence[TimeSlot]) -> int:
    return min(max(slot.capacity - slot.booked_count, 0) for slot in span)


class SlotAvailabilityManager:
    """Atomic check-and-reserve over slot units."""

    def __init__(
        self,
        repository: SchedulingRepository,
        max_retries: int = 3,
        business_timezone: str = "Europe/London",
        min_notice_minutes: int = 30,
    ) -> None:
        self.repository = repository
        self.max_retries = max_retries
        self.business_timezone = business_timezone
        self.min_notice_minutes = min_notice_minutes

    @staticmethod
    def _validate_duration(duration_minutes: int) -> None:
        if duration_minutes <= 0:
            raise ValidationException("Duration must be a positive number of minutes")

    def is_bookable_start(self, slot_date: date, start_time: time) -> bool:
        """Whether the window starts after the minimum notice period."""
        start_at = local_start_at(slot_date, start_time, self.business_timezone)
        return start_at >= utc_now() + timedelta(minutes=self.min_notice_minutes)

    def ensure_bookable_start(self, slot_date: date, start_time: time) -> None:
        if not self.is_bookable_start(slot_date, start_time):
            raise ValidationException(
                f"Bookings must start at least {self.min_notice_minutes} minutes from now",
            )

    async def check_availability(self, slot_date: date, start_time: time, duration_minutes: int) -> Availability:
        """Read-only capacity check for one window."""
        self._validate_duration(duration_minutes)
        slots = await self.repository.list_slots_for_date(slot_date)
        try:
            span = find_span(slots, start_time, duration_minutes)
        except NotFoundException:
            span = None
        return Availability(
            slot_date=slot_date,
            start_time=start_time,
            end_time=add_minutes(start_time, duration_minutes) if span else start_time,
            duration_minutes=duration_minutes,
            remaining=span_remaining(span) if span else 0,
        )

    async def list_availability(self, slot_date: date, duration_minutes: int) -> list[Availability]:
        """Every bookable start time on the day where the duration fits."""
        self._validate_duration(duration_minutes)
        slots = await self.repository.list_slots_for_date(slot_date)

        result: list[Availability] = []
        for slot in slots:
            span = find_span(slots, slot.start_time, duration_minutes)
            if span is None:
                continue
            remaining = span_remaining(span)
            if remaining <= 0 or not self.is_bookable_start(slot_date, slot.start_time):
                continue
            result.append(
                Availability(
                    slot_date=slot_date,
                    start_time=slot.start_time,
                    end_time=add_minutes(slot.start_time, duration_minutes),
                    duration_minutes=duration_minutes,
                    remaining=remaining,
                ),
            )
        return result

    async def reserve(self, slot_date: date, start_time: time, duration_minutes: int) -> SlotReservation:
        """Reserve one unit of capacity on every spanned slot, or raise SlotFull."""
        self._validate_duration(duration_minutes)

        for attempt in range(1, self.max_retries + 1):
            locked = attempt == self.max_retries
            slots = await self.repository.list_slots_for_date(slot_date, for_update=locked)
            span = find_span(slots, start_time, duration_minutes)
            if span is None:
                record_slot_reservation("slot_full")
                raise SlotFullException("Requested window is not covered by configured time slots")
            if span_remaining(span) <= 0:
                record_slot_reservation("slot_full")
                logger.warning(
                    "Slot full: date=%s start=%s duration=%s",
                    slot_date,
                    start_time,
                    duration_minutes,
                )
                raise SlotFullException("Requested time slot is fully booked")

            if await self.repository.try_increment_units({slot.id: slot.version for slot in span}):
                reservation = await self.repository.create_reservation(
                    slot_date=slot_date,
                    start_time=start_time,
                    duration_minutes=duration_minutes,
                    slot_ids=[slot.id for slot in span],
                )
                record_slot_reservation("reserved")
                logger.info(
                    "Slot reservation %s created: date=%s start=%s units=%s",
                    reservation.id,
                    slot_date,
                    start_time,
                    len(span),
                )
                return reservation

            record_slot_reservation("conflict_retry")
            logger.warning(
                "Slot reservation conflict on %s %s, attempt %s/%s",
                slot_date,
                start_time,
                attempt,
                self.max_retries,
            )

        raise SlotFullException("Requested time slot is fully booked")

    async def release(self, reservation_id: UUID) -> bool:
        """Give back reserved capacity; False when it was already released."""
        reservation = await self.repository.get_reservation_by_id(reservation_id)
        if reservation is None:
            raise NotFoundException("Slot reservation not found")

        if not await self.repository.mark_reservation_released(reservation_id, utc_now()):
            logger.info("Slot reservation %s already released", reservation_id)
            return False

        await self.repository.decrement_units(reservation.slot_ids)
        logger.info("Slot reservation %s released", reservation_id)
        return True

    async def move(
        self,
        reservation_id: UUID,
        slot_date: date,
        start_time: time,
        duration_minutes: int,
    ) -> SlotReservation:
        """Swap a reservation onto another window, or leave it untouched.

        The days of both windows are locked in date order before anything
        changes, so two moves in opposite directions queue instead of
        deadlocking. The old units are released before the new window is
        reserved, which lets a booking shift into units it already holds.
        """
        self._validate_duration(duration_minutes)
        current = await self.repository.get_reservation_by_id(reservation_id)
        if current is None:
            raise NotFoundException("Slot reservation not found")

        for day in sorted({current.slot_date, slot_date}):
            await self.repository.list_slots_for_date(day, for_update=True)

        async with self.repository.savepoint():
            await self.release(reservation_id)
            reservation = await self.reserve(slot_date, start_time, duration_minutes)
        logger.info("Slot reservation %s moved to %s", reservation_id, reservation.id)
        return reservation


def build_slot_manager(session: AsyncSession) -> SlotAvailabilityManager:
    settings = get_settings()
    return SlotAvailabilityManager(
        SchedulingRepository(session),
        max_retries=settings.slot_reservation_max_retries,
        business_timezone=settings.business_timezone,
        min_notice_minutes=settings.booking_min_notice_minutes,
    )


async def get_slot_manager(session: AsyncSession = Depends(get_db_session)) -> SlotAvailabilityManager:
    """Dependency provider for the slot availability manager."""
    return build_slot_manager(session)
