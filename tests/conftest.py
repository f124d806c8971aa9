from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from app.core.config import Settings
from app.core.enums import (
    BookingStatusEnum,
    PaymentStatusEnum,
    ReservationStatusEnum,
    RescheduleStatusEnum,
    VehicleSizeEnum,
)
from app.modules.booking.schemas import BookingCreate
from app.modules.booking.service import BookingService
from app.modules.pricing.engine import PricingPolicy
from app.modules.reschedule.service import RescheduleService
from app.modules.scheduling.availability import SlotAvailabilityManager
from app.modules.scheduling.service import SchedulingService
from app.shared.utils import add_minutes


@dataclass
class FakeTimeSlot:
    id: UUID
    slot_date: date
    start_time: time
    end_time: time
    capacity: int
    booked_count: int = 0
    version: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.booked_count, 0)


@dataclass
class FakeReservation:
    id: UUID
    slot_date: date
    start_time: time
    duration_minutes: int
    slot_ids: list[UUID]
    status: ReservationStatusEnum = ReservationStatusEnum.ACTIVE
    released_at: datetime | None = None


@dataclass
class FakeService:
    id: UUID
    name: str
    base_price: Decimal
    duration_minutes: int
    category: str = "valet"
    description: str | None = None
    is_active: bool = True


@dataclass
class FakeBooking:
    id: UUID
    reference: str
    status: BookingStatusEnum
    payment_status: PaymentStatusEnum
    scheduled_date: date
    scheduled_start_time: time
    duration_minutes: int
    reservation_id: UUID
    payment_deadline: datetime
    total_price: Decimal = Decimal("25.00")
    customer_name: str = "Jane Doe"
    customer_email: str = "jane@example.com"
    customer_phone: str = "07700900123"
    vehicle: dict = field(default_factory=dict)
    vehicle_size: VehicleSizeEnum = VehicleSizeEnum.M
    address: dict = field(default_factory=dict)
    services: list[dict] = field(default_factory=list)
    service_subtotal: Decimal = Decimal("25.00")
    size_multiplier: Decimal = Decimal("1.00")
    size_adjusted_subtotal: Decimal = Decimal("25.00")
    distance_miles: Decimal = Decimal("5")
    travel_surcharge: Decimal = Decimal("0.00")
    currency: str = "GBP"
    special_instructions: str | None = None
    admin_notes: str | None = None
    confirmed_at: datetime | None = None
    paid_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    active_reschedule_request_id: UUID | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def has_pending_reschedule(self) -> bool:
        return self.active_reschedule_request_id is not None


@dataclass
class FakeRescheduleRequest:
    id: UUID
    booking_id: UUID
    requested_date: date
    requested_time: time
    original_date: date
    original_time: time
    reason: str | None
    status: RescheduleStatusEnum = RescheduleStatusEnum.PENDING
    admin_response: str | None = None
    responded_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class FakeSchedulingRepository:
    """In-memory slot store with the same compare-and-increment contract.

    Unlocked reads yield to the event loop after taking their snapshot, so
    concurrent reservers really do race on stale versions. Locked reads do not
    yield, which stands in for the row lock held until the increment.
    """

    def __init__(self) -> None:
        self.slots: dict[UUID, FakeTimeSlot] = {}
        self.reservations: dict[UUID, FakeReservation] = {}
        self.increment_attempts = 0
        self.locked_days: list[date] = []

    async def create_slot(self, slot_date: date, start_time: time, end_time: time, capacity: int) -> FakeTimeSlot:
        slot = FakeTimeSlot(
            id=uuid4(),
            slot_date=slot_date,
            start_time=start_time,
            end_time=end_time,
            capacity=capacity,
        )
        self.slots[slot.id] = slot
        return slot

    def add_day(
        self,
        slot_date: date,
        first_start: time = time(hour=9),
        units: int = 8,
        unit_minutes: int = 60,
        capacity: int = 1,
    ) -> list[FakeTimeSlot]:
        created: list[FakeTimeSlot] = []
        start = first_start
        for _ in range(units):
            end = add_minutes(start, unit_minutes)
            slot = FakeTimeSlot(
                id=uuid4(),
                slot_date=slot_date,
                start_time=start,
                end_time=end,
                capacity=capacity,
            )
            self.slots[slot.id] = slot
            created.append(slot)
            start = end
        return created

    def slot_at(self, slot_date: date, start_time: time) -> FakeTimeSlot:
        return next(
            slot
            for slot in self.slots.values()
            if slot.slot_date == slot_date and slot.start_time == start_time
        )

    @asynccontextmanager
    async def savepoint(self):
        saved_slots = {slot_id: replace(slot) for slot_id, slot in self.slots.items()}
        saved_reservations = {res_id: replace(res) for res_id, res in self.reservations.items()}
        try:
            yield
        except Exception:
            for slot_id, saved in saved_slots.items():
                slot = self.slots[slot_id]
                slot.booked_count = saved.booked_count
                slot.version = saved.version
                slot.capacity = saved.capacity
            for res_id in set(self.reservations) - set(saved_reservations):
                del self.reservations[res_id]
            for res_id, saved in saved_reservations.items():
                reservation = self.reservations[res_id]
                reservation.status = saved.status
                reservation.released_at = saved.released_at
            raise

    async def list_slots_for_date(self, slot_date: date, for_update: bool = False) -> list[FakeTimeSlot]:
        snapshot = sorted(
            (replace(slot) for slot in self.slots.values() if slot.slot_date == slot_date),
            key=lambda slot: slot.start_time,
        )
        if for_update:
            self.locked_days.append(slot_date)
        else:
            await asyncio.sleep(0)
        return snapshot

    async def list_slots(
        self,
        date_from: date | None,
        date_to: date | None,
        limit: int,
        offset: int,
    ) -> tuple[list[FakeTimeSlot], int]:
        items = sorted(
            (
                slot
                for slot in self.slots.values()
                if (date_from is None or slot.slot_date >= date_from)
                and (date_to is None or slot.slot_date <= date_to)
            ),
            key=lambda slot: (slot.slot_date, slot.start_time),
        )
        return items[offset : offset + limit], len(items)

    async def try_increment_units(self, expected_versions: dict[UUID, int]) -> bool:
        self.increment_attempts += 1
        for slot_id, version in expected_versions.items():
            slot = self.slots[slot_id]
            if slot.version != version or slot.booked_count >= slot.capacity:
                return False
        for slot_id in expected_versions:
            slot = self.slots[slot_id]
            slot.booked_count += 1
            slot.version += 1
        return True

    async def decrement_units(self, slot_ids: list[UUID]) -> None:
        for slot_id in slot_ids:
            slot = self.slots[slot_id]
            if slot.booked_count > 0:
                slot.booked_count -= 1
                slot.version += 1

    async def update_capacity(self, slot_id: UUID, capacity: int) -> bool:
        slot = self.slots[slot_id]
        if slot.booked_count > capacity:
            return False
        slot.capacity = capacity
        slot.version += 1
        return True

    async def create_reservation(
        self,
        slot_date: date,
        start_time: time,
        duration_minutes: int,
        slot_ids: list[UUID],
    ) -> FakeReservation:
        reservation = FakeReservation(
            id=uuid4(),
            slot_date=slot_date,
            start_time=start_time,
            duration_minutes=duration_minutes,
            slot_ids=list(slot_ids),
        )
        self.reservations[reservation.id] = reservation
        return reservation

    async def get_reservation_by_id(self, reservation_id: UUID) -> FakeReservation | None:
        return self.reservations.get(reservation_id)

    async def mark_reservation_released(self, reservation_id: UUID, released_at: datetime) -> bool:
        reservation = self.reservations[reservation_id]
        if reservation.status != ReservationStatusEnum.ACTIVE:
            return False
        reservation.status = ReservationStatusEnum.RELEASED
        reservation.released_at = released_at
        return True


class FakeCatalogRepository:
    def __init__(self) -> None:
        self.services: dict[UUID, FakeService] = {}

    def add_service(
        self,
        name: str,
        base_price: str,
        duration_minutes: int,
        is_active: bool = True,
    ) -> FakeService:
        service = FakeService(
            id=uuid4(),
            name=name,
            base_price=Decimal(base_price),
            duration_minutes=duration_minutes,
            is_active=is_active,
        )
        self.services[service.id] = service
        return service

    async def get_services_by_ids(self, service_ids) -> list[FakeService]:
        return [self.services[service_id] for service_id in set(service_ids) if service_id in self.services]


class FakeBookingRepository:
    def __init__(self) -> None:
        self.bookings: dict[UUID, FakeBooking] = {}

    async def create_booking(self, **fields) -> FakeBooking:
        booking = FakeBooking(id=uuid4(), **fields)
        self.bookings[booking.id] = booking
        return booking

    async def get_booking_by_id(self, booking_id: UUID, for_update: bool = False) -> FakeBooking | None:
        return self.bookings.get(booking_id)

    async def get_booking_by_reference(self, reference: str) -> FakeBooking | None:
        return next((b for b in self.bookings.values() if b.reference == reference), None)

    async def find_overdue_payments(self, now: datetime) -> list[FakeBooking]:
        return [
            booking
            for booking in self.bookings.values()
            if booking.status in (BookingStatusEnum.PENDING, BookingStatusEnum.PAYMENT_FAILED)
            and booking.payment_status != PaymentStatusEnum.PAID
            and booking.payment_deadline <= now
        ]

    async def save(self, booking: FakeBooking) -> FakeBooking:
        self.bookings[booking.id] = booking
        return booking


class FakeRescheduleRepository:
    def __init__(self) -> None:
        self.requests: dict[UUID, FakeRescheduleRequest] = {}

    async def create_request(self, **fields) -> FakeRescheduleRequest:
        request = FakeRescheduleRequest(id=uuid4(), **fields)
        self.requests[request.id] = request
        return request

    async def get_request_by_id(self, request_id: UUID, for_update: bool = False) -> FakeRescheduleRequest | None:
        return self.requests.get(request_id)

    async def save(self, request: FakeRescheduleRequest) -> FakeRescheduleRequest:
        self.requests[request.id] = request
        return request


class FakeAuditRepository:
    def __init__(self) -> None:
        self.logs: list[dict] = []
        self.events: list[dict] = []

    async def create_audit_log(
        self,
        actor: str | None,
        action: str,
        entity_type: str,
        entity_id: str | None,
        payload: dict,
    ) -> None:
        self.logs.append(
            {
                "actor": actor,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "payload": payload,
            },
        )

    async def create_outbox_event(
        self,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict,
    ) -> None:
        self.events.append(
            {
                "aggregate_type": aggregate_type,
                "aggregate_id": aggregate_id,
                "event_type": event_type,
                "payload": payload,
            },
        )

    def event_types(self) -> list[str]:
        return [event["event_type"] for event in self.events]


@dataclass
class CoreHarness:
    scheduling: FakeSchedulingRepository
    catalog: FakeCatalogRepository
    bookings: FakeBookingRepository
    reschedules: FakeRescheduleRepository
    audit: FakeAuditRepository
    policy: PricingPolicy
    slot_manager: SlotAvailabilityManager
    booking_service: BookingService
    reschedule_service: RescheduleService
    scheduling_service: SchedulingService


@pytest.fixture
def pricing_policy() -> PricingPolicy:
    return PricingPolicy.from_settings(Settings(_env_file=None))


@pytest.fixture
def business_day() -> date:
    return datetime.now(UTC).date() + timedelta(days=7)


@pytest.fixture
def harness(pricing_policy: PricingPolicy) -> CoreHarness:
    scheduling = FakeSchedulingRepository()
    catalog = FakeCatalogRepository()
    bookings = FakeBookingRepository()
    reschedules = FakeRescheduleRepository()
    audit = FakeAuditRepository()
    slot_manager = SlotAvailabilityManager(scheduling, max_retries=3, min_notice_minutes=30)
    return CoreHarness(
        scheduling=scheduling,
        catalog=catalog,
        bookings=bookings,
        reschedules=reschedules,
        audit=audit,
        policy=pricing_policy,
        slot_manager=slot_manager,
        booking_service=BookingService(
            booking_repository=bookings,
            catalog_repository=catalog,
            reschedule_repository=reschedules,
            slot_manager=slot_manager,
            audit_repository=audit,
            policy=pricing_policy,
        ),
        reschedule_service=RescheduleService(
            reschedule_repository=reschedules,
            booking_repository=bookings,
            slot_manager=slot_manager,
            audit_repository=audit,
        ),
        scheduling_service=SchedulingService(scheduling, audit),
    )


@pytest.fixture
def make_booking_payload():
    def _make(
        service_ids: list[UUID],
        slot_date: date,
        start_time: time,
        *,
        size: VehicleSizeEnum = VehicleSizeEnum.M,
        distance_miles: str = "5",
    ) -> BookingCreate:
        return BookingCreate(
            customer={"name": "Jane Doe", "email": "jane@example.com", "phone": "07700900123"},
            vehicle={
                "make": "Ford",
                "model": "Focus",
                "year": 2019,
                "registration": "ab19 cde",
                "size": size,
            },
            address={
                "line1": "1 High Street",
                "city": "London",
                "postcode": "sw9 8aa",
                "distance_miles": distance_miles,
            },
            services=[{"service_id": service_id, "quantity": 1} for service_id in service_ids],
            scheduled_date=slot_date,
            start_time=start_time,
        )

    return _make
