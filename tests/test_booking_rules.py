from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

import app.modules.booking.service as booking_service_module
from app.core.enums import BookingStatusEnum, PaymentStatusEnum, RescheduleStatusEnum
from app.modules.booking.schemas import BookingCancelRequest, BookingStatusUpdate
from app.modules.booking.state_machine import ALLOWED_TRANSITIONS
from app.modules.reschedule.schemas import RescheduleRequestCreate
from app.shared.exceptions import (
    InvalidTransitionException,
    NotFoundException,
    SlotFullException,
    ValidationException,
)
from app.shared.utils import local_start_at


def _booked_counts(harness, slot_date: date) -> list[int]:
    return [
        slot.booked_count
        for slot in sorted(harness.scheduling.slots.values(), key=lambda slot: slot.start_time)
        if slot.slot_date == slot_date
    ]


async def _create_booking(harness, make_booking_payload, slot_date: date, start: time = time(hour=10)):
    service = harness.catalog.add_service("Full Valet", "25.00", 120)
    return await harness.booking_service.create_booking(
        make_booking_payload([service.id], slot_date, start),
    )


@pytest.mark.asyncio
async def test_happy_path_quote_booking_and_payment(harness, make_booking_payload, business_day: date) -> None:
    harness.scheduling.add_day(business_day, units=4)

    booking = await _create_booking(harness, make_booking_payload, business_day)

    assert booking.status == BookingStatusEnum.PENDING
    assert booking.payment_status == PaymentStatusEnum.PENDING
    assert booking.total_price == Decimal("25.00")
    assert booking.travel_surcharge == Decimal("0.00")
    assert booking.duration_minutes == 120
    assert booking.reference.startswith("LFD-")
    assert booking.services == [
        {
            "service_id": booking.services[0]["service_id"],
            "name": "Full Valet",
            "quantity": 1,
            "unit_price": "25.00",
            "duration_minutes": 120,
        },
    ]
    assert booking.vehicle["registration"] == "AB19CDE"
    assert _booked_counts(harness, business_day) == [0, 1, 1, 0]

    paid = await harness.booking_service.mark_as_paid(booking.id)

    assert paid.status == BookingStatusEnum.CONFIRMED
    assert paid.payment_status == PaymentStatusEnum.PAID
    assert paid.paid_at is not None
    assert _booked_counts(harness, business_day) == [0, 1, 1, 0]
    assert harness.audit.event_types() == ["booking.created", "booking.confirmed"]


@pytest.mark.asyncio
async def test_booking_price_matches_quote(harness, make_booking_payload, business_day: date) -> None:
    harness.scheduling.add_day(business_day, units=4, capacity=2)
    service = harness.catalog.add_service("Mini Valet", "19.99", 60)
    payload = make_booking_payload([service.id], business_day, time(hour=9), size="L", distance_miles="30")

    booking = await harness.booking_service.create_booking(payload)

    assert booking.size_multiplier == Decimal("1.30")
    assert booking.travel_surcharge == Decimal("6.25")
    assert booking.total_price == Decimal("32.24")


@pytest.mark.asyncio
async def test_concurrent_bookings_for_last_slot(harness, make_booking_payload, business_day: date) -> None:
    harness.scheduling.add_day(business_day, units=4, capacity=1)
    service = harness.catalog.add_service("Full Valet", "25.00", 120)
    payload = make_booking_payload([service.id], business_day, time(hour=10))

    results = await asyncio.gather(
        harness.booking_service.create_booking(payload),
        harness.booking_service.create_booking(payload),
        return_exceptions=True,
    )

    bookings = [item for item in results if not isinstance(item, Exception)]
    errors = [item for item in results if isinstance(item, Exception)]
    assert len(bookings) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], SlotFullException)
    assert len(harness.bookings.bookings) == 1
    assert len(harness.scheduling.reservations) == 1
    assert _booked_counts(harness, business_day) == [0, 1, 1, 0]


@pytest.mark.asyncio
async def test_rejected_create_leaves_no_state(harness, make_booking_payload, business_day: date) -> None:
    harness.scheduling.add_day(business_day, units=4, capacity=1)
    retired = harness.catalog.add_service("Old Wash", "10.00", 60, is_active=False)

    with pytest.raises(ValidationException):
        await harness.booking_service.create_booking(
            make_booking_payload([retired.id], business_day, time(hour=9)),
        )
    with pytest.raises(NotFoundException):
        await harness.booking_service.create_booking(
            make_booking_payload([uuid4()], business_day, time(hour=9)),
        )

    assert harness.bookings.bookings == {}
    assert harness.scheduling.reservations == {}
    assert _booked_counts(harness, business_day) == [0, 0, 0, 0]
    assert harness.audit.events == []


@pytest.mark.asyncio
async def test_create_respects_minimum_notice(harness, make_booking_payload) -> None:
    today = datetime.now(UTC).date() - timedelta(days=1)
    harness.scheduling.add_day(today, units=4)

    with pytest.raises(ValidationException):
        await _create_booking(harness, make_booking_payload, today)

    assert harness.scheduling.reservations == {}


def _illegal_pairs() -> list[tuple[BookingStatusEnum, BookingStatusEnum]]:
    pairs = []
    for current in BookingStatusEnum:
        for target in BookingStatusEnum:
            if target in ALLOWED_TRANSITIONS[current]:
                continue
            if current == target == BookingStatusEnum.CANCELLED:
                continue
            pairs.append((current, target))
    return pairs


@pytest.mark.asyncio
@pytest.mark.parametrize(("current", "target"), _illegal_pairs())
async def test_unlisted_transitions_are_refused(
    harness,
    make_booking_payload,
    business_day: date,
    current: BookingStatusEnum,
    target: BookingStatusEnum,
) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking = await _create_booking(harness, make_booking_payload, business_day)
    booking.status = current
    before = replace(booking)
    counts_before = _booked_counts(harness, business_day)
    events_before = len(harness.audit.events)

    with pytest.raises(InvalidTransitionException):
        await harness.booking_service.update_status(
            booking.id,
            BookingStatusUpdate(status=target, reason="operator error", admin_notes="should not stick"),
        )

    assert harness.bookings.bookings[booking.id] == before
    assert _booked_counts(harness, business_day) == counts_before
    assert len(harness.audit.events) == events_before


@pytest.mark.asyncio
async def test_full_service_lifecycle_keeps_occupancy_on_completion(
    harness,
    make_booking_payload,
    business_day: date,
) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking = await _create_booking(harness, make_booking_payload, business_day)
    service = harness.booking_service

    await service.mark_as_paid(booking.id)
    await service.update_status(booking.id, BookingStatusUpdate(status=BookingStatusEnum.IN_PROGRESS))
    done = await service.update_status(
        booking.id,
        BookingStatusUpdate(status=BookingStatusEnum.COMPLETED, admin_notes="Ceramic top-up done"),
    )

    assert done.status == BookingStatusEnum.COMPLETED
    assert done.total_price == Decimal("25.00")
    assert done.admin_notes == "Ceramic top-up done"
    assert done.started_at is not None and done.completed_at is not None
    assert _booked_counts(harness, business_day) == [0, 1, 1, 0]
    history = [log["payload"]["to_status"] for log in harness.audit.logs if log["action"] == "booking.status.update"]
    assert history == ["confirmed", "in_progress", "completed"]


@pytest.mark.asyncio
async def test_payment_failure_keeps_reservation_until_retry(
    harness,
    make_booking_payload,
    business_day: date,
) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking = await _create_booking(harness, make_booking_payload, business_day)

    failed = await harness.booking_service.update_status(
        booking.id,
        BookingStatusUpdate(status=BookingStatusEnum.PAYMENT_FAILED),
    )
    assert failed.payment_status == PaymentStatusEnum.PAYMENT_FAILED
    assert _booked_counts(harness, business_day) == [0, 1, 1, 0]

    awaiting = await harness.booking_service.request_payment(booking.id)
    assert awaiting.status == BookingStatusEnum.PAYMENT_FAILED
    assert awaiting.payment_status == PaymentStatusEnum.AWAITING_PAYMENT

    confirmed = await harness.booking_service.mark_as_paid(booking.id)
    assert confirmed.status == BookingStatusEnum.CONFIRMED
    assert confirmed.payment_status == PaymentStatusEnum.PAID
    assert "booking.payment.requested" in harness.audit.event_types()


@pytest.mark.asyncio
async def test_request_payment_refused_once_paid(harness, make_booking_payload, business_day: date) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking = await _create_booking(harness, make_booking_payload, business_day)
    await harness.booking_service.mark_as_paid(booking.id)

    with pytest.raises(InvalidTransitionException):
        await harness.booking_service.request_payment(booking.id)


@pytest.mark.asyncio
async def test_cancellation_is_idempotent_and_releases_once(
    harness,
    make_booking_payload,
    business_day: date,
) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking = await _create_booking(harness, make_booking_payload, business_day)

    first = await harness.booking_service.cancel_booking(booking.id, BookingCancelRequest(reason="Changed plans"))
    first_state = replace(first)
    second = await harness.booking_service.cancel_booking(booking.id, BookingCancelRequest())

    assert second.status == BookingStatusEnum.CANCELLED
    assert second == first_state
    assert _booked_counts(harness, business_day) == [0, 0, 0, 0]
    assert harness.audit.event_types().count("booking.cancelled") == 1

    # capacity freed by the first cancel is not freed again by another booking's cancel
    other = await _create_booking(harness, make_booking_payload, business_day)
    await harness.booking_service.cancel_booking(booking.id, BookingCancelRequest())
    assert _booked_counts(harness, business_day) == [0, 1, 1, 0]
    assert other.status == BookingStatusEnum.PENDING


@pytest.mark.asyncio
async def test_operational_cancellation_requires_reason_and_refunds(
    harness,
    make_booking_payload,
    business_day: date,
) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking = await _create_booking(harness, make_booking_payload, business_day)
    await harness.booking_service.mark_as_paid(booking.id)

    with pytest.raises(ValidationException):
        await harness.booking_service.cancel_booking(booking.id, BookingCancelRequest(reason="   "))
    assert harness.bookings.bookings[booking.id].status == BookingStatusEnum.CONFIRMED
    assert _booked_counts(harness, business_day) == [0, 1, 1, 0]

    cancelled = await harness.booking_service.cancel_booking(
        booking.id,
        BookingCancelRequest(reason="Customer unwell", refund=True),
    )
    assert cancelled.status == BookingStatusEnum.CANCELLED
    assert cancelled.payment_status == PaymentStatusEnum.REFUNDED
    assert cancelled.cancellation_reason == "Customer unwell"
    assert _booked_counts(harness, business_day) == [0, 0, 0, 0]


@pytest.mark.asyncio
async def test_no_show_and_decline_release_capacity(harness, make_booking_payload, business_day: date) -> None:
    harness.scheduling.add_day(business_day, units=4, capacity=2)
    service = harness.booking_service
    first = await _create_booking(harness, make_booking_payload, business_day)
    second = await _create_booking(harness, make_booking_payload, business_day)
    assert _booked_counts(harness, business_day) == [0, 2, 2, 0]

    await service.update_status(first.id, BookingStatusUpdate(status=BookingStatusEnum.DECLINED))
    await service.mark_as_paid(second.id)
    await service.update_status(second.id, BookingStatusUpdate(status=BookingStatusEnum.IN_PROGRESS))
    await service.update_status(second.id, BookingStatusUpdate(status=BookingStatusEnum.NO_SHOW))

    assert _booked_counts(harness, business_day) == [0, 0, 0, 0]


@pytest.mark.asyncio
async def test_payment_after_deadline_is_refused_and_sweep_cancels(
    harness,
    make_booking_payload,
    business_day: date,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking = await _create_booking(harness, make_booking_payload, business_day)
    late = booking.payment_deadline + timedelta(minutes=1)
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: late)

    with pytest.raises(InvalidTransitionException):
        await harness.booking_service.mark_as_paid(booking.id)
    assert booking.status == BookingStatusEnum.PENDING

    expired = await harness.booking_service.expire_overdue_payments()
    again = await harness.booking_service.expire_overdue_payments()

    assert expired == 1
    assert again == 0
    assert booking.status == BookingStatusEnum.CANCELLED
    assert booking.payment_status == PaymentStatusEnum.PAYMENT_FAILED
    assert booking.cancellation_reason == booking_service_module.PAYMENT_EXPIRED_REASON
    assert _booked_counts(harness, business_day) == [0, 0, 0, 0]


@pytest.mark.asyncio
async def test_sweep_ignores_confirmed_bookings(
    harness,
    make_booking_payload,
    business_day: date,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking = await _create_booking(harness, make_booking_payload, business_day)
    await harness.booking_service.mark_as_paid(booking.id)
    late = booking.payment_deadline + timedelta(hours=1)
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: late)

    assert await harness.booking_service.expire_overdue_payments() == 0
    assert booking.status == BookingStatusEnum.CONFIRMED


@pytest.mark.asyncio
async def test_cancel_auto_rejects_pending_reschedule(harness, make_booking_payload, business_day: date) -> None:
    harness.scheduling.add_day(business_day, units=6)
    booking = await _create_booking(harness, make_booking_payload, business_day)
    request = await harness.reschedule_service.create_request(
        booking.id,
        RescheduleRequestCreate(requested_date=business_day, requested_time=time(hour=13)),
    )

    await harness.booking_service.cancel_booking(booking.id, BookingCancelRequest(reason="No longer needed"))

    assert booking.has_pending_reschedule is False
    assert harness.reschedules.requests[request.id].status == RescheduleStatusEnum.REJECTED
    assert harness.reschedules.requests[request.id].admin_response == "Booking cancelled"


@pytest.mark.asyncio
async def test_lookup_by_reference(harness, make_booking_payload, business_day: date) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking = await _create_booking(harness, make_booking_payload, business_day)

    found = await harness.booking_service.get_booking_by_reference(f" {booking.reference.lower()} ")

    assert found.id == booking.id
    with pytest.raises(NotFoundException):
        await harness.booking_service.get_booking(uuid4())


async def _paid_booking_at(harness, make_booking_payload, slot_date: date):
    booking = await _create_booking(harness, make_booking_payload, slot_date)
    await harness.booking_service.mark_as_paid(booking.id)
    return booking, local_start_at(slot_date, time(hour=10), "Europe/London")


@pytest.mark.asyncio
async def test_cancellation_outside_notice_window_refunds(
    harness,
    make_booking_payload,
    business_day: date,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking, starts_at = await _paid_booking_at(harness, make_booking_payload, business_day)
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: starts_at - timedelta(hours=24, seconds=1))

    policy = await harness.booking_service.get_cancellation_policy(booking.id)
    assert policy.refund_eligible is True
    assert policy.within_notice_window is False

    cancelled = await harness.booking_service.cancel_booking(
        booking.id,
        BookingCancelRequest(reason="Holiday", refund=True),
    )
    assert cancelled.status == BookingStatusEnum.CANCELLED
    assert cancelled.payment_status == PaymentStatusEnum.REFUNDED


@pytest.mark.asyncio
@pytest.mark.parametrize("before_start", [timedelta(hours=24), timedelta(hours=1)])
async def test_late_cancellation_requires_acknowledgement_and_keeps_payment(
    harness,
    make_booking_payload,
    business_day: date,
    monkeypatch: pytest.MonkeyPatch,
    before_start: timedelta,
) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking, starts_at = await _paid_booking_at(harness, make_booking_payload, business_day)
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: starts_at - before_start)

    policy = await harness.booking_service.get_cancellation_policy(booking.id)
    assert policy.within_notice_window is True
    assert policy.refund_eligible is False
    assert policy.can_cancel is True

    with pytest.raises(ValidationException):
        await harness.booking_service.cancel_booking(
            booking.id,
            BookingCancelRequest(reason="Running late", refund=True),
        )
    assert booking.status == BookingStatusEnum.CONFIRMED
    assert _booked_counts(harness, business_day) == [0, 1, 1, 0]

    cancelled = await harness.booking_service.cancel_booking(
        booking.id,
        BookingCancelRequest(reason="Running late", refund=True, acknowledge_no_refund=True),
    )
    assert cancelled.status == BookingStatusEnum.CANCELLED
    assert cancelled.payment_status == PaymentStatusEnum.PAID
    assert _booked_counts(harness, business_day) == [0, 0, 0, 0]


@pytest.mark.asyncio
async def test_cancellation_refused_once_appointment_started(
    harness,
    make_booking_payload,
    business_day: date,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking, starts_at = await _paid_booking_at(harness, make_booking_payload, business_day)
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: starts_at + timedelta(minutes=1))

    policy = await harness.booking_service.get_cancellation_policy(booking.id)
    assert policy.can_cancel is False
    assert policy.hours_until_start == 0.0

    with pytest.raises(InvalidTransitionException):
        await harness.booking_service.cancel_booking(
            booking.id,
            BookingCancelRequest(reason="Forgot", acknowledge_no_refund=True),
        )
    assert booking.status == BookingStatusEnum.CONFIRMED

    # staff can still cancel operationally and decide on the refund
    cancelled = await harness.booking_service.update_status(
        booking.id,
        BookingStatusUpdate(status=BookingStatusEnum.CANCELLED, reason="Customer unreachable", refund=True),
    )
    assert cancelled.payment_status == PaymentStatusEnum.REFUNDED


@pytest.mark.asyncio
async def test_late_cancellation_of_unpaid_booking_needs_no_acknowledgement(
    harness,
    make_booking_payload,
    business_day: date,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    harness.scheduling.add_day(business_day, units=4)
    booking = await _create_booking(harness, make_booking_payload, business_day)
    starts_at = local_start_at(business_day, time(hour=10), "Europe/London")
    monkeypatch.setattr(booking_service_module, "utc_now", lambda: starts_at - timedelta(hours=3))

    cancelled = await harness.booking_service.cancel_booking(booking.id, BookingCancelRequest(reason="Sold car"))

    assert cancelled.status == BookingStatusEnum.CANCELLED
    assert cancelled.payment_status == PaymentStatusEnum.PENDING
