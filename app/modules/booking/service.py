"""Booking business logic layer."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from uuid import UUID, uuid4

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import BookingStatusEnum, PaymentStatusEnum, RescheduleStatusEnum
from app.core.metrics import record_booking_transition
from app.modules.audit.repository import AuditRepository
from app.modules.booking.cancellation import CancellationPolicy, evaluate_cancellation
from app.modules.booking.models import Booking
from app.modules.booking.repository import BookingRepository
from app.modules.booking.schemas import BookingCancelRequest, BookingCreate, BookingStatusUpdate
from app.modules.booking.state_machine import (
    RELEASING_STATUSES,
    TERMINAL_STATUSES,
    ensure_transition,
    requires_reason,
)
from app.modules.catalog.repository import CatalogRepository
from app.modules.catalog.service import resolve_selected_services
from app.modules.pricing.engine import PricingPolicy
from app.modules.pricing.service import price_selection, resolve_distance
from app.modules.reschedule.repository import RescheduleRepository
from app.modules.scheduling.availability import SlotAvailabilityManager, build_slot_manager
from app.shared.exceptions import (
    ConflictException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from app.shared.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

settings = get_settings()

REFERENCE_ATTEMPTS = 5
PAYMENT_EXPIRED_REASON = "Payment deadline expired"


def generate_reference(prefix: str) -> str:
    """Human-readable booking reference, e.g. LFD-3F9A0C21."""
    return f"{prefix}-{uuid4().hex[:8].upper()}"


def booking_event_payload(booking: Booking) -> dict:
    return {
        "booking_id": str(booking.id),
        "reference": booking.reference,
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
        "scheduled_date": booking.scheduled_date.isoformat(),
        "start_time": booking.scheduled_start_time.isoformat(timespec="minutes"),
        "customer_email": booking.customer_email,
    }


class BookingService:
    """Booking lifecycle: creation, status transitions and payment coupling."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        catalog_repository: CatalogRepository,
        reschedule_repository: RescheduleRepository,
        slot_manager: SlotAvailabilityManager,
        audit_repository: AuditRepository,
        policy: PricingPolicy | None = None,
    ) -> None:
        self.booking_repository = booking_repository
        self.catalog_repository = catalog_repository
        self.reschedule_repository = reschedule_repository
        self.slot_manager = slot_manager
        self.audit_repository = audit_repository
        self.policy = policy or PricingPolicy.from_settings(settings)

    async def _get_booking(self, booking_id: UUID, for_update: bool = False) -> Booking:
        booking = await self.booking_repository.get_booking_by_id(booking_id, for_update=for_update)
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking

    async def _new_reference(self) -> str:
        for _ in range(REFERENCE_ATTEMPTS):
            reference = generate_reference(settings.booking_reference_prefix)
            if await self.booking_repository.get_booking_by_reference(reference) is None:
                return reference
        raise ConflictException("Could not allocate a unique booking reference")

    async def create_booking(self, payload: BookingCreate) -> Booking:
        """Price the selection, reserve capacity and persist a pending booking.

        Everything runs in the caller's transaction; a SlotFull refusal leaves
        no booking and no consumed capacity behind.
        """
        selected = await resolve_selected_services(self.catalog_repository, payload.services)
        distance = resolve_distance(payload.address, settings)
        quote = price_selection(selected, payload.vehicle.size, distance, self.policy)

        self.slot_manager.ensure_bookable_start(payload.scheduled_date, payload.start_time)
        reservation = await self.slot_manager.reserve(
            payload.scheduled_date,
            payload.start_time,
            quote.duration_minutes,
        )

        now = utc_now()
        price = quote.price
        booking = await self.booking_repository.create_booking(
            reference=await self._new_reference(),
            customer_name=payload.customer.name,
            customer_email=str(payload.customer.email),
            customer_phone=payload.customer.phone,
            vehicle={
                "make": payload.vehicle.make,
                "model": payload.vehicle.model,
                "year": payload.vehicle.year,
                "registration": payload.vehicle.registration,
                "size": payload.vehicle.size.value,
                "size_multiplier": str(price.size_multiplier),
            },
            vehicle_size=payload.vehicle.size,
            address={
                "line1": payload.address.line1,
                "line2": payload.address.line2,
                "city": payload.address.city,
                "postcode": payload.address.postcode,
                "distance_miles": str(distance),
            },
            services=[item.snapshot() for item in selected],
            scheduled_date=payload.scheduled_date,
            scheduled_start_time=payload.start_time,
            duration_minutes=quote.duration_minutes,
            reservation_id=reservation.id,
            status=BookingStatusEnum.PENDING,
            payment_status=PaymentStatusEnum.PENDING,
            service_subtotal=price.service_subtotal,
            size_multiplier=price.size_multiplier,
            size_adjusted_subtotal=price.size_adjusted_subtotal,
            distance_miles=price.distance_miles,
            travel_surcharge=price.travel_surcharge,
            total_price=price.total,
            currency=price.currency,
            special_instructions=payload.special_instructions,
            payment_deadline=now + timedelta(hours=settings.payment_deadline_hours),
        )

        await self.audit_repository.create_audit_log(
            actor="customer",
            action="booking.create",
            entity_type="booking",
            entity_id=str(booking.id),
            payload={
                "reference": booking.reference,
                "total_price": str(booking.total_price),
                "reservation_id": str(reservation.id),
            },
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="booking",
            aggregate_id=str(booking.id),
            event_type="booking.created",
            payload={**booking_event_payload(booking), "total_price": str(booking.total_price)},
        )
        record_booking_transition(None, BookingStatusEnum.PENDING.value)
        logger.info(
            "Booking %s created for %s %s",
            booking.reference,
            booking.scheduled_date,
            booking.scheduled_start_time,
        )
        return booking

    def _ensure_payment_window_open(self, booking: Booking, now: datetime) -> None:
        if booking.payment_deadline is not None and ensure_utc(booking.payment_deadline) <= now:
            raise InvalidTransitionException("Payment deadline has passed for this booking")

    async def _transition(
        self,
        booking: Booking,
        target: BookingStatusEnum,
        *,
        reason: str | None = None,
        refund: bool = False,
        actor: str = "admin",
        payment_expired: bool = False,
    ) -> Booking:
        current = booking.status
        if current == BookingStatusEnum.CANCELLED and target == BookingStatusEnum.CANCELLED:
            return booking

        ensure_transition(current, target)
        if requires_reason(current, target) and not (reason and reason.strip()):
            raise ValidationException(f"A reason is required to cancel a {current.value} booking")

        now = utc_now()
        if target == BookingStatusEnum.CONFIRMED:
            self._ensure_payment_window_open(booking, now)
            booking.payment_status = PaymentStatusEnum.PAID
            booking.paid_at = now
            booking.confirmed_at = now
        elif target == BookingStatusEnum.PAYMENT_FAILED:
            booking.payment_status = PaymentStatusEnum.PAYMENT_FAILED
        elif target == BookingStatusEnum.IN_PROGRESS:
            booking.started_at = now
        elif target == BookingStatusEnum.COMPLETED:
            booking.completed_at = now
        elif target in (BookingStatusEnum.CANCELLED, BookingStatusEnum.DECLINED):
            booking.cancelled_at = now
            booking.cancellation_reason = reason
            if refund and booking.payment_status == PaymentStatusEnum.PAID:
                booking.payment_status = PaymentStatusEnum.REFUNDED
            elif payment_expired and booking.payment_status != PaymentStatusEnum.PAID:
                booking.payment_status = PaymentStatusEnum.PAYMENT_FAILED

        if target in RELEASING_STATUSES:
            await self.slot_manager.release(booking.reservation_id)
        if target in TERMINAL_STATUSES and booking.active_reschedule_request_id is not None:
            await self._reject_pending_reschedule(booking, f"Booking {target.value.replace('_', ' ')}", now)

        booking.status = target
        await self.booking_repository.save(booking)

        await self.audit_repository.create_audit_log(
            actor=actor,
            action="booking.status.update",
            entity_type="booking",
            entity_id=str(booking.id),
            payload={
                "from_status": current.value,
                "to_status": target.value,
                "payment_status": booking.payment_status.value,
                "reason": reason,
            },
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="booking",
            aggregate_id=str(booking.id),
            event_type=f"booking.{target.value}",
            payload={**booking_event_payload(booking), "from_status": current.value, "reason": reason},
        )
        record_booking_transition(current.value, target.value)
        logger.info("Booking %s moved %s -> %s", booking.reference, current.value, target.value)
        return booking

    async def _reject_pending_reschedule(self, booking: Booking, response: str, now: datetime) -> None:
        request = await self.reschedule_repository.get_request_by_id(
            booking.active_reschedule_request_id,
            for_update=True,
        )
        booking.active_reschedule_request_id = None
        if request is None or request.status != RescheduleStatusEnum.PENDING:
            return

        request.status = RescheduleStatusEnum.REJECTED
        request.admin_response = response
        request.responded_at = now
        await self.reschedule_repository.save(request)
        await self.audit_repository.create_outbox_event(
            aggregate_type="reschedule_request",
            aggregate_id=str(request.id),
            event_type="reschedule.rejected",
            payload={
                "request_id": str(request.id),
                "booking_id": str(booking.id),
                "admin_response": response,
            },
        )

    async def update_status(self, booking_id: UUID, payload: BookingStatusUpdate) -> Booking:
        """Apply an explicit status transition."""
        booking = await self._get_booking(booking_id, for_update=True)
        booking = await self._transition(
            booking,
            payload.status,
            reason=payload.reason,
            refund=payload.refund,
        )
        if payload.admin_notes is not None:
            booking.admin_notes = payload.admin_notes
            await self.booking_repository.save(booking)
        return booking

    async def mark_as_paid(self, booking_id: UUID) -> Booking:
        """Record successful payment: confirmed and paid in one step."""
        booking = await self._get_booking(booking_id, for_update=True)
        return await self._transition(booking, BookingStatusEnum.CONFIRMED, actor="payment")

    async def request_payment(self, booking_id: UUID) -> Booking:
        """Flag an unpaid booking as awaiting customer payment."""
        booking = await self._get_booking(booking_id, for_update=True)
        if booking.status not in (BookingStatusEnum.PENDING, BookingStatusEnum.PAYMENT_FAILED):
            raise InvalidTransitionException(f"Cannot request payment for a {booking.status.value} booking")
        if booking.payment_status not in (PaymentStatusEnum.PENDING, PaymentStatusEnum.PAYMENT_FAILED):
            raise InvalidTransitionException(
                f"Cannot request payment while payment is {booking.payment_status.value}",
            )
        self._ensure_payment_window_open(booking, utc_now())

        previous = booking.payment_status
        booking.payment_status = PaymentStatusEnum.AWAITING_PAYMENT
        await self.booking_repository.save(booking)

        await self.audit_repository.create_audit_log(
            actor="admin",
            action="booking.payment.request",
            entity_type="booking",
            entity_id=str(booking.id),
            payload={"from_payment_status": previous.value, "to_payment_status": booking.payment_status.value},
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="booking",
            aggregate_id=str(booking.id),
            event_type="booking.payment.requested",
            payload={
                **booking_event_payload(booking),
                "total_price": str(booking.total_price),
                "payment_deadline": ensure_utc(booking.payment_deadline).isoformat(),
            },
        )
        return booking

    def _cancellation_policy(self, booking: Booking, now: datetime) -> CancellationPolicy:
        return evaluate_cancellation(
            booking.status,
            booking.scheduled_date,
            booking.scheduled_start_time,
            now,
            settings.cancellation_notice_hours,
            settings.business_timezone,
        )

    async def get_cancellation_policy(self, booking_id: UUID) -> CancellationPolicy:
        booking = await self._get_booking(booking_id)
        return self._cancellation_policy(booking, utc_now())

    async def cancel_booking(self, booking_id: UUID, payload: BookingCancelRequest) -> Booking:
        """Customer cancellation under the notice policy; repeating the call is a no-op.

        Inside the notice window a paid booking keeps its payment: the refund
        is forfeited and the customer must acknowledge that explicitly.
        """
        booking = await self._get_booking(booking_id, for_update=True)
        if booking.status == BookingStatusEnum.CANCELLED:
            return booking

        ensure_transition(booking.status, BookingStatusEnum.CANCELLED)
        policy = self._cancellation_policy(booking, utc_now())
        if not policy.can_cancel:
            raise InvalidTransitionException("The appointment has already started and can no longer be cancelled")

        refund = payload.refund
        if policy.within_notice_window and booking.payment_status == PaymentStatusEnum.PAID:
            if not payload.acknowledge_no_refund:
                raise ValidationException(
                    f"Cancelling within {settings.cancellation_notice_hours} hours of the appointment "
                    "is not refunded and must be acknowledged",
                )
            refund = False

        booking = await self._transition(
            booking,
            BookingStatusEnum.CANCELLED,
            reason=payload.reason,
            refund=refund,
            actor="customer",
        )
        if policy.within_notice_window:
            logger.info("Booking %s cancelled inside the notice window", booking.reference)
        return booking

    async def expire_overdue_payments(self) -> int:
        """Cancel unpaid bookings whose payment deadline elapsed."""
        now = utc_now()
        overdue = await self.booking_repository.find_overdue_payments(now)
        for booking in overdue:
            await self._transition(
                booking,
                BookingStatusEnum.CANCELLED,
                reason=PAYMENT_EXPIRED_REASON,
                actor="system",
                payment_expired=True,
            )
        if overdue:
            logger.info("Expired %s bookings past their payment deadline", len(overdue))
        return len(overdue)

    async def get_booking(self, booking_id: UUID) -> Booking:
        return await self._get_booking(booking_id)

    async def get_booking_by_reference(self, reference: str) -> Booking:
        booking = await self.booking_repository.get_booking_by_reference(reference.strip().upper())
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking

    async def list_bookings(
        self,
        status: BookingStatusEnum | None,
        scheduled_date: date | None,
        customer_email: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        """List bookings with optional filters."""
        return await self.booking_repository.list_bookings(status, scheduled_date, customer_email, limit, offset)


def build_booking_service(session: AsyncSession) -> BookingService:
    return BookingService(
        booking_repository=BookingRepository(session),
        catalog_repository=CatalogRepository(session),
        reschedule_repository=RescheduleRepository(session),
        slot_manager=build_slot_manager(session),
        audit_repository=AuditRepository(session),
    )


async def get_booking_service(session: AsyncSession = Depends(get_db_session)) -> BookingService:
    """Dependency provider for booking service."""
    return build_booking_service(session)
