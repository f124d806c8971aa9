"""Reschedule request workflow.

A booking has at most one pending request. Filing a request never touches
capacity; approval re-validates the requested window at decision time and
swaps the booking's reservation onto it in one step, so a refused approval
leaves the booking and its capacity exactly where they were.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.enums import RescheduleActionEnum, RescheduleStatusEnum
from app.core.metrics import record_reschedule_decision
from app.modules.audit.repository import AuditRepository
from app.modules.booking.models import Booking
from app.modules.booking.repository import BookingRepository
from app.modules.booking.service import booking_event_payload
from app.modules.booking.state_machine import OCCUPYING_STATUSES, RESCHEDULABLE_STATUSES
from app.modules.reschedule.models import RescheduleRequest
from app.modules.reschedule.repository import RescheduleRepository
from app.modules.reschedule.schemas import RescheduleRequestCreate, RescheduleResponse
from app.modules.scheduling.availability import SlotAvailabilityManager, build_slot_manager
from app.shared.exceptions import (
    AlreadyPendingRescheduleException,
    InvalidTransitionException,
    NotFoundException,
    SlotFullException,
    SlotNoLongerAvailableException,
    ValidationException,
)
from app.shared.utils import utc_now

logger = logging.getLogger(__name__)


def request_event_payload(request: RescheduleRequest) -> dict:
    return {
        "request_id": str(request.id),
        "booking_id": str(request.booking_id),
        "status": request.status.value,
        "requested_date": request.requested_date.isoformat(),
        "requested_time": request.requested_time.isoformat(timespec="minutes"),
        "original_date": request.original_date.isoformat(),
        "original_time": request.original_time.isoformat(timespec="minutes"),
        "admin_response": request.admin_response,
    }


class RescheduleService:
    """Customer reschedule requests and admin decisions."""

    def __init__(
        self,
        reschedule_repository: RescheduleRepository,
        booking_repository: BookingRepository,
        slot_manager: SlotAvailabilityManager,
        audit_repository: AuditRepository,
    ) -> None:
        self.reschedule_repository = reschedule_repository
        self.booking_repository = booking_repository
        self.slot_manager = slot_manager
        self.audit_repository = audit_repository

    async def _get_booking_for_update(self, booking_id: UUID) -> Booking:
        booking = await self.booking_repository.get_booking_by_id(booking_id, for_update=True)
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking

    async def _get_pending_request(self, request_id: UUID) -> tuple[RescheduleRequest, Booking]:
        """Lock the parent booking, then the request, and require it pending.

        Locks are taken booking first, the same order cancellation uses.
        """
        request = await self.get_request(request_id)
        booking = await self._get_booking_for_update(request.booking_id)
        request = await self.reschedule_repository.get_request_by_id(request_id, for_update=True)
        if request is None:
            raise NotFoundException("Reschedule request not found")
        if request.status != RescheduleStatusEnum.PENDING:
            raise InvalidTransitionException(f"Reschedule request is already {request.status.value}")
        return request, booking

    async def _audit(self, action: str, event_type: str, request: RescheduleRequest, actor: str) -> None:
        await self.audit_repository.create_audit_log(
            actor=actor,
            action=action,
            entity_type="reschedule_request",
            entity_id=str(request.id),
            payload=request_event_payload(request),
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="reschedule_request",
            aggregate_id=str(request.id),
            event_type=event_type,
            payload=request_event_payload(request),
        )

    async def create_request(self, booking_id: UUID, payload: RescheduleRequestCreate) -> RescheduleRequest:
        """File a reschedule request; capacity is checked only on approval."""
        booking = await self._get_booking_for_update(booking_id)
        if booking.status not in RESCHEDULABLE_STATUSES:
            raise InvalidTransitionException(f"A {booking.status.value} booking cannot be rescheduled")
        if booking.has_pending_reschedule:
            raise AlreadyPendingRescheduleException("Booking already has a pending reschedule request")
        if (payload.requested_date, payload.requested_time) == (
            booking.scheduled_date,
            booking.scheduled_start_time,
        ):
            raise ValidationException("Requested slot is the booking's current slot")
        self.slot_manager.ensure_bookable_start(payload.requested_date, payload.requested_time)

        request = await self.reschedule_repository.create_request(
            booking_id=booking.id,
            requested_date=payload.requested_date,
            requested_time=payload.requested_time,
            original_date=booking.scheduled_date,
            original_time=booking.scheduled_start_time,
            reason=payload.reason,
        )
        booking.active_reschedule_request_id = request.id
        await self.booking_repository.save(booking)

        await self._audit("reschedule.request.create", "reschedule.requested", request, actor="customer")
        logger.info(
            "Reschedule requested for booking %s: %s %s",
            booking.reference,
            payload.requested_date,
            payload.requested_time,
        )
        return request

    async def approve(self, request_id: UUID, admin_response: str | None = None) -> Booking:
        """Move the booking to the requested window if it still has capacity."""
        request, booking = await self._get_pending_request(request_id)
        if booking.status not in OCCUPYING_STATUSES:
            raise InvalidTransitionException(f"A {booking.status.value} booking cannot be rescheduled")

        if not self.slot_manager.is_bookable_start(request.requested_date, request.requested_time):
            record_reschedule_decision("slot_unavailable")
            raise SlotNoLongerAvailableException("Requested time is too close or already past")
        try:
            reservation = await self.slot_manager.move(
                booking.reservation_id,
                request.requested_date,
                request.requested_time,
                booking.duration_minutes,
            )
        except (SlotFullException, NotFoundException) as exc:
            record_reschedule_decision("slot_unavailable")
            logger.warning("Reschedule %s refused, requested slot unavailable: %s", request.id, exc.message)
            raise SlotNoLongerAvailableException("Requested slot is no longer available") from exc

        now = utc_now()
        previous_date = booking.scheduled_date
        previous_time = booking.scheduled_start_time
        booking.scheduled_date = request.requested_date
        booking.scheduled_start_time = request.requested_time
        booking.reservation_id = reservation.id
        booking.active_reschedule_request_id = None
        await self.booking_repository.save(booking)

        request.status = RescheduleStatusEnum.APPROVED
        request.admin_response = admin_response
        request.responded_at = now
        await self.reschedule_repository.save(request)

        await self._audit("reschedule.request.approve", "reschedule.approved", request, actor="admin")
        await self.audit_repository.create_outbox_event(
            aggregate_type="booking",
            aggregate_id=str(booking.id),
            event_type="booking.rescheduled",
            payload={
                **booking_event_payload(booking),
                "previous_date": previous_date.isoformat(),
                "previous_start_time": previous_time.isoformat(timespec="minutes"),
            },
        )
        record_reschedule_decision("approved")
        logger.info("Reschedule %s approved for booking %s", request.id, booking.reference)
        return booking

    async def decline(self, request_id: UUID, admin_response: str | None = None) -> Booking:
        """Reject the request; the booking keeps its slot."""
        request, booking = await self._get_pending_request(request_id)

        booking.active_reschedule_request_id = None
        await self.booking_repository.save(booking)

        request.status = RescheduleStatusEnum.REJECTED
        request.admin_response = admin_response
        request.responded_at = utc_now()
        await self.reschedule_repository.save(request)

        await self._audit("reschedule.request.reject", "reschedule.rejected", request, actor="admin")
        record_reschedule_decision("rejected")
        logger.info("Reschedule %s rejected for booking %s", request.id, booking.reference)
        return booking

    async def respond(self, request_id: UUID, payload: RescheduleResponse) -> Booking:
        if payload.action == RescheduleActionEnum.APPROVE:
            return await self.approve(request_id, payload.admin_response)
        return await self.decline(request_id, payload.admin_response)

    async def get_request(self, request_id: UUID) -> RescheduleRequest:
        request = await self.reschedule_repository.get_request_by_id(request_id)
        if request is None:
            raise NotFoundException("Reschedule request not found")
        return request

    async def list_requests(
        self,
        status: RescheduleStatusEnum | None,
        booking_id: UUID | None,
        limit: int,
        offset: int,
    ) -> tuple[list[RescheduleRequest], int]:
        """List reschedule requests."""
        return await self.reschedule_repository.list_requests(status, booking_id, limit, offset)


async def get_reschedule_service(session: AsyncSession = Depends(get_db_session)) -> RescheduleService:
    """Dependency provider for reschedule service."""
    return RescheduleService(
        reschedule_repository=RescheduleRepository(session),
        booking_repository=BookingRepository(session),
        slot_manager=build_slot_manager(session),
        audit_repository=AuditRepository(session),
    )
