"""Booking API router."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.enums import BookingStatusEnum
from app.modules.booking.schemas import (
    BookingCancelRequest,
    BookingCreate,
    BookingRead,
    BookingStatusUpdate,
    CancellationPolicyRead,
)
from app.modules.booking.service import BookingService, get_booking_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/bookings", tags=["booking"])


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    service: BookingService = Depends(get_booking_service),
) -> BookingRead:
    """Create pending booking and reserve slot capacity."""
    booking = await service.create_booking(payload)
    return BookingRead.model_validate(booking)


@router.get("", response_model=Page[BookingRead])
async def list_bookings(
    booking_status: BookingStatusEnum | None = Query(default=None, alias="status"),
    scheduled_date: date | None = Query(default=None),
    customer_email: str | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    service: BookingService = Depends(get_booking_service),
) -> Page[BookingRead]:
    """List bookings."""
    items, total = await service.list_bookings(
        booking_status,
        scheduled_date,
        customer_email,
        pagination.limit,
        pagination.offset,
    )
    serialized = [BookingRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.post("/payment-deadlines/expire", response_model=int)
async def expire_overdue_payments(
    service: BookingService = Depends(get_booking_service),
) -> int:
    """Cancel bookings past their payment deadline (admin task endpoint)."""
    return await service.expire_overdue_payments()


@router.get("/reference/{reference}", response_model=BookingRead)
async def get_booking_by_reference(
    reference: str,
    service: BookingService = Depends(get_booking_service),
) -> BookingRead:
    """Look up booking by its customer-facing reference."""
    booking = await service.get_booking_by_reference(reference)
    return BookingRead.model_validate(booking)


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> BookingRead:
    booking = await service.get_booking(booking_id)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/status", response_model=BookingRead)
async def update_booking_status(
    booking_id: UUID,
    payload: BookingStatusUpdate,
    service: BookingService = Depends(get_booking_service),
) -> BookingRead:
    """Move booking to another status."""
    booking = await service.update_status(booking_id, payload)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/mark-paid", response_model=BookingRead)
async def mark_booking_paid(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> BookingRead:
    """Record payment and confirm booking."""
    booking = await service.mark_as_paid(booking_id)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/request-payment", response_model=BookingRead)
async def request_booking_payment(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> BookingRead:
    """Ask customer for payment."""
    booking = await service.request_payment(booking_id)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingRead)
async def cancel_booking(
    booking_id: UUID,
    payload: BookingCancelRequest,
    service: BookingService = Depends(get_booking_service),
) -> BookingRead:
    """Cancel booking and release its capacity."""
    booking = await service.cancel_booking(booking_id, payload)
    return BookingRead.model_validate(booking)


@router.get("/{booking_id}/cancellation-policy", response_model=CancellationPolicyRead)
async def get_cancellation_policy(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
) -> CancellationPolicyRead:
    """Show whether cancelling now is allowed and refundable."""
    policy = await service.get_cancellation_policy(booking_id)
    return CancellationPolicyRead.model_validate(policy)
