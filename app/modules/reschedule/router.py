"""Reschedule request API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.enums import RescheduleStatusEnum
from app.modules.booking.schemas import BookingRead
from app.modules.reschedule.schemas import (
    RescheduleRequestCreate,
    RescheduleRequestRead,
    RescheduleResponse,
)
from app.modules.reschedule.service import RescheduleService, get_reschedule_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(tags=["reschedule"])


@router.post(
    "/bookings/{booking_id}/reschedule-requests",
    response_model=RescheduleRequestRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_reschedule_request(
    booking_id: UUID,
    payload: RescheduleRequestCreate,
    service: RescheduleService = Depends(get_reschedule_service),
) -> RescheduleRequestRead:
    """File reschedule request for a booking."""
    request = await service.create_request(booking_id, payload)
    return RescheduleRequestRead.model_validate(request)


@router.get("/reschedule-requests", response_model=Page[RescheduleRequestRead])
async def list_reschedule_requests(
    request_status: RescheduleStatusEnum | None = Query(default=None, alias="status"),
    booking_id: UUID | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    service: RescheduleService = Depends(get_reschedule_service),
) -> Page[RescheduleRequestRead]:
    """List reschedule requests."""
    items, total = await service.list_requests(request_status, booking_id, pagination.limit, pagination.offset)
    serialized = [RescheduleRequestRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/reschedule-requests/{request_id}", response_model=RescheduleRequestRead)
async def get_reschedule_request(
    request_id: UUID,
    service: RescheduleService = Depends(get_reschedule_service),
) -> RescheduleRequestRead:
    request = await service.get_request(request_id)
    return RescheduleRequestRead.model_validate(request)


@router.post("/reschedule-requests/{request_id}/respond", response_model=BookingRead)
async def respond_to_reschedule_request(
    request_id: UUID,
    payload: RescheduleResponse,
    service: RescheduleService = Depends(get_reschedule_service),
) -> BookingRead:
    """Approve or reject a pending reschedule request."""
    booking = await service.respond(request_id, payload)
    return BookingRead.model_validate(booking)
