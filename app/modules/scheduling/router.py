"""Scheduling API router."""

from __future__ import annotations

from datetime import date, time

from fastapi import APIRouter, Depends, Query, status

from app.modules.scheduling.availability import SlotAvailabilityManager, get_slot_manager
from app.modules.scheduling.schemas import (
    AvailabilityRead,
    DayCapacityUpdate,
    DaySlotsCreate,
    SlotCreate,
    SlotRead,
)
from app.modules.scheduling.service import SchedulingService, get_scheduling_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


@router.get("/availability", response_model=list[AvailabilityRead])
async def list_availability(
    slot_date: date = Query(alias="date"),
    duration_minutes: int = Query(gt=0, le=720),
    manager: SlotAvailabilityManager = Depends(get_slot_manager),
) -> list[AvailabilityRead]:
    """List start times on a day where the duration still fits."""
    items = await manager.list_availability(slot_date, duration_minutes)
    return [AvailabilityRead.model_validate(item) for item in items]


@router.get("/availability/check", response_model=AvailabilityRead)
async def check_availability(
    slot_date: date = Query(alias="date"),
    start_time: time = Query(),
    duration_minutes: int = Query(gt=0, le=720),
    manager: SlotAvailabilityManager = Depends(get_slot_manager),
) -> AvailabilityRead:
    """Check remaining capacity for one window."""
    result = await manager.check_availability(slot_date, start_time, duration_minutes)
    return AvailabilityRead.model_validate(result)


@router.post("/slots", response_model=SlotRead, status_code=status.HTTP_201_CREATED)
async def create_slot(
    payload: SlotCreate,
    service: SchedulingService = Depends(get_scheduling_service),
) -> SlotRead:
    """Create one slot unit."""
    slot = await service.create_slot(payload)
    return SlotRead.model_validate(slot)


@router.post("/slots/bulk", response_model=list[SlotRead], status_code=status.HTTP_201_CREATED)
async def bulk_create_day(
    payload: DaySlotsCreate,
    service: SchedulingService = Depends(get_scheduling_service),
) -> list[SlotRead]:
    """Create a day of contiguous slot units."""
    slots = await service.bulk_create_day(payload)
    return [SlotRead.model_validate(slot) for slot in slots]


@router.get("/slots", response_model=Page[SlotRead])
async def list_slots(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    service: SchedulingService = Depends(get_scheduling_service),
) -> Page[SlotRead]:
    """List configured slot units."""
    items, total = await service.list_slots(date_from, date_to, pagination.limit, pagination.offset)
    serialized = [SlotRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.put("/days/{slot_date}/capacity", response_model=list[SlotRead])
async def set_day_capacity(
    slot_date: date,
    payload: DayCapacityUpdate,
    service: SchedulingService = Depends(get_scheduling_service),
) -> list[SlotRead]:
    """Change capacity for one business day."""
    slots = await service.set_day_capacity(slot_date, payload.capacity)
    return [SlotRead.model_validate(slot) for slot in slots]
