"""Reschedule request schemas."""

from __future__ import annotations

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import RescheduleActionEnum, RescheduleStatusEnum


class RescheduleRequestCreate(BaseModel):
    """Customer reschedule request."""

    requested_date: date
    requested_time: time
    reason: str | None = Field(default=None, max_length=1000)


class RescheduleResponse(BaseModel):
    """Admin decision on a pending request."""

    action: RescheduleActionEnum
    admin_response: str | None = Field(default=None, max_length=1000)


class RescheduleRequestRead(BaseModel):
    """Reschedule request response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    requested_date: date
    requested_time: time
    original_date: date
    original_time: time
    reason: str | None
    status: RescheduleStatusEnum
    admin_response: str | None
    responded_at: datetime | None
    created_at: datetime
    updated_at: datetime
