"""Scheduling schemas."""

from __future__ import annotations

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SlotCreate(BaseModel):
    """Create one slot unit."""

    slot_date: date
    start_time: time
    end_time: time
    capacity: int = Field(ge=0, le=50)

    @model_validator(mode="after")
    def validate_window(self) -> "SlotCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class DaySlotsCreate(BaseModel):
    """Create contiguous slot units for one business day."""

    slot_date: date
    first_start: time
    last_end: time
    unit_minutes: int = Field(ge=15, le=480)
    capacity: int = Field(ge=0, le=50)

    @model_validator(mode="after")
    def validate_window(self) -> "DaySlotsCreate":
        if self.last_end <= self.first_start:
            raise ValueError("last_end must be after first_start")
        return self


class DayCapacityUpdate(BaseModel):
    """Per-day capacity change."""

    capacity: int = Field(ge=0, le=50)


class SlotRead(BaseModel):
    """Slot unit response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    slot_date: date
    start_time: time
    end_time: time
    capacity: int
    booked_count: int
    remaining: int
    created_at: datetime
    updated_at: datetime


class AvailabilityRead(BaseModel):
    """Availability of one booking window."""

    model_config = ConfigDict(from_attributes=True)

    slot_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    available: bool
    remaining: int
