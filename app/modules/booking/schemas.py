"""Booking schemas."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.core.enums import BookingStatusEnum, PaymentStatusEnum, VehicleSizeEnum
from app.modules.catalog.schemas import ServiceSelection
from app.modules.pricing.schemas import AddressInput


class CustomerInput(BaseModel):
    """Customer contact details."""

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(min_length=7, max_length=32)


class VehicleInput(BaseModel):
    """Vehicle details captured at booking time."""

    make: str = Field(min_length=1, max_length=64)
    model: str = Field(min_length=1, max_length=64)
    year: int | None = Field(default=None, ge=1950, le=2100)
    registration: str = Field(min_length=2, max_length=16)
    size: VehicleSizeEnum

    @field_validator("registration")
    @classmethod
    def normalize_registration(cls, value: str) -> str:
        return "".join(value.upper().split())


class BookingCreate(BaseModel):
    """Create booking request."""

    customer: CustomerInput
    vehicle: VehicleInput
    address: AddressInput
    services: list[ServiceSelection] = Field(min_length=1)
    scheduled_date: date
    start_time: time
    special_instructions: str | None = Field(default=None, max_length=2000)


class BookingStatusUpdate(BaseModel):
    """Admin status change request."""

    status: BookingStatusEnum
    reason: str | None = Field(default=None, max_length=512)
    refund: bool = False
    admin_notes: str | None = Field(default=None, max_length=2000)


class BookingCancelRequest(BaseModel):
    """Cancel booking request."""

    reason: str | None = Field(default=None, max_length=512)
    refund: bool = False
    acknowledge_no_refund: bool = False


class CancellationPolicyRead(BaseModel):
    """Cancellation terms for a booking at the time of the request."""

    model_config = ConfigDict(from_attributes=True)

    starts_at: datetime
    hours_until_start: float
    within_notice_window: bool
    refund_eligible: bool
    can_cancel: bool


class BookingRead(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reference: str
    customer_name: str
    customer_email: str
    customer_phone: str
    vehicle: dict
    vehicle_size: VehicleSizeEnum
    address: dict
    services: list[dict]
    scheduled_date: date
    scheduled_start_time: time
    duration_minutes: int
    reservation_id: UUID
    status: BookingStatusEnum
    payment_status: PaymentStatusEnum
    service_subtotal: Decimal
    size_multiplier: Decimal
    size_adjusted_subtotal: Decimal
    distance_miles: Decimal
    travel_surcharge: Decimal
    total_price: Decimal
    currency: str
    special_instructions: str | None
    admin_notes: str | None
    has_pending_reschedule: bool
    active_reschedule_request_id: UUID | None
    payment_deadline: datetime
    confirmed_at: datetime | None
    paid_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime
