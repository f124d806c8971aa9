"""Pricing schemas."""

from __future__ import annotations

import re
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.enums import VehicleSizeEnum
from app.modules.catalog.schemas import ServiceSelection

UK_POSTCODE_RE = re.compile(r"^[A-Z]{1,2}[0-9][A-Z0-9]?\s?[0-9][A-Z]{2}$", re.IGNORECASE)


class AddressInput(BaseModel):
    """Service address; distance is either given or derived from coordinates."""

    line1: str = Field(min_length=1, max_length=255)
    line2: str | None = Field(default=None, max_length=255)
    city: str = Field(min_length=1, max_length=128)
    postcode: str = Field(min_length=5, max_length=10)
    distance_miles: Decimal | None = Field(default=None, ge=0, max_digits=7, decimal_places=2)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)

    @field_validator("postcode")
    @classmethod
    def validate_postcode(cls, value: str) -> str:
        """Accept UK postcodes only, normalized to upper case."""
        normalized = " ".join(value.upper().split())
        if not UK_POSTCODE_RE.match(normalized):
            raise ValueError("Valid UK postcode is required")
        return normalized

    @model_validator(mode="after")
    def require_distance_source(self) -> "AddressInput":
        if self.distance_miles is None and (self.latitude is None or self.longitude is None):
            raise ValueError("Either distance_miles or latitude/longitude must be provided")
        return self


class QuoteRequest(BaseModel):
    """Price quote request."""

    services: list[ServiceSelection] = Field(min_length=1)
    vehicle_size: VehicleSizeEnum
    distance_miles: Decimal = Field(ge=0, max_digits=7, decimal_places=2)


class QuoteLineRead(BaseModel):
    """Priced service line."""

    model_config = ConfigDict(from_attributes=True)

    service_id: UUID
    name: str
    unit_price: Decimal
    quantity: int
    duration_minutes: int


class PriceBreakdownRead(BaseModel):
    """Price breakdown response schema."""

    model_config = ConfigDict(from_attributes=True)

    service_subtotal: Decimal
    vehicle_size: VehicleSizeEnum
    size_multiplier: Decimal
    size_adjusted_subtotal: Decimal
    distance_miles: Decimal
    within_free_radius: bool
    travel_surcharge: Decimal
    total: Decimal
    currency: str


class QuoteRead(BaseModel):
    """Quote response schema."""

    model_config = ConfigDict(from_attributes=True)

    lines: list[QuoteLineRead]
    duration_minutes: int
    price: PriceBreakdownRead
