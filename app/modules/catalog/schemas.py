"""Service catalog schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ServiceCreate(BaseModel):
    """Create catalog service request."""

    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    category: str = Field(min_length=1, max_length=64)
    base_price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    duration_minutes: int = Field(gt=0, le=24 * 60)


class ServiceRead(BaseModel):
    """Catalog service response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    category: str
    base_price: Decimal
    duration_minutes: int
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ServiceSelection(BaseModel):
    """One catalog service picked by the customer."""

    service_id: UUID
    quantity: int = Field(default=1, ge=1, le=10)
