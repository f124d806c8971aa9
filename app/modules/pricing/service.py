"""Quote business logic layer."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.database import get_db_session
from app.core.enums import VehicleSizeEnum
from app.modules.catalog.repository import CatalogRepository
from app.modules.catalog.schemas import ServiceSelection
from app.modules.catalog.service import SelectedService, resolve_selected_services
from app.modules.pricing.distance import haversine_miles
from app.modules.pricing.engine import PriceBreakdown, PriceLine, PricingPolicy, compute_price
from app.modules.pricing.schemas import AddressInput, QuoteRequest


@dataclass(slots=True)
class Quote:
    lines: list[SelectedService]
    duration_minutes: int
    price: PriceBreakdown


def resolve_distance(address: AddressInput, settings: Settings) -> Decimal:
    """Return the address distance from the business base in miles."""
    if address.distance_miles is not None:
        return address.distance_miles
    return haversine_miles(
        settings.business_latitude,
        settings.business_longitude,
        address.latitude,
        address.longitude,
    )


def price_selection(
    selected: Sequence[SelectedService],
    vehicle_size: VehicleSizeEnum,
    distance_miles: Decimal,
    policy: PricingPolicy,
) -> Quote:
    """Price resolved catalog services; shared by quotes and bookings."""
    lines = [PriceLine(base_price=item.unit_price, quantity=item.quantity) for item in selected]
    return Quote(
        lines=list(selected),
        duration_minutes=sum(item.total_duration_minutes for item in selected),
        price=compute_price(lines, vehicle_size, distance_miles, policy),
    )


class PricingService:
    """Quote service backed by the catalog."""

    def __init__(self, catalog_repository: CatalogRepository, policy: PricingPolicy) -> None:
        self.catalog_repository = catalog_repository
        self.policy = policy

    async def quote(self, payload: QuoteRequest) -> Quote:
        """Price a selection without touching any booking state."""
        selected = await self.resolve(payload.services)
        return price_selection(selected, payload.vehicle_size, payload.distance_miles, self.policy)

    async def resolve(self, selections: Sequence[ServiceSelection]) -> list[SelectedService]:
        return await resolve_selected_services(self.catalog_repository, selections)


async def get_pricing_service(session: AsyncSession = Depends(get_db_session)) -> PricingService:
    """Dependency provider for pricing service."""
    return PricingService(CatalogRepository(session), PricingPolicy.from_settings(get_settings()))
