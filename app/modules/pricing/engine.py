"""Deterministic price computation for detailing bookings.

The same function prices a quote and a booking, so both always agree for the
same inputs. All arithmetic is done in ``Decimal``. Money amounts are rounded
to the minor currency unit with ``ROUND_HALF_UP``; the travel surcharge is
rounded before it is added, the service subtotal is rounded before the size
multiplier is applied to it, and the total is rounded once at the end.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from app.core.config import Settings
from app.core.enums import VehicleSizeEnum
from app.shared.exceptions import ValidationException

MINOR_UNIT = Decimal("0.01")
ZERO = Decimal("0.00")


def round_money(amount: Decimal) -> Decimal:
    """Round amount to the minor currency unit."""
    return amount.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class PriceLine:
    base_price: Decimal
    quantity: int = 1


@dataclass(frozen=True, slots=True)
class PricingPolicy:
    """Tariff inputs to the price computation."""

    free_radius_miles: Decimal
    rate_per_mile: Decimal
    surcharge_min: Decimal
    surcharge_max: Decimal
    size_multipliers: Mapping[VehicleSizeEnum, Decimal]
    currency: str = "GBP"

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingPolicy":
        return cls(
            free_radius_miles=settings.pricing_free_radius_miles,
            rate_per_mile=settings.pricing_travel_rate_per_mile,
            surcharge_min=settings.pricing_travel_surcharge_min,
            surcharge_max=settings.pricing_travel_surcharge_max,
            size_multipliers=dict(settings.pricing_vehicle_size_multipliers),
            currency=settings.pricing_currency,
        )

    def multiplier_for(self, vehicle_size: VehicleSizeEnum | str) -> Decimal:
        try:
            return self.size_multipliers[VehicleSizeEnum(vehicle_size)]
        except (KeyError, ValueError):
            raise ValidationException(f"Unknown vehicle size: {vehicle_size}") from None


@dataclass(frozen=True, slots=True)
class PriceBreakdown:
    service_subtotal: Decimal
    vehicle_size: VehicleSizeEnum
    size_multiplier: Decimal
    size_adjusted_subtotal: Decimal
    distance_miles: Decimal
    within_free_radius: bool
    travel_surcharge: Decimal
    total: Decimal
    currency: str


def compute_travel_surcharge(distance_miles: Decimal, policy: PricingPolicy) -> Decimal:
    """Per-mile charge beyond the free radius, clamped to the surcharge band."""
    if distance_miles <= policy.free_radius_miles:
        return ZERO
    excess = distance_miles - policy.free_radius_miles
    surcharge = excess * policy.rate_per_mile
    surcharge = max(policy.surcharge_min, min(policy.surcharge_max, surcharge))
    return round_money(surcharge)


def compute_price(
    lines: Sequence[PriceLine],
    vehicle_size: VehicleSizeEnum | str,
    distance_miles: Decimal | float | int | str,
    policy: PricingPolicy,
) -> PriceBreakdown:
    """Compute price breakdown for selected services.

    An empty selection is priced as the travel surcharge alone; callers block
    empty checkouts upstream.
    """
    distance = Decimal(str(distance_miles))
    if not distance.is_finite() or distance < 0:
        raise ValidationException("Distance must be a non-negative number of miles")

    multiplier = policy.multiplier_for(vehicle_size)

    subtotal = ZERO
    for line in lines:
        if line.quantity < 1:
            raise ValidationException("Service quantity must be at least 1")
        if line.base_price < 0:
            raise ValidationException("Service price must not be negative")
        subtotal += line.base_price * line.quantity
    subtotal = round_money(subtotal)

    size_adjusted = subtotal * multiplier
    surcharge = compute_travel_surcharge(distance, policy)

    return PriceBreakdown(
        service_subtotal=subtotal,
        vehicle_size=VehicleSizeEnum(vehicle_size),
        size_multiplier=multiplier,
        size_adjusted_subtotal=round_money(size_adjusted),
        distance_miles=distance,
        within_free_radius=distance <= policy.free_radius_miles,
        travel_surcharge=surcharge,
        total=round_money(size_adjusted + surcharge),
        currency=policy.currency,
    )
