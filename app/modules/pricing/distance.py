"""Great-circle distance from the business base."""

from __future__ import annotations

import math
from decimal import Decimal

EARTH_RADIUS_KM = 6371.0
MILES_PER_KM = 0.621371


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> Decimal:
    """Return distance between two coordinates in miles, rounded to 0.01."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    km = EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return Decimal(str(round(km * MILES_PER_KM, 2)))
