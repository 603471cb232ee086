"""Great-circle distance and mile/kilometre display helpers.

Providers always speak kilometres and minutes; miles only appear when a
distance is formatted for a person or a threshold is translated.
"""

from __future__ import annotations

import math

from services.common.enums import DistanceUnit
from services.geo.models import GeoPoint

EARTH_RADIUS_KM = 6371.0
KM_TO_MILES = 0.621371
MILES_TO_KM = 1.60934


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def km_to_miles(km: float) -> float:
    return km * KM_TO_MILES


def miles_to_km(miles: float) -> float:
    return miles * MILES_TO_KM


def _round_tenth(value: float) -> float:
    # Half-up, so 0.25 becomes 0.3 rather than 0.2.
    return math.floor(value * 10 + 0.5) / 10


def _short_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


def _format_short(value: float, suffix: str) -> str:
    if value < 0.1:
        return f"< 0.1 {suffix}"
    if value < 1:
        return f"{value:.1f} {suffix}"
    return f"{_short_number(_round_tenth(value))} {suffix}"


def format_miles(km: float) -> str:
    """Short miles label, e.g. ``"0.5 mi"``, ``"1 mi"`` or ``"11.2 mi"``."""
    return _format_short(km_to_miles(km), "mi")


def format_distance(km: float, unit: DistanceUnit = DistanceUnit.mi) -> str:
    if unit == DistanceUnit.km:
        return _format_short(km, "km")
    return format_miles(km)
