from __future__ import annotations

import pytest

from services.common.enums import DistanceUnit
from services.geo.distance import (
    format_distance,
    format_miles,
    haversine_km,
    km_to_miles,
    miles_to_km,
)
from services.geo.models import GeoPoint


SAN_FRANCISCO = GeoPoint(lat=37.7749, lng=-122.4194)
OAKLAND = GeoPoint(lat=37.8044, lng=-122.2712)


@pytest.mark.parametrize(
    "a,b",
    [
        (SAN_FRANCISCO, OAKLAND),
        (GeoPoint(lat=0.0, lng=0.0), GeoPoint(lat=-33.86, lng=151.21)),
        (GeoPoint(lat=89.9, lng=-179.9), GeoPoint(lat=-89.9, lng=179.9)),
    ],
)
def test_haversine_is_symmetric(a, b):
    assert haversine_km(a, b) == pytest.approx(haversine_km(b, a))


def test_haversine_of_point_with_itself_is_zero():
    assert haversine_km(SAN_FRANCISCO, SAN_FRANCISCO) == 0.0


def test_haversine_known_distances():
    assert 13.0 < haversine_km(SAN_FRANCISCO, OAKLAND) < 14.0
    one_degree_of_latitude = haversine_km(GeoPoint(lat=0.0, lng=0.0), GeoPoint(lat=1.0, lng=0.0))
    assert one_degree_of_latitude == pytest.approx(111.195, abs=0.01)


def test_unit_conversions():
    assert km_to_miles(1.0) == pytest.approx(0.621371)
    assert miles_to_km(1.0) == pytest.approx(1.60934)
    assert km_to_miles(18.0) == pytest.approx(11.184678)


def test_format_miles_thresholds():
    assert format_miles(0.1) == "< 0.1 mi"
    assert format_miles(1.0) == "0.6 mi"
    assert format_miles(18.0) == "11.2 mi"
    assert format_miles(30.0) == "18.6 mi"


def test_format_distance_in_kilometres():
    assert format_distance(0.05, DistanceUnit.km) == "< 0.1 km"
    assert format_distance(0.5, DistanceUnit.km) == "0.5 km"
    assert format_distance(1.0, DistanceUnit.km) == "1 km"
    assert format_distance(2.0, DistanceUnit.km) == "2 km"
    assert format_distance(12.4, DistanceUnit.km) == "12.4 km"
    assert format_distance(18.0, DistanceUnit.mi) == "11.2 mi"


def test_format_rounds_half_up_before_dropping_trailing_zero():
    assert format_distance(2.25, DistanceUnit.km) == "2.3 km"
    assert format_distance(9.96, DistanceUnit.km) == "10 km"
    assert format_distance(9.94, DistanceUnit.km) == "9.9 km"


def test_geopoint_range_flags():
    assert SAN_FRANCISCO.in_range
    assert not GeoPoint(lat=91.0, lng=0.0).in_range
    assert not GeoPoint(lat=float("nan"), lng=0.0).is_finite
