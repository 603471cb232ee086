from __future__ import annotations

import pytest

from services.common.errors import MalformedResponse, ProviderTimeout, SourceUnavailable
from services.geo.models import GeoPoint
from services.poi_source.providers import OverpassPoiSource, build_overpass_query, parse_elements


CENTER = GeoPoint(lat=37.7749, lng=-122.4194)


class RecordingTransport:
    def __init__(self, payload=None, error: Exception | None = None):
        self.payload = payload
        self.error = error
        self.calls = []

    def request(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.payload


ELEMENTS = [
    {
        "type": "node",
        "id": 1,
        "lat": 37.79,
        "lon": -122.40,
        "tags": {"name": "Far Market", "addr:street": "Main St", "addr:housenumber": "12", "addr:city": "SF"},
    },
    {"type": "node", "id": 2, "lat": 37.776, "lon": -122.42, "tags": {"brand": "QuickStop"}},
    {"type": "way", "id": 3, "center": {"lat": 37.78, "lon": -122.419}, "tags": {"shop": "hardware"}},
    {"type": "node", "id": 2, "lat": 37.776, "lon": -122.42, "tags": {"brand": "QuickStop"}},
    {"type": "relation", "id": 4, "tags": {"name": "No Coordinates"}},
]


def _source(transport):
    return OverpassPoiSource(
        base_url="https://overpass.example/api/interpreter",
        transport=transport,
        allowed_hosts={"overpass.example"},
    )


def test_parse_elements_dedupes_sorts_and_names():
    candidates = parse_elements(CENTER, ELEMENTS)
    assert [candidate.id for candidate in candidates] == ["node/2", "way/3", "node/1"]
    by_id = {candidate.id: candidate for candidate in candidates}
    assert by_id["node/2"].name == "QuickStop"
    assert by_id["way/3"].name == "Unnamed store"
    assert by_id["way/3"].location == GeoPoint(lat=37.78, lng=-122.419)
    assert by_id["node/1"].address == "Main St, 12, SF"
    assert by_id["node/2"].address == ""
    distances = [candidate.straight_line_km for candidate in candidates]
    assert distances == sorted(distances)
    assert all(distance == round(distance, 2) for distance in distances)


def test_parse_elements_rejects_schema_violations():
    with pytest.raises(MalformedResponse):
        parse_elements(CENTER, [{"lat": 1.0, "lon": 2.0}])
    with pytest.raises(MalformedResponse):
        parse_elements(CENTER, ["not-an-object"])


def test_query_covers_shops_and_amenities():
    query = build_overpass_query(CENTER, 5000)
    assert 'nwr["shop"](around:5000,37.7749,-122.4194);' in query
    assert 'amenity"~"marketplace|pharmacy|fuel"' in query
    assert query.endswith("out center;")


def test_fetch_nearby_posts_query_and_parses():
    transport = RecordingTransport({"elements": ELEMENTS})
    candidates = _source(transport).fetch_nearby(CENTER, 2500)
    assert len(candidates) == 3
    call = transport.calls[0]
    assert call["method"] == "POST"
    assert "around:2500," in call["text_body"]


def test_fetch_nearby_timeout_becomes_source_unavailable():
    transport = RecordingTransport(error=ProviderTimeout("Request timed out"))
    with pytest.raises(SourceUnavailable) as excinfo:
        _source(transport).fetch_nearby(CENTER)
    assert excinfo.value.code == "TIMEOUT"


def test_fetch_nearby_malformed_payloads():
    with pytest.raises(MalformedResponse):
        _source(RecordingTransport({"elements": {"oops": True}})).fetch_nearby(CENTER)
    with pytest.raises(MalformedResponse):
        _source(RecordingTransport(["unexpected"])).fetch_nearby(CENTER)
    assert _source(RecordingTransport({})).fetch_nearby(CENTER) == []


@pytest.mark.parametrize(
    "element",
    [
        {"type": "node", "id": 9, "lat": 37.78, "lon": -122.41, "tags": ["shop"]},
        {"type": "way", "id": 9, "center": [37.78, -122.41], "tags": {"shop": "bakery"}},
    ],
)
def test_wrongly_typed_element_fields_are_malformed(element):
    with pytest.raises(MalformedResponse):
        parse_elements(CENTER, [element])
    with pytest.raises(MalformedResponse):
        _source(RecordingTransport({"elements": [element]})).fetch_nearby(CENTER)
