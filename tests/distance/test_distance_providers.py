from __future__ import annotations

import pytest

from services.common.enums import DistanceSource
from services.common.errors import (
    MalformedResponse,
    MissingCredential,
    OutboundUrlError,
    ProviderTimeout,
    ResultCountMismatch,
    SourceUnavailable,
)
from services.distance.credentials import ApiKeyCredential, IssuedToken, OAuthTokenCredential, TokenCache
from services.distance.models import NO_ROUTE, RoadDistance
from services.distance.providers import (
    GoogleDistanceMatrixProvider,
    OsrmTableProvider,
    chunked,
    meters_to_km,
    seconds_to_minutes,
)
from services.distance.service import DistanceResolver
from services.geo.models import GeoPoint
from services.poi_source.models import Candidate


ORIGIN = GeoPoint(lat=0.0, lng=0.0)
GOOGLE_URL = "https://maps.example/distancematrix/json"
OSRM_URL = "https://osrm.example"
ALLOWED = {"maps.example", "osrm.example"}


class RecordingTransport:
    def __init__(self, responder=None, *, error: Exception | None = None):
        self._responder = responder
        self._error = error
        self.calls = []

    def request(self, **kwargs):
        self.calls.append(kwargs)
        if self._error:
            raise self._error
        return self._responder(kwargs)


def _destinations(count: int) -> list[GeoPoint]:
    return [GeoPoint(lat=0.0, lng=float(index + 1)) for index in range(count)]


def _osrm_responder(call):
    # Distance in metres is the destination longitude times 1000.
    path = call["url"].split("/driving/")[1]
    lngs = [float(pair.split(",")[0]) for pair in path.split(";")[1:]]
    return {
        "code": "Ok",
        "distances": [[lng * 1000.0 for lng in lngs]],
        "durations": [[lng * 60.0 for lng in lngs]],
    }


def _google_responder(call):
    count = len(call["params"]["destinations"].split("|"))
    return {
        "status": "OK",
        "rows": [
            {
                "elements": [
                    {"status": "OK", "distance": {"value": 2000}, "duration": {"value": 300}}
                    for _ in range(count)
                ]
            }
        ],
    }


def _google(transport, key: str | None = "test-key") -> GoogleDistanceMatrixProvider:
    return GoogleDistanceMatrixProvider(
        credential=ApiKeyCredential(key),
        base_url=GOOGLE_URL,
        transport=transport,
        allowed_hosts=ALLOWED,
    )


def _osrm(transport) -> OsrmTableProvider:
    return OsrmTableProvider(base_url=OSRM_URL, transport=transport, allowed_hosts=ALLOWED)


def test_chunked_and_unit_helpers():
    assert [len(chunk) for chunk in chunked(list(range(30)), 25)] == [25, 5]
    assert list(chunked([], 25)) == []
    with pytest.raises(ValueError):
        list(chunked([1], 0))
    assert meters_to_km(12340) == 12.34
    assert seconds_to_minutes(1500) == 25.0
    assert seconds_to_minutes(89) == 1.0


def test_osrm_batches_thirty_destinations_into_two_requests():
    transport = RecordingTransport(_osrm_responder)
    results = _osrm(transport).resolve(ORIGIN, _destinations(30))

    assert len(transport.calls) == 2
    assert [len(call["params"]["destinations"].split(";")) for call in transport.calls] == [25, 5]
    assert [result.distance_km for result in results] == [float(index + 1) for index in range(30)]
    assert results[0].duration_minutes == 1.0


def test_osrm_request_shape():
    transport = RecordingTransport(_osrm_responder)
    _osrm(transport).resolve(GeoPoint(lat=37.7749, lng=-122.4194), [GeoPoint(lat=37.8044, lng=-122.2712)])
    call = transport.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://osrm.example/table/v1/driving/-122.4194,37.7749;-122.2712,37.8044"
    assert call["params"] == {"sources": "0", "destinations": "1", "annotations": "duration,distance"}


def test_osrm_null_cells_become_gaps():
    transport = RecordingTransport(
        lambda call: {"code": "Ok", "distances": [[None, 1500.0]], "durations": [[None, None]]}
    )
    results = _osrm(transport).resolve(ORIGIN, _destinations(2))
    assert results[0] == RoadDistance(distance_km=0.0, duration_minutes=None)
    assert results[0].is_gap
    assert results[1] == RoadDistance(distance_km=1.5, duration_minutes=None)


def test_osrm_rejects_bad_payloads():
    with pytest.raises(MalformedResponse):
        _osrm(RecordingTransport(lambda call: {"code": "NoSegment"})).resolve(ORIGIN, _destinations(1))
    with pytest.raises(MalformedResponse):
        _osrm(RecordingTransport(lambda call: {"code": "Ok", "durations": [[60.0]]})).resolve(
            ORIGIN, _destinations(1)
        )
    with pytest.raises(ResultCountMismatch):
        _osrm(
            RecordingTransport(lambda call: {"code": "Ok", "distances": [[1.0]], "durations": [[1.0]]})
        ).resolve(ORIGIN, _destinations(2))


def test_osrm_timeout_propagates():
    transport = RecordingTransport(error=ProviderTimeout("Request timed out"))
    with pytest.raises(ProviderTimeout):
        _osrm(transport).resolve(ORIGIN, _destinations(1))


def test_google_without_credential_makes_no_request():
    transport = RecordingTransport(_google_responder)
    provider = _google(transport, key=None)
    assert not provider.configured
    with pytest.raises(MissingCredential):
        provider.resolve(ORIGIN, _destinations(3))
    assert transport.calls == []


def test_google_batches_and_sends_key():
    transport = RecordingTransport(_google_responder)
    results = _google(transport).resolve(ORIGIN, _destinations(30))

    assert len(transport.calls) == 2
    assert [len(call["params"]["destinations"].split("|")) for call in transport.calls] == [25, 5]
    assert all(call["params"]["key"] == "test-key" for call in transport.calls)
    assert transport.calls[0]["params"]["origins"] == "0.0,0.0"
    assert len(results) == 30
    assert results[0] == RoadDistance(distance_km=2.0, duration_minutes=5.0)


def test_google_element_failures_decode_as_gaps():
    payload = {
        "status": "OK",
        "rows": [
            {
                "elements": [
                    {"status": "OK", "distance": {"value": 12340}, "duration": {"value": 600}},
                    {"status": "ZERO_RESULTS"},
                    {"status": "OK", "distance": {"value": "far"}},
                ]
            }
        ],
    }
    results = _google(RecordingTransport(lambda call: payload)).resolve(ORIGIN, _destinations(3))
    assert results == [RoadDistance(distance_km=12.34, duration_minutes=10.0), NO_ROUTE, NO_ROUTE]


def test_google_rejected_status_is_source_unavailable():
    payload = {"status": "REQUEST_DENIED", "error_message": "The provided API key is invalid."}
    with pytest.raises(SourceUnavailable) as excinfo:
        _google(RecordingTransport(lambda call: payload)).resolve(ORIGIN, _destinations(1))
    assert excinfo.value.code == "PROVIDER_REJECTED"
    assert excinfo.value.details["status"] == "REQUEST_DENIED"
    assert "REQUEST_DENIED" in str(excinfo.value)


def test_google_result_count_mismatch():
    payload = {"status": "OK", "rows": [{"elements": [{"status": "ZERO_RESULTS"}]}]}
    with pytest.raises(ResultCountMismatch):
        _google(RecordingTransport(lambda call: payload)).resolve(ORIGIN, _destinations(2))


def test_google_missing_rows_is_malformed():
    with pytest.raises(MalformedResponse):
        _google(RecordingTransport(lambda call: {"status": "OK", "rows": []})).resolve(ORIGIN, _destinations(1))


def test_providers_refuse_unlisted_hosts():
    with pytest.raises(OutboundUrlError):
        OsrmTableProvider(base_url="https://elsewhere.example", transport=RecordingTransport(), allowed_hosts=ALLOWED)
    with pytest.raises(OutboundUrlError):
        GoogleDistanceMatrixProvider(
            credential=None,
            base_url="ftp://maps.example/file",
            transport=RecordingTransport(),
            allowed_hosts=ALLOWED,
        )


@pytest.mark.parametrize(
    "element,expected",
    [
        ({"status": "OK", "distance": 18000}, NO_ROUTE),
        ({"status": "OK", "distance": ["18000"], "duration": {"value": 60}}, NO_ROUTE),
        ({"status": "OK", "distance": {"value": 18000}, "duration": "25 mins"}, RoadDistance(distance_km=18.0)),
        ("OK", NO_ROUTE),
    ],
)
def test_google_wrong_field_types_decode_as_gaps(element, expected):
    payload = {"status": "OK", "rows": [{"elements": [element]}]}
    results = _google(RecordingTransport(lambda call: payload)).resolve(ORIGIN, _destinations(1))
    assert results == [expected]


def test_google_malformed_element_is_patched_from_osrm():
    payload = {"status": "OK", "rows": [{"elements": [{"status": "OK", "distance": 18000}]}]}
    google = _google(RecordingTransport(lambda call: payload))
    osrm = _osrm(
        RecordingTransport(lambda call: {"code": "Ok", "distances": [[150000.0]], "durations": [[6000.0]]})
    )

    resolution = DistanceResolver(providers=[google, osrm]).resolve(
        ORIGIN,
        [Candidate(id="node/1", name="Store", location=GeoPoint(lat=0.0, lng=1.0), address="", straight_line_km=111.19)],
    )

    assert resolution.source == DistanceSource.primary
    assert resolution.patched_indices == [0]
    assert resolution.results[0].distance_km == 150.0
    assert resolution.results[0].duration_minutes == 100.0


class RotatingFetcher:
    def __init__(self):
        self.calls = 0

    def __call__(self) -> IssuedToken:
        self.calls += 1
        return IssuedToken(value=f"token-{self.calls}", expires_in_s=3600)


def _oauth_google(transport, fetcher) -> GoogleDistanceMatrixProvider:
    return GoogleDistanceMatrixProvider(
        credential=OAuthTokenCredential(fetcher=fetcher, cache=TokenCache()),
        base_url=GOOGLE_URL,
        transport=transport,
        allowed_hosts=ALLOWED,
    )


def test_rejected_token_is_refetched_on_next_request():
    fetcher = RotatingFetcher()
    payloads = [{"status": "REQUEST_DENIED", "error_message": "expired"}]
    transport = RecordingTransport(lambda call: payloads.pop(0) if payloads else _google_responder(call))
    provider = _oauth_google(transport, fetcher)

    with pytest.raises(SourceUnavailable):
        provider.resolve(ORIGIN, _destinations(1))
    provider.resolve(ORIGIN, _destinations(1))

    assert fetcher.calls == 2
    assert [call["headers"]["Authorization"] for call in transport.calls] == ["Bearer token-1", "Bearer token-2"]


def test_http_auth_failure_resets_token():
    fetcher = RotatingFetcher()
    transport = RecordingTransport(
        error=SourceUnavailable("HTTP 401", code="HTTP_ERROR", details={"status": 401})
    )
    provider = _oauth_google(transport, fetcher)

    for _ in range(2):
        with pytest.raises(SourceUnavailable):
            provider.resolve(ORIGIN, _destinations(1))

    assert fetcher.calls == 2


def test_server_error_keeps_token():
    fetcher = RotatingFetcher()
    transport = RecordingTransport(
        error=SourceUnavailable("HTTP 503", code="HTTP_ERROR", details={"status": 503})
    )
    provider = _oauth_google(transport, fetcher)

    for _ in range(2):
        with pytest.raises(SourceUnavailable):
            provider.resolve(ORIGIN, _destinations(1))

    assert fetcher.calls == 1
