from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, TypeVar

from services.common.enums import DistanceProviderName
from services.common.errors import MalformedResponse, MissingCredential, ResultCountMismatch, SourceUnavailable
from services.common.http import HttpTransport
from services.common.local_bind import ensure_allowed_url
from services.distance.credentials import Credential
from services.distance.models import NO_ROUTE, RoadDistance
from services.geo.models import GeoPoint

DEFAULT_GOOGLE_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"
DEFAULT_OSRM_URL = "https://router.project-osrm.org"
MAX_DESTINATIONS_PER_REQUEST = 25
AUTH_REJECTED_HTTP_STATUSES = (401, 403)

T = TypeVar("T")


class DistanceProvider(Protocol):
    provider: DistanceProviderName

    @property
    def configured(self) -> bool: ...

    def resolve(self, origin: GeoPoint, destinations: Sequence[GeoPoint]) -> List[RoadDistance]: ...


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def meters_to_km(value: Any) -> float:
    return round(float(value) / 1000.0, 2)


def seconds_to_minutes(value: Any) -> float:
    return float(round(float(value) / 60.0))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == value


def _field_value(element: Dict[str, Any], key: str) -> Any:
    field = element.get(key)
    return field.get("value") if isinstance(field, dict) else None


def _ensure_count(results: Sequence[RoadDistance], expected: int, provider: DistanceProviderName) -> None:
    if len(results) != expected:
        raise ResultCountMismatch(
            "Result count mismatch",
            details={"provider": provider.value, "expected": expected, "received": len(results)},
        )


class GoogleDistanceMatrixProvider:
    provider = DistanceProviderName.google

    def __init__(
        self,
        *,
        credential: Optional[Credential],
        base_url: str = DEFAULT_GOOGLE_URL,
        transport: Optional[HttpTransport] = None,
        allowed_hosts: Optional[Iterable[str]] = None,
        timeout_s: float = 12.0,
        batch_limit: int = MAX_DESTINATIONS_PER_REQUEST,
        mode: str = "driving",
    ) -> None:
        ensure_allowed_url(base_url, allowed_hosts=allowed_hosts)
        self._credential = credential
        self._base_url = base_url
        self._transport = transport or HttpTransport(allowed_hosts=allowed_hosts, timeout_s=timeout_s)
        self._timeout_s = timeout_s
        self._batch_limit = batch_limit
        self._mode = mode

    @property
    def configured(self) -> bool:
        return self._credential is not None and self._credential.configured

    def resolve(self, origin: GeoPoint, destinations: Sequence[GeoPoint]) -> List[RoadDistance]:
        if not self.configured:
            raise MissingCredential("Google Distance Matrix credential not set")
        results: List[RoadDistance] = []
        for chunk in chunked(destinations, self._batch_limit):
            results.extend(self._resolve_chunk(origin, chunk))
        _ensure_count(results, len(destinations), self.provider)
        return results

    def _resolve_chunk(self, origin: GeoPoint, chunk: List[GeoPoint]) -> List[RoadDistance]:
        assert self._credential is not None
        params: Dict[str, Any] = {
            "origins": f"{origin.lat},{origin.lng}",
            "destinations": "|".join(f"{point.lat},{point.lng}" for point in chunk),
            "mode": self._mode,
        }
        headers = self._credential.headers()
        params.update(self._credential.query_params())
        try:
            response = self._transport.request(
                method="GET",
                url=self._base_url,
                params=params,
                headers=headers,
                timeout_s=self._timeout_s,
            )
        except SourceUnavailable as exc:
            if exc.details.get("status") in AUTH_REJECTED_HTTP_STATUSES:
                self._credential.reset()
            raise
        if not isinstance(response, dict):
            raise MalformedResponse("Google Distance Matrix response is not an object")
        status = response.get("status")
        if status != "OK":
            if status == "REQUEST_DENIED":
                self._credential.reset()
            message = " - ".join(str(part) for part in (status, response.get("error_message")) if part)
            raise SourceUnavailable(
                f"Google Distance Matrix: {message or 'no status'}",
                code="PROVIDER_REJECTED",
                details={"status": status, "error_message": response.get("error_message")},
            )
        rows = response.get("rows")
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            raise MalformedResponse("Google Distance Matrix response has no rows")
        elements = rows[0].get("elements")
        if not isinstance(elements, list):
            raise MalformedResponse("Google Distance Matrix row has no elements")
        decoded = [self._decode_element(element) for element in elements]
        _ensure_count(decoded, len(chunk), self.provider)
        return decoded

    @staticmethod
    def _decode_element(element: Any) -> RoadDistance:
        if not isinstance(element, dict) or element.get("status") != "OK":
            return NO_ROUTE
        distance = _field_value(element, "distance")
        if not _is_number(distance):
            return NO_ROUTE
        duration = _field_value(element, "duration")
        return RoadDistance(
            distance_km=meters_to_km(distance),
            duration_minutes=seconds_to_minutes(duration) if _is_number(duration) else None,
        )


class OsrmTableProvider:
    provider = DistanceProviderName.osrm

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_OSRM_URL,
        transport: Optional[HttpTransport] = None,
        allowed_hosts: Optional[Iterable[str]] = None,
        timeout_s: float = 12.0,
        batch_limit: int = MAX_DESTINATIONS_PER_REQUEST,
        profile: str = "driving",
    ) -> None:
        ensure_allowed_url(base_url, allowed_hosts=allowed_hosts)
        self._base_url = base_url.rstrip("/")
        self._transport = transport or HttpTransport(allowed_hosts=allowed_hosts, timeout_s=timeout_s)
        self._timeout_s = timeout_s
        self._batch_limit = batch_limit
        self._profile = profile

    @property
    def configured(self) -> bool:
        return True

    def resolve(self, origin: GeoPoint, destinations: Sequence[GeoPoint]) -> List[RoadDistance]:
        results: List[RoadDistance] = []
        for chunk in chunked(destinations, self._batch_limit):
            results.extend(self._resolve_chunk(origin, chunk))
        _ensure_count(results, len(destinations), self.provider)
        return results

    def _resolve_chunk(self, origin: GeoPoint, chunk: List[GeoPoint]) -> List[RoadDistance]:
        # OSRM takes lng,lat pairs; index 0 is the origin.
        coordinates = ";".join(f"{point.lng},{point.lat}" for point in [origin, *chunk])
        response = self._transport.request(
            method="GET",
            url=f"{self._base_url}/table/v1/{self._profile}/{coordinates}",
            params={
                "sources": "0",
                "destinations": ";".join(str(index) for index in range(1, len(chunk) + 1)),
                "annotations": "duration,distance",
            },
            timeout_s=self._timeout_s,
        )
        if not isinstance(response, dict) or response.get("code") != "Ok":
            code = response.get("code") if isinstance(response, dict) else None
            raise MalformedResponse("OSRM table response not Ok", details={"code": code})
        durations = self._first_row(response, "durations")
        distances = self._first_row(response, "distances")
        if len(durations) != len(chunk) or len(distances) != len(chunk):
            raise ResultCountMismatch(
                "Result count mismatch",
                details={"provider": self.provider.value, "expected": len(chunk), "received": len(distances)},
            )
        return [
            RoadDistance(
                distance_km=meters_to_km(distance) if _is_number(distance) else 0.0,
                duration_minutes=seconds_to_minutes(duration) if _is_number(duration) else None,
            )
            for duration, distance in zip(durations, distances)
        ]

    @staticmethod
    def _first_row(response: Dict[str, Any], key: str) -> List[Any]:
        matrix = response.get(key)
        if not isinstance(matrix, list) or not matrix or not isinstance(matrix[0], list):
            raise MalformedResponse(f"OSRM table response missing {key}")
        return matrix[0]
