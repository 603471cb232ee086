from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Set

from services.common.enums import PoiProvider
from services.common.errors import MalformedResponse, ProviderTimeout, SourceUnavailable
from services.common.http import HttpTransport
from services.common.local_bind import ensure_allowed_url
from services.geo.distance import haversine_km
from services.geo.models import GeoPoint
from services.poi_source.models import Candidate

DEFAULT_OVERPASS_URL = "https://overpass-api.de/api/interpreter"
DEFAULT_RADIUS_M = 5000
UNNAMED_STORE = "Unnamed store"


def build_overpass_query(center: GeoPoint, radius_m: float) -> str:
    around = f"around:{round(radius_m)},{center.lat},{center.lng}"
    return "\n".join(
        [
            "[out:json][timeout:12];",
            "(",
            f'  nwr["shop"]({around});',
            f'  nwr["amenity"~"marketplace|pharmacy|fuel"]({around});',
            ");",
            "out center;",
        ]
    )


def _display_name(tags: Dict[str, str]) -> str:
    return tags.get("name") or tags.get("brand") or UNNAMED_STORE


def _address(tags: Dict[str, str]) -> str:
    parts = [
        tags.get("addr:street"),
        tags.get("addr:housenumber"),
        tags.get("addr:city") or tags.get("addr:town") or tags.get("addr:village"),
        tags.get("addr:state"),
        tags.get("addr:postcode"),
    ]
    return ", ".join(part for part in parts if part)


def _coordinates(element: Dict[str, Any]) -> Optional[GeoPoint]:
    lat = element.get("lat")
    lon = element.get("lon")
    if lat is None or lon is None:
        center = element.get("center") or {}
        if not isinstance(center, dict):
            raise MalformedResponse("Overpass element center is not an object")
        lat = center.get("lat")
        lon = center.get("lon")
    if lat is None or lon is None:
        return None
    try:
        return GeoPoint(lat=float(lat), lng=float(lon))
    except (TypeError, ValueError) as exc:
        raise MalformedResponse("Invalid element coordinate", details={"lat": str(lat), "lon": str(lon)}) from exc


def parse_elements(center: GeoPoint, elements: Iterable[Any]) -> List[Candidate]:
    candidates: List[Candidate] = []
    seen: Set[str] = set()
    for element in elements:
        if not isinstance(element, dict):
            raise MalformedResponse("Overpass element is not an object")
        if "type" not in element or "id" not in element:
            raise MalformedResponse("Overpass element is missing type/id")
        location = _coordinates(element)
        if location is None:
            continue
        candidate_id = f"{element['type']}/{element['id']}"
        if candidate_id in seen:
            continue
        seen.add(candidate_id)
        tags = element.get("tags") or {}
        if not isinstance(tags, dict):
            raise MalformedResponse("Overpass element tags is not an object", details={"id": candidate_id})
        candidates.append(
            Candidate(
                id=candidate_id,
                name=_display_name(tags),
                location=location,
                address=_address(tags),
                straight_line_km=round(haversine_km(center, location), 2),
                tags=dict(tags),
            )
        )
    candidates.sort(key=lambda candidate: candidate.straight_line_km)
    return candidates


class OverpassPoiSource:
    provider = PoiProvider.overpass

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_OVERPASS_URL,
        transport: Optional[HttpTransport] = None,
        allowed_hosts: Optional[Iterable[str]] = None,
        timeout_s: float = 20.0,
    ) -> None:
        ensure_allowed_url(base_url, allowed_hosts=allowed_hosts)
        self._base_url = base_url
        self._transport = transport or HttpTransport(allowed_hosts=allowed_hosts, timeout_s=timeout_s)
        self._timeout_s = timeout_s

    def fetch_nearby(self, center: GeoPoint, radius_m: float = DEFAULT_RADIUS_M) -> List[Candidate]:
        try:
            response = self._transport.request(
                method="POST",
                url=self._base_url,
                text_body=build_overpass_query(center, radius_m),
                timeout_s=self._timeout_s,
            )
        except ProviderTimeout as exc:
            raise SourceUnavailable("Overpass request timed out", code="TIMEOUT", details=exc.details) from exc
        if not isinstance(response, dict):
            raise MalformedResponse("Overpass response is not an object")
        elements = response.get("elements")
        if elements is None:
            elements = []
        if not isinstance(elements, list):
            raise MalformedResponse("Overpass elements is not a list")
        return parse_elements(center, elements)
