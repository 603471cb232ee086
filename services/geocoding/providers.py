from __future__ import annotations

from typing import Any, Iterable, Optional

from services.common.enums import GeoProvider
from services.common.errors import MalformedResponse
from services.common.http import HttpTransport
from services.common.local_bind import ensure_allowed_url
from services.geocoding.models import GeocodeResult

DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org"


def _normalize_coordinate(value: Any) -> float:
    try:
        return round(float(value), 6)
    except (TypeError, ValueError) as exc:
        raise MalformedResponse("Invalid coordinate", details={"value": str(value)}) from exc


class NominatimGeocoder:
    provider = GeoProvider.nominatim

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_NOMINATIM_URL,
        transport: Optional[HttpTransport] = None,
        allowed_hosts: Optional[Iterable[str]] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        ensure_allowed_url(base_url, allowed_hosts=allowed_hosts)
        self._base_url = base_url.rstrip("/")
        self._transport = transport or HttpTransport(allowed_hosts=allowed_hosts)
        self._user_agent = user_agent

    def geocode(self, query: str) -> Optional[GeocodeResult]:
        query = query.strip()
        if not query:
            return None
        headers = {"User-Agent": self._user_agent} if self._user_agent else None
        response = self._transport.request(
            method="GET",
            url=f"{self._base_url}/search",
            params={"q": query, "format": "json", "limit": 1, "addressdetails": 0},
            headers=headers,
        )
        # Nominatim returns a list of results.
        first = response[0] if isinstance(response, list) and response else None
        if not isinstance(first, dict):
            return None
        return GeocodeResult(
            lat=_normalize_coordinate(first.get("lat")),
            lng=_normalize_coordinate(first.get("lon")),
            display_name=first.get("display_name") or "",
            provider=self.provider,
            metadata={"raw": first},
        )
