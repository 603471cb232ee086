from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from services.common.enums import GeoProvider


@dataclass(frozen=True)
class GeocodeResult:
    lat: float
    lng: float
    display_name: str
    provider: GeoProvider
    metadata: Dict[str, Any] = field(default_factory=dict)
