from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from services.geo.models import GeoPoint


@dataclass(frozen=True)
class Candidate:
    id: str
    name: str
    location: GeoPoint
    address: str
    straight_line_km: float
    tags: Dict[str, str] = field(default_factory=dict)
