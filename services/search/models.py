from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from services.common.enums import DistanceSource, DistanceUnit
from services.geo.models import GeoPoint
from services.ranking.models import RankedResult


@dataclass(frozen=True)
class SearchRequest:
    item: str
    origin: GeoPoint
    max_distance_km: Optional[float] = None
    unit: DistanceUnit = DistanceUnit.mi


@dataclass(frozen=True)
class SearchOutcome:
    item: str
    results: List[RankedResult]
    best_id: str
    summary: str
    distance_source: DistanceSource
    alternatives: List[str] = field(default_factory=list)
    diagnostics: Optional[Dict[str, Any]] = None
