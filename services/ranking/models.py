from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from services.common.enums import DistanceUnit
from services.poi_source.models import Candidate


@dataclass(frozen=True)
class RankedResult:
    candidate: Candidate
    distance_km: float
    duration_minutes: Optional[float] = None
    reported_price: Optional[float] = None

    @property
    def id(self) -> str:
        return self.candidate.id

    @property
    def name(self) -> str:
        return self.candidate.name


@dataclass(frozen=True)
class OracleSignals:
    stock: Dict[str, bool] = field(default_factory=dict)
    prices: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class RankingConfig:
    max_results: int = 10
    alternatives_threshold: int = 2
    max_alternatives: int = 3
    unit: DistanceUnit = DistanceUnit.mi


@dataclass(frozen=True)
class RankingResult:
    results: List[RankedResult]
    best_id: str
    summary: str
    reordered: bool = False
    alternatives: List[str] = field(default_factory=list)
