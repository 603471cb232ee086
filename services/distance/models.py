from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from services.common.enums import DistanceProviderName, DistanceSource
from services.common.errors import ImplausibleDistance, SupplyMapError
from services.geo.models import GeoPoint
from services.poi_source.models import Candidate


@dataclass(frozen=True)
class RoadDistance:
    distance_km: float
    duration_minutes: Optional[float] = None

    @property
    def is_gap(self) -> bool:
        return self.distance_km <= 0


NO_ROUTE = RoadDistance(distance_km=0.0, duration_minutes=None)


@dataclass(frozen=True)
class ProviderAttempt:
    provider: DistanceProviderName
    purpose: str
    distances: Optional[List[RoadDistance]] = None
    error: Optional[SupplyMapError] = None
    attempted: bool = True

    @property
    def ok(self) -> bool:
        return self.error is None and self.distances is not None

    def describe(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "purpose": self.purpose,
            "attempted": self.attempted,
            "ok": self.ok,
            "error_code": self.error.code if self.error else None,
            "error": str(self.error) if self.error else None,
        }


@dataclass(frozen=True)
class ResolvedCandidate:
    candidate: Candidate
    distance_km: float
    duration_minutes: Optional[float] = None


@dataclass(frozen=True)
class DistanceResolution:
    source: DistanceSource
    results: List[ResolvedCandidate]
    primary_configured: bool
    attempts: List[ProviderAttempt] = field(default_factory=list)
    patched_indices: List[int] = field(default_factory=list)
    rejected: List[ImplausibleDistance] = field(default_factory=list)
    requested_count: int = 0
    dropped_count: int = 0

    @property
    def provider_error(self) -> Optional[str]:
        for attempt in self.attempts:
            if attempt.purpose == "primary" and attempt.error is not None:
                return str(attempt.error)
        return None

    def diagnostics(self) -> Dict[str, Any]:
        return {
            "distance_source": self.source.value,
            "primary_configured": self.primary_configured,
            "provider_error": self.provider_error,
            "attempts": [attempt.describe() for attempt in self.attempts],
            "patched_indices": list(self.patched_indices),
            "rejected_ids": [error.details.get("candidate_id") for error in self.rejected],
            "requested_count": self.requested_count,
            "dropped_count": self.dropped_count,
        }


def destinations_for(candidates: Sequence[Candidate]) -> List[GeoPoint]:
    return [candidate.location for candidate in candidates]
