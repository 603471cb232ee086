from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from services.common.enums import DistanceSource
from services.common.errors import ImplausibleDistance, MissingCredential, ResultCountMismatch, SupplyMapError
from services.distance.models import (
    DistanceResolution,
    ProviderAttempt,
    ResolvedCandidate,
    RoadDistance,
    destinations_for,
)
from services.distance.providers import MAX_DESTINATIONS_PER_REQUEST, DistanceProvider
from services.geo.distance import haversine_km
from services.geo.models import GeoPoint
from services.poi_source.models import Candidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DistanceEvent:
    event_type: str
    details: Dict[str, Any]
    recorded_at: datetime


class DistanceObservability:
    def __init__(self) -> None:
        self._events: list[DistanceEvent] = []

    def record(self, event_type: str, **details: Any) -> None:
        self._events.append(
            DistanceEvent(
                event_type=event_type,
                details=details,
                recorded_at=datetime.now(tz=timezone.utc),
            )
        )

    def events(self) -> list[DistanceEvent]:
        return list(self._events)


@dataclass(frozen=True)
class PlausibilityBand:
    min_ratio: float = 0.5
    max_ratio: float = 15.0
    assumed_speed_kmh: float = 50.0

    def road_km(self, distance: RoadDistance) -> float:
        """Road distance to judge, imputing one from drive time when the provider gave none."""
        if distance.distance_km <= 0 and distance.duration_minutes is not None and distance.duration_minutes > 0:
            return round(distance.duration_minutes / 60.0 * self.assumed_speed_kmh, 2)
        return distance.distance_km

    def accepts(self, road_km: float, straight_km: float) -> bool:
        return road_km > 0 and road_km >= straight_km * self.min_ratio and road_km <= straight_km * self.max_ratio

    def check(self, candidate: Candidate, road_km: float, straight_km: float) -> None:
        if not self.accepts(road_km, straight_km):
            raise ImplausibleDistance(
                "Road distance outside plausibility band",
                details={
                    "candidate_id": candidate.id,
                    "road_km": road_km,
                    "straight_km": round(straight_km, 3),
                },
            )


class DistanceResolver:
    """Resolve road distances for candidates across an ordered provider chain.

    The first configured provider that succeeds grounds the outcome. Gaps in
    its answer are patched from the providers after it, but only with values
    that are themselves positive. Every answer then passes through the
    plausibility band; straight-line distance is never returned as a result.
    """

    def __init__(
        self,
        *,
        providers: Sequence[DistanceProvider],
        band: Optional[PlausibilityBand] = None,
        max_for_road: int = MAX_DESTINATIONS_PER_REQUEST,
        observability: Optional[DistanceObservability] = None,
    ) -> None:
        if max_for_road <= 0:
            raise ValueError("max_for_road must be positive")
        self._providers = list(providers)
        self._band = band or PlausibilityBand()
        self._max_for_road = max_for_road
        self._observability = observability or DistanceObservability()

    @property
    def observability(self) -> DistanceObservability:
        return self._observability

    @property
    def providers(self) -> List[DistanceProvider]:
        return list(self._providers)

    def resolve(self, origin: GeoPoint, candidates: Sequence[Candidate]) -> DistanceResolution:
        requested = list(candidates[: self._max_for_road])
        dropped = len(candidates) - len(requested)
        primary_configured = bool(self._providers) and self._providers[0].configured
        if not requested:
            self._observability.record("resolution", distance_source=DistanceSource.none.value, requested_count=0)
            return DistanceResolution(
                source=DistanceSource.none,
                results=[],
                primary_configured=primary_configured,
                dropped_count=dropped,
            )

        destinations = destinations_for(requested)
        attempts: List[ProviderAttempt] = []
        distances: Optional[List[RoadDistance]] = None
        source = DistanceSource.none
        patched: List[int] = []
        for index, provider in enumerate(self._providers):
            purpose = "primary" if index == 0 else "fallback"
            attempt = self._attempt(provider, origin, destinations, purpose=purpose)
            attempts.append(attempt)
            if not attempt.ok:
                continue
            assert attempt.distances is not None
            source = DistanceSource.primary if index == 0 else DistanceSource.secondary
            distances, patched = self._patch_gaps(
                attempt.distances,
                origin,
                destinations,
                self._providers[index + 1 :],
                attempts,
            )
            break

        results: List[ResolvedCandidate] = []
        rejected: List[ImplausibleDistance] = []
        if distances is not None:
            results, rejected = self._reconcile(origin, requested, distances)

        resolution = DistanceResolution(
            source=source,
            results=results,
            primary_configured=primary_configured,
            attempts=attempts,
            patched_indices=patched,
            rejected=rejected,
            requested_count=len(requested),
            dropped_count=dropped,
        )
        self._observability.record(
            "resolution",
            distance_source=source.value,
            requested_count=len(requested),
            accepted_count=len(results),
            rejected_count=len(rejected),
            patched_count=len(patched),
        )
        return resolution

    def _attempt(
        self,
        provider: DistanceProvider,
        origin: GeoPoint,
        destinations: List,
        *,
        purpose: str,
    ) -> ProviderAttempt:
        if not provider.configured:
            error = MissingCredential(f"{provider.provider.value} credential not set")
            self._observability.record("provider_skipped", provider=provider.provider.value, purpose=purpose, reason=error.code)
            logger.warning("Distance provider %s skipped: %s", provider.provider.value, error)
            return ProviderAttempt(provider=provider.provider, purpose=purpose, error=error, attempted=False)
        try:
            distances = provider.resolve(origin, destinations)
            if len(distances) != len(destinations):
                raise ResultCountMismatch(
                    "Result count mismatch",
                    details={"expected": len(destinations), "received": len(distances)},
                )
        except SupplyMapError as exc:
            self._observability.record(
                "provider_failed",
                provider=provider.provider.value,
                purpose=purpose,
                code=exc.code,
                error=str(exc),
            )
            logger.warning("Distance provider %s failed (%s): %s", provider.provider.value, purpose, exc)
            return ProviderAttempt(provider=provider.provider, purpose=purpose, error=exc)
        self._observability.record(
            "provider_succeeded",
            provider=provider.provider.value,
            purpose=purpose,
            gap_count=sum(1 for distance in distances if distance.is_gap),
        )
        return ProviderAttempt(provider=provider.provider, purpose=purpose, distances=list(distances))

    def _patch_gaps(
        self,
        distances: List[RoadDistance],
        origin: GeoPoint,
        destinations: List,
        patch_providers: Sequence[DistanceProvider],
        attempts: List[ProviderAttempt],
    ) -> Tuple[List[RoadDistance], List[int]]:
        merged = list(distances)
        patched: List[int] = []
        for provider in patch_providers:
            gaps = [index for index, distance in enumerate(merged) if distance.is_gap]
            if not gaps:
                break
            if not provider.configured:
                continue
            attempt = self._attempt(provider, origin, destinations, purpose="patch")
            attempts.append(attempt)
            if not attempt.ok or attempt.distances is None or len(attempt.distances) != len(merged):
                continue
            for index in gaps:
                replacement = attempt.distances[index]
                if replacement.distance_km > 0:
                    merged[index] = replacement
                    patched.append(index)
        return merged, sorted(patched)

    def _reconcile(
        self,
        origin: GeoPoint,
        candidates: List[Candidate],
        distances: List[RoadDistance],
    ) -> Tuple[List[ResolvedCandidate], List[ImplausibleDistance]]:
        accepted: List[ResolvedCandidate] = []
        rejected: List[ImplausibleDistance] = []
        for candidate, distance in zip(candidates, distances):
            road_km = self._band.road_km(distance)
            straight_km = haversine_km(origin, candidate.location)
            try:
                self._band.check(candidate, road_km, straight_km)
            except ImplausibleDistance as exc:
                rejected.append(exc)
                continue
            accepted.append(
                ResolvedCandidate(
                    candidate=candidate,
                    distance_km=road_km,
                    duration_minutes=distance.duration_minutes,
                )
            )
        accepted.sort(key=lambda result: result.distance_km)
        return accepted, rejected
