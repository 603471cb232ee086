from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from services.common.errors import MalformedResponse, SourceUnavailable
from services.distance.service import DistanceResolver
from services.feedback.repository import FeedbackRepository
from services.poi_source.models import Candidate
from services.poi_source.providers import OverpassPoiSource
from services.ranking.models import OracleSignals
from services.ranking.service import ResultAssembler
from services.search.models import SearchOutcome, SearchRequest

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_M = 5000
MAX_RADIUS_M = 25000


def search_radius_m(max_distance_km: Optional[float]) -> float:
    if max_distance_km is None:
        return DEFAULT_RADIUS_M
    return min(max_distance_km * 1000.0, MAX_RADIUS_M)


def distance_limit_km(max_distance_km: Optional[float]) -> float:
    if max_distance_km is None:
        return DEFAULT_RADIUS_M / 1000.0
    return max_distance_km


@dataclass(frozen=True)
class SearchEvent:
    event_type: str
    details: Dict[str, Any]
    recorded_at: datetime


class SearchObservability:
    def __init__(self) -> None:
        self._events: list[SearchEvent] = []

    def record(self, event_type: str, **details: Any) -> None:
        self._events.append(
            SearchEvent(
                event_type=event_type,
                details=details,
                recorded_at=datetime.now(tz=timezone.utc),
            )
        )

    def events(self) -> list[SearchEvent]:
        return list(self._events)


class SearchService:
    def __init__(
        self,
        *,
        poi_source: OverpassPoiSource,
        resolver: DistanceResolver,
        assembler: ResultAssembler,
        feedback: Optional[FeedbackRepository] = None,
        observability: Optional[SearchObservability] = None,
        static_mode: bool = False,
    ) -> None:
        self._poi_source = poi_source
        self._resolver = resolver
        self._assembler = assembler
        self._feedback = feedback or FeedbackRepository()
        self._observability = observability or SearchObservability()
        self._static_mode = static_mode

    @property
    def observability(self) -> SearchObservability:
        return self._observability

    @property
    def resolver(self) -> DistanceResolver:
        return self._resolver

    @property
    def static_mode(self) -> bool:
        return self._static_mode

    def search(self, request: SearchRequest) -> SearchOutcome:
        item = request.item.strip()
        if not item:
            raise ValueError("item must not be empty")
        if not (request.origin.is_finite and request.origin.in_range):
            raise ValueError("origin coordinates must be finite and within lat/lng range")
        if request.max_distance_km is not None and not (
            math.isfinite(request.max_distance_km) and request.max_distance_km > 0
        ):
            raise ValueError("max_distance_km must be a positive number")

        limit_km = distance_limit_km(request.max_distance_km)
        candidates, poi_error = self._fetch_candidates(request)
        within = [candidate for candidate in candidates if candidate.straight_line_km <= limit_km]

        resolution = self._resolver.resolve(request.origin, within)
        store_ids = [result.candidate.id for result in resolution.results]
        signals = OracleSignals(
            stock=self._feedback.stock_for(item, store_ids),
            prices=self._feedback.prices_for(item, store_ids),
        )
        ranking = self._assembler.rank(
            item,
            resolution.results,
            max_distance_km=limit_km,
            signals=signals,
            unit=request.unit,
        )

        diagnostics = resolution.diagnostics()
        diagnostics.update(
            {
                "candidate_count": len(candidates),
                "poi_error": poi_error,
                "oracle_reordered": ranking.reordered,
                "static_mode": self._static_mode,
            }
        )
        self._observability.record(
            "search",
            item=item,
            candidate_count=len(candidates),
            result_count=len(ranking.results),
            distance_source=resolution.source.value,
        )
        return SearchOutcome(
            item=item,
            results=ranking.results,
            best_id=ranking.best_id,
            summary=ranking.summary,
            distance_source=resolution.source,
            alternatives=ranking.alternatives,
            diagnostics=diagnostics,
        )

    def _fetch_candidates(self, request: SearchRequest) -> tuple[List[Candidate], Optional[str]]:
        radius_m = search_radius_m(request.max_distance_km)
        try:
            return self._poi_source.fetch_nearby(request.origin, radius_m), None
        except (SourceUnavailable, MalformedResponse) as exc:
            self._observability.record("poi_source_failed", code=exc.code, error=str(exc))
            logger.warning("POI source failed, continuing with no candidates: %s", exc)
            return [], str(exc)
