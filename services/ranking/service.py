from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from services.common.enums import DistanceUnit
from services.common.errors import OracleError
from services.distance.models import ResolvedCandidate
from services.geo.distance import format_distance
from services.ranking.models import OracleSignals, RankedResult, RankingConfig, RankingResult
from services.ranking.oracle import NullRankingOracle, RankingOracle

logger = logging.getLogger(__name__)

NO_RESULTS_SUMMARY = "No nearby stores found."


@dataclass(frozen=True)
class RankingObservabilityEvent:
    event_type: str
    details: Dict[str, object]


class RankingObservability:
    def __init__(self) -> None:
        self._events: List[RankingObservabilityEvent] = []

    def record(self, event_type: str, **details: object) -> None:
        self._events.append(RankingObservabilityEvent(event_type=event_type, details=details))

    def events(self) -> List[RankingObservabilityEvent]:
        return list(self._events)


def reorder_by_ids(results: Sequence[RankedResult], ordered_ids: Sequence[str]) -> List[RankedResult]:
    """Put the named results first, in the given order, followed by the rest as they were.

    Unknown and repeated ids are ignored.
    """
    by_id = {result.id: result for result in results}
    head: List[RankedResult] = []
    seen = set()
    for result_id in ordered_ids:
        if result_id in seen or result_id not in by_id:
            continue
        seen.add(result_id)
        head.append(by_id[result_id])
    tail = [result for result in results if result.id not in seen]
    return head + tail


def closest_summary(result: RankedResult, unit: DistanceUnit = DistanceUnit.mi) -> str:
    return f"{result.name} is the closest option ({format_distance(result.distance_km, unit)} away)."


class ResultAssembler:
    def __init__(
        self,
        *,
        oracle: Optional[RankingOracle] = None,
        config: Optional[RankingConfig] = None,
        observability: Optional[RankingObservability] = None,
    ) -> None:
        self._oracle = oracle or NullRankingOracle()
        self._config = config or RankingConfig()
        self._observability = observability or RankingObservability()

    @property
    def observability(self) -> RankingObservability:
        return self._observability

    @property
    def config(self) -> RankingConfig:
        return self._config

    def assemble(
        self,
        resolved: Sequence[ResolvedCandidate],
        *,
        max_distance_km: Optional[float] = None,
        prices: Optional[Dict[str, float]] = None,
    ) -> List[RankedResult]:
        prices = prices or {}
        kept = [
            result
            for result in resolved
            if result.distance_km > 0 and (max_distance_km is None or result.distance_km <= max_distance_km)
        ]
        kept.sort(key=lambda result: result.distance_km)
        return [
            RankedResult(
                candidate=result.candidate,
                distance_km=result.distance_km,
                duration_minutes=result.duration_minutes,
                reported_price=prices.get(result.candidate.id),
            )
            for result in kept[: self._config.max_results]
        ]

    def naive_best(self, results: Sequence[RankedResult], unit: Optional[DistanceUnit] = None) -> Tuple[str, str]:
        if not results:
            return "", NO_RESULTS_SUMMARY
        return results[0].id, closest_summary(results[0], unit or self._config.unit)

    def rank(
        self,
        item: str,
        resolved: Sequence[ResolvedCandidate],
        *,
        max_distance_km: Optional[float] = None,
        signals: Optional[OracleSignals] = None,
        unit: Optional[DistanceUnit] = None,
    ) -> RankingResult:
        signals = signals or OracleSignals()
        results = self.assemble(resolved, max_distance_km=max_distance_km, prices=signals.prices)
        best_id, summary = self.naive_best(results, unit)
        reordered = False
        if results:
            results, best_id, summary, reordered = self._apply_oracle(
                item, results, signals, best_id, summary, unit or self._config.unit
            )
        alternatives: List[str] = []
        if len(results) < self._config.alternatives_threshold and item:
            alternatives = self._alternatives(item)
        self._observability.record(
            "ranking",
            result_count=len(results),
            best_id=best_id,
            oracle_reordered=reordered,
            alternatives_count=len(alternatives),
        )
        return RankingResult(
            results=results,
            best_id=best_id,
            summary=summary,
            reordered=reordered,
            alternatives=alternatives,
        )

    def _apply_oracle(
        self,
        item: str,
        results: List[RankedResult],
        signals: OracleSignals,
        best_id: str,
        summary: str,
        unit: DistanceUnit,
    ) -> Tuple[List[RankedResult], str, str, bool]:
        try:
            ordered_ids = self._oracle.rank(item, results, signals)
        except OracleError as exc:
            self._record_oracle_failure("rank", exc)
            return results, best_id, summary, False
        if not ordered_ids:
            return results, best_id, summary, False
        known = {result.id for result in results}
        if not any(result_id in known for result_id in ordered_ids):
            self._observability.record("oracle_ignored", reason="no_known_ids")
            return results, best_id, summary, False
        reordered = reorder_by_ids(results, ordered_ids)
        best = reordered[0]
        try:
            oracle_summary = self._oracle.summarize(item, best, reordered)
        except OracleError as exc:
            self._record_oracle_failure("summarize", exc)
            oracle_summary = None
        if oracle_summary:
            summary = oracle_summary
        elif best.id != best_id:
            summary = f"{best.name} is the top pick ({format_distance(best.distance_km, unit)} away)."
        return reordered, best.id, summary, True

    def _alternatives(self, item: str) -> List[str]:
        try:
            alternatives = self._oracle.suggest_alternatives(item)
        except OracleError as exc:
            self._record_oracle_failure("alternatives", exc)
            return []
        return list(alternatives or [])[: self._config.max_alternatives]

    def _record_oracle_failure(self, operation: str, exc: OracleError) -> None:
        self._observability.record("oracle_failed", operation=operation, code=exc.code, error=str(exc))
        logger.warning("Ranking oracle %s failed: %s", operation, exc)
