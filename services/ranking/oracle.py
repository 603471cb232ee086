"""Ranking oracle contract and its LLM-backed implementation.

The oracle is advisory. Every method may fail; callers treat an
:class:`OracleError` as "no opinion" and keep the distance ranking.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Protocol, Sequence

import anthropic

from services.common.errors import OracleError
from services.geo.distance import format_miles
from services.ranking.models import OracleSignals, RankedResult

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class RankingOracle(Protocol):
    def rank(self, item: str, results: Sequence[RankedResult], signals: OracleSignals) -> Optional[List[str]]: ...

    def summarize(self, item: str, best: RankedResult, results: Sequence[RankedResult]) -> Optional[str]: ...

    def suggest_alternatives(self, item: str) -> List[str]: ...


class NullRankingOracle:
    def rank(self, item: str, results: Sequence[RankedResult], signals: OracleSignals) -> Optional[List[str]]:
        return None

    def summarize(self, item: str, best: RankedResult, results: Sequence[RankedResult]) -> Optional[str]:
        return None

    def suggest_alternatives(self, item: str) -> List[str]:
        return []


def _price(value: float) -> str:
    return f"${value:.2f}"


def build_oracle_payload(results: Sequence[RankedResult]) -> List[Dict[str, Any]]:
    payload: List[Dict[str, Any]] = []
    for result in results:
        entry: Dict[str, Any] = {
            "id": result.id,
            "name": result.name,
            "distance": format_miles(result.distance_km),
        }
        if result.reported_price is not None:
            entry["reported_price"] = _price(result.reported_price)
        if result.candidate.address:
            entry["address"] = result.candidate.address
        payload.append(entry)
    return payload


def _stock_line(item: str, results: Sequence[RankedResult], stock: Dict[str, bool]) -> str:
    if not stock:
        return ""
    names = {result.id: result.name for result in results}
    reports = "; ".join(
        f"{names.get(store_id, store_id)}: {'in stock' if in_stock else 'out of stock'}"
        for store_id, in_stock in stock.items()
    )
    return f'Shoppers reported stock for "{item}": {reports}. Favour stores reported in stock.\n'


def extract_json(text: str, *, opener: str = "{", closer: str = "}") -> Any:
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0]
    elif "```" in text:
        text = text.split("```")[1].split("```")[0]
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end == -1 or end < start:
        raise OracleError("Oracle reply has no JSON object")
    try:
        return json.loads(text[start : end + 1])
    except ValueError as exc:
        raise OracleError("Oracle reply is not valid JSON") from exc


class AnthropicRankingOracle:
    def __init__(
        self,
        *,
        client: Any,
        model: str = DEFAULT_MODEL,
    ) -> None:
        self._client = client
        self._model = model

    @classmethod
    def from_api_key(cls, api_key: str, *, model: str = DEFAULT_MODEL, timeout_s: float = 15.0) -> "AnthropicRankingOracle":
        return cls(client=anthropic.Anthropic(api_key=api_key, timeout=timeout_s), model=model)

    def _complete(self, prompt: str, *, max_tokens: int, temperature: float) -> str:
        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise OracleError("Oracle request failed", details={"error": str(exc)}) from exc
        blocks = getattr(response, "content", None) or []
        text = "".join(getattr(block, "text", "") for block in blocks).strip()
        if not text:
            raise OracleError("Oracle returned an empty reply")
        return text

    def rank(self, item: str, results: Sequence[RankedResult], signals: OracleSignals) -> Optional[List[str]]:
        if not results:
            return None
        prompt = (
            f'A shopper is looking for "{item}".\n'
            f"{_stock_line(item, results, signals.stock)}"
            "Nearby stores as JSON (distances are road miles):\n"
            f"{json.dumps(build_oracle_payload(results), indent=2)}\n\n"
            "Rank them by convenience, likely availability and value. When reported prices are "
            "present, prefer the lower price at a similar distance. Reply with only a JSON object "
            'of the form {"orderedIds": [...]} using the exact id strings above, best first.'
        )
        parsed = extract_json(self._complete(prompt, max_tokens=500, temperature=0.2))
        ordered = parsed.get("orderedIds") if isinstance(parsed, dict) else None
        if not isinstance(ordered, list):
            raise OracleError("Oracle reply is missing orderedIds")
        return [str(store_id) for store_id in ordered]

    def summarize(self, item: str, best: RankedResult, results: Sequence[RankedResult]) -> Optional[str]:
        price_context = ""
        if best.reported_price is not None:
            price_context = f" Reported price there: {_price(best.reported_price)}."
        others = [
            f"{result.name} {_price(result.reported_price)}"
            for result in results
            if result.reported_price is not None and result.id != best.id
        ]
        if others:
            price_context += f" Other reported prices: {', '.join(others)}."
        prompt = (
            f'In one or two short sentences, say why "{best.name}" ({format_miles(best.distance_km)} away) '
            f'is a good place to get "{item}".{price_context} Use miles. Mention only the prices given '
            "here. Plain text, no quotes or markdown."
        )
        return self._complete(prompt, max_tokens=80, temperature=0.3)

    def suggest_alternatives(self, item: str) -> List[str]:
        prompt = (
            f'A shopper searched for "{item}" and found few or no stores nearby. Suggest two or three '
            "substitute products or kinds of store to try. Reply with only a JSON object of the form "
            '{"alternatives": ["...", "..."]}.'
        )
        parsed = extract_json(self._complete(prompt, max_tokens=150, temperature=0.3))
        alternatives = parsed.get("alternatives") if isinstance(parsed, dict) else None
        if not isinstance(alternatives, list):
            raise OracleError("Oracle reply is missing alternatives")
        return [str(value) for value in alternatives if str(value).strip()]
