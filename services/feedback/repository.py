from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from services.feedback.models import FeedbackKey, FeedbackRecord, normalize_item


def is_valid_price(price: Optional[float]) -> bool:
    return price is not None and math.isfinite(price) and price >= 0


class FeedbackRepository:
    """Crowd-reported stock and USD prices, keyed by (store id, normalized item)."""

    def __init__(self) -> None:
        self._stock: Dict[FeedbackKey, bool] = {}
        self._prices: Dict[FeedbackKey, float] = {}
        self._updated_at: Dict[FeedbackKey, datetime] = {}

    def set_stock(self, store_id: str, item: str, in_stock: bool) -> FeedbackRecord:
        key = FeedbackKey.from_inputs(store_id=store_id, item=item)
        self._stock[key] = in_stock
        return self._touch(key)

    def set_price(self, store_id: str, item: str, price: float) -> Optional[FeedbackRecord]:
        if not is_valid_price(price):
            return None
        key = FeedbackKey.from_inputs(store_id=store_id, item=item)
        self._prices[key] = float(price)
        return self._touch(key)

    def stock_for(self, item: str, store_ids: Iterable[str]) -> Dict[str, bool]:
        normalized = normalize_item(item)
        result: Dict[str, bool] = {}
        for store_id in store_ids:
            value = self._stock.get(FeedbackKey(store_id=store_id, item=normalized))
            if value is not None:
                result[store_id] = value
        return result

    def prices_for(self, item: str, store_ids: Iterable[str]) -> Dict[str, float]:
        normalized = normalize_item(item)
        result: Dict[str, float] = {}
        for store_id in store_ids:
            value = self._prices.get(FeedbackKey(store_id=store_id, item=normalized))
            if value is not None:
                result[store_id] = value
        return result

    def get(self, store_id: str, item: str) -> Optional[FeedbackRecord]:
        key = FeedbackKey.from_inputs(store_id=store_id, item=item)
        if key not in self._updated_at:
            return None
        return self._record(key)

    def _touch(self, key: FeedbackKey) -> FeedbackRecord:
        self._updated_at[key] = datetime.now(tz=timezone.utc)
        return self._record(key)

    def _record(self, key: FeedbackKey) -> FeedbackRecord:
        return FeedbackRecord(
            key=key,
            in_stock=self._stock.get(key),
            price=self._prices.get(key),
            updated_at=self._updated_at[key],
        )
