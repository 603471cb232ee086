from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class FeedbackKey:
    store_id: str
    item: str

    @classmethod
    def from_inputs(cls, *, store_id: str, item: str) -> "FeedbackKey":
        return cls(store_id=store_id.strip(), item=normalize_item(item))


@dataclass(frozen=True)
class FeedbackRecord:
    key: FeedbackKey
    in_stock: Optional[bool]
    price: Optional[float]
    updated_at: datetime


def normalize_item(item: str) -> str:
    return " ".join(item.strip().lower().split())
