from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from services.common.enums import DistanceUnit


class SearchFiltersModel(BaseModel):
    max_distance_km: Optional[float] = None


class SearchRequestModel(BaseModel):
    schema_version: str = Field("v1")
    item: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    filters: Optional[SearchFiltersModel] = None
    unit: DistanceUnit = DistanceUnit.mi


class FeedbackRequestModel(BaseModel):
    schema_version: str = Field("v1")
    store_id: Optional[str] = None
    item: Optional[str] = None
    in_stock: Optional[bool] = None
    price: Optional[float] = None
