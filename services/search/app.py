import logging
import math
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from services.common.api import INTERNAL_ERROR, NOT_FOUND, VALIDATION_ERROR, error_response, ok_response
from services.common.errors import SupplyMapError
from services.feedback.repository import is_valid_price
from services.geo.models import GeoPoint
from services.ranking.models import RankedResult
from services.search.api_models import FeedbackRequestModel, SearchRequestModel
from services.search.config import build_search_service
from services.search.models import SearchOutcome, SearchRequest

logger = logging.getLogger(__name__)

app = FastAPI(title="Supply Map", docs_url=None, redoc_url=None)

_service, _geocoder, _feedback = build_search_service()

# San Francisco to Oakland, used to check the metered provider.
_STATUS_ORIGIN = GeoPoint(lat=37.7749, lng=-122.4194)
_STATUS_DESTINATION = GeoPoint(lat=37.8044, lng=-122.2712)


def _serialize_result(result: RankedResult) -> Dict[str, Any]:
    candidate = result.candidate
    return {
        "id": candidate.id,
        "name": candidate.name,
        "lat": candidate.location.lat,
        "lng": candidate.location.lng,
        "address": candidate.address,
        "distance_km": result.distance_km,
        "duration_minutes": result.duration_minutes,
        "reported_price": result.reported_price,
        "tags": candidate.tags,
    }


def _serialize_outcome(outcome: SearchOutcome) -> Dict[str, Any]:
    return {
        "item": outcome.item,
        "results": [_serialize_result(result) for result in outcome.results],
        "best_id": outcome.best_id,
        "summary": outcome.summary,
        "distance_source": outcome.distance_source.value,
        "alternatives": outcome.alternatives,
        "diagnostics": outcome.diagnostics,
    }


def _validation_error(message: str, details: Optional[Dict[str, Any]] = None) -> JSONResponse:
    return JSONResponse(status_code=400, content=error_response(VALIDATION_ERROR, message, details))


def _is_finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    fields = [".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()]
    return _validation_error("Invalid request body", {"fields": fields})


@app.post("/supply-map/search")
def search(request: SearchRequestModel):
    if request.schema_version != "v1":
        return _validation_error("schema_version must be v1")
    item = (request.item or "").strip()
    if not item or not _is_finite(request.lat) or not _is_finite(request.lng):
        return _validation_error("Missing or invalid item, lat, or lng")
    origin = GeoPoint(lat=request.lat, lng=request.lng)
    if not origin.in_range:
        return _validation_error("lat/lng out of range")
    max_distance_km = request.filters.max_distance_km if request.filters else None
    if max_distance_km is not None and not (_is_finite(max_distance_km) and max_distance_km > 0):
        return _validation_error("filters.max_distance_km must be a positive number")
    try:
        outcome = _service.search(
            SearchRequest(
                item=item,
                origin=origin,
                max_distance_km=max_distance_km,
                unit=request.unit,
            )
        )
    except Exception as exc:
        logger.exception("Supply map search failed")
        return JSONResponse(
            status_code=500,
            content=error_response(INTERNAL_ERROR, str(exc) or "Search failed"),
        )
    return ok_response(_serialize_outcome(outcome))


@app.post("/supply-map/feedback")
def feedback(request: FeedbackRequestModel):
    if request.schema_version != "v1":
        return _validation_error("schema_version must be v1")
    store_id = (request.store_id or "").strip()
    item = (request.item or "").strip()
    if not store_id or not item:
        return _validation_error("Missing store_id or item")
    has_price = is_valid_price(request.price)
    if request.in_stock is None and not has_price:
        return _validation_error("Provide in_stock and/or price")
    if request.in_stock is not None:
        _feedback.set_stock(store_id, item, request.in_stock)
    if has_price:
        _feedback.set_price(store_id, item, request.price)
    record = _feedback.get(store_id, item)
    return ok_response(
        {
            "store_id": store_id,
            "item": record.key.item if record else item,
            "in_stock": record.in_stock if record else None,
            "price": record.price if record else None,
        }
    )


@app.get("/supply-map/geocode")
def geocode(q: Optional[str] = None):
    query = (q or "").strip()
    if not query:
        return _validation_error("Missing query q")
    try:
        result = _geocoder.geocode(query)
    except SupplyMapError as exc:
        logger.warning("Geocoding failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content=error_response(exc.code, "Geocoding failed", exc.details),
        )
    if result is None:
        return JSONResponse(status_code=404, content=error_response(NOT_FOUND, "Location not found"))
    return ok_response({"lat": result.lat, "lng": result.lng, "display_name": result.display_name})


@app.get("/supply-map/status")
def status():
    providers = _service.resolver.providers
    if not providers:
        return ok_response({"primary_configured": False, "message": "No distance providers configured"})
    primary = providers[0]
    if not primary.configured:
        return ok_response(
            {
                "provider": primary.provider.value,
                "primary_configured": False,
                "static_mode": _service.static_mode,
                "message": "Primary distance provider credential is not set; road distances use the fallback provider.",
            }
        )
    try:
        primary.resolve(_STATUS_ORIGIN, [_STATUS_DESTINATION])
    except SupplyMapError as exc:
        return ok_response(
            {
                "provider": primary.provider.value,
                "primary_configured": True,
                "primary_status": exc.code,
                "message": str(exc),
                "details": exc.details,
            }
        )
    return ok_response(
        {
            "provider": primary.provider.value,
            "primary_configured": True,
            "primary_status": "OK",
            "message": "Primary distance provider is working.",
        }
    )
