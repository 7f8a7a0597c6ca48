"""
API routes.

Endpoints:
- GET    `/health`
- GET    `/api/route`, `/api/route/bounds`: loaded route summary / buffered bbox.
- GET    `/api/amenities`: amenities along the route, per category.
- POST   `/api/amenities/locate`: distance to route + finish for one point.
- POST   `/api/amenities/flag`: flag an amenity (auto-archive past the threshold).
- GET/POST `/api/suggestions`, PUT/DELETE `/api/suggestions/{id}`: user suggestions.
- GET    `/api/stats`: store counters + route audit.

Errors: `EmptyRouteError` (no route loaded) -> 503 "amenities currently unavailable" and
`InvalidCoordinateError` -> 400 are mapped app-wide in `metroranta.api.app`; an unknown
or archived suggestion -> 404 here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache

from fastapi import APIRouter, HTTPException, Query

from metroranta.catalog.route_loader import load_route
from metroranta.config.settings import get_settings
from metroranta.core.cache import record_cache_stats
from metroranta.core.errors import EmptyRouteError
from metroranta.core.route_index import RouteIndex
from metroranta.domain.models import (
    ALL_CATEGORIES,
    AmenitiesResponse,
    AmenityCategory,
    CategoryAmenities,
    FlagRequest,
    FlagResult,
    LocateRequest,
    LocateResult,
    RouteSummary,
    Suggestion,
    SuggestionCreate,
    SuggestionUpdate,
)
from metroranta.finder.amenities import AmenityFinder, build_cache, build_store
from metroranta.ingestion.overpass_client import OverpassClient
from metroranta.quality.route_audit import build_audit_report
from metroranta.storage.suggestions import SuggestionNotFoundError, SuggestionStore

logger = logging.getLogger(__name__)

router = APIRouter()

ROUTE_NOT_READY = {"code": "ROUTE_NOT_READY", "message": "amenities currently unavailable"}


@lru_cache
def _route() -> RouteIndex:
    settings = get_settings()
    try:
        return load_route(settings.route.path)
    except FileNotFoundError:
        logger.warning("Route file %s not found; amenity queries will be unavailable.", settings.route.path)
        return RouteIndex([])


@lru_cache
def _store() -> SuggestionStore:
    return build_store(get_settings())


@lru_cache
def _finder() -> AmenityFinder:
    settings = get_settings()
    return AmenityFinder(settings, _route(), OverpassClient(settings, build_cache(settings)), _store())


@router.get("/health")
def get_health() -> dict:
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "route_points": len(_route()),
    }


@router.get("/api/route", response_model=RouteSummary)
def get_route() -> RouteSummary:
    route = _route()
    bounds = route.bounding_box(0).as_dict() if len(route) else None
    return RouteSummary(points=len(route), total_distance_m=route.total_distance_m, bounds=bounds)


@router.get("/api/route/bounds")
def get_route_bounds(buffer_m: float | None = Query(default=None, ge=0)) -> dict:
    settings = get_settings()
    buffer = buffer_m if buffer_m is not None else settings.proximity.buffer_m
    bounds = _route().bounding_box(buffer)
    return {"buffer_m": buffer, "bounds": bounds.as_dict()}


@router.get("/api/amenities", response_model=AmenitiesResponse)
def get_amenities(
    category: list[AmenityCategory] | None = Query(default=None),
    max_distance_m: float | None = Query(default=None, gt=0),
    buffer_m: float | None = Query(default=None, ge=0),
) -> AmenitiesResponse:
    """Amenities along the route; all categories unless `category` is repeated."""
    settings = get_settings()
    finder = _finder()
    radius = max_distance_m if max_distance_m is not None else settings.proximity.max_distance_m
    buffer = buffer_m if buffer_m is not None else radius
    with record_cache_stats() as stats:
        results = finder.find_all(category or ALL_CATEGORIES, max_distance_m=radius, buffer_m=buffer)
    bounds = finder.route.bounding_box(buffer)

    categories = {
        name: CategoryAmenities(
            category=r.category,
            count=len(r.amenities),
            amenities=r.amenities,
            source=r.source,
            skipped_invalid=r.skipped_invalid,
            error=r.error,
        )
        for name, r in results.items()
    }
    return AmenitiesResponse(
        generated_at=datetime.now(timezone.utc),
        max_distance_m=radius,
        bounds=bounds.as_dict(),
        categories=categories,
        meta={"cache": stats.as_dict()},
    )


@router.post("/api/amenities/locate", response_model=LocateResult)
def post_locate(request: LocateRequest) -> LocateResult:
    return _finder().locate(request.lat, request.lng)


@router.post("/api/amenities/flag", response_model=FlagResult, status_code=201)
def post_flag(request: FlagRequest) -> FlagResult:
    return _store().flag(request)


@router.get("/api/suggestions", response_model=list[Suggestion])
def get_suggestions(category: AmenityCategory | None = None) -> list[Suggestion]:
    return _store().list_suggestions(category=category)


def _distance_for(lat: float, lng: float) -> float | None:
    try:
        return _finder().locate(lat, lng).distance_to_route_m
    except EmptyRouteError:
        return None


@router.post("/api/suggestions", response_model=Suggestion, status_code=201)
def post_suggestion(payload: SuggestionCreate) -> Suggestion:
    return _store().create(payload, distance_to_route_m=_distance_for(payload.lat, payload.lng))


@router.put("/api/suggestions/{suggestion_id}", response_model=Suggestion)
def put_suggestion(suggestion_id: int, payload: SuggestionUpdate) -> Suggestion:
    try:
        return _store().update(
            suggestion_id, payload, distance_to_route_m=_distance_for(payload.lat, payload.lng)
        )
    except SuggestionNotFoundError as e:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": str(e)}) from e


@router.delete("/api/suggestions/{suggestion_id}")
def delete_suggestion(suggestion_id: int) -> dict:
    if not _store().archive(suggestion_id):
        raise HTTPException(
            status_code=404,
            detail={"code": "NOT_FOUND", "message": f"Suggestion {suggestion_id} not found or archived"},
        )
    return {"success": True, "id": suggestion_id}


@router.get("/api/stats")
def get_stats() -> dict:
    settings = get_settings()
    store = _store()
    return {"store": store.stats(), "audit": build_audit_report(settings, _route(), store)}
