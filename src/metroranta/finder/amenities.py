from __future__ import annotations

# Orchestrator for the amenity lookup. It wires together:
# - the loaded route (RouteIndex, read-only)
# - ingestion (Overpass client with its file cache)
# - storage (user suggestions + flags)
# - the proximity pipeline (filter, annotate, sort)
#
# Each category is independent: one category's upstream failure degrades that category
# only, and results are collected per category with no shared accumulator.

import contextvars
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable

from metroranta.config.settings import Settings
from metroranta.core.cache import FileCache
from metroranta.core.env import resolve_project_path
from metroranta.core.geo import validate_point
from metroranta.core.route_index import RouteIndex
from metroranta.domain.models import (
    ALL_CATEGORIES,
    AmenityCandidate,
    AmenityCategory,
    AnnotatedAmenity,
    LocateResult,
)
from metroranta.features.proximity import process_candidates
from metroranta.ingestion.overpass_client import OverpassClient
from metroranta.storage.suggestions import SuggestionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryResult:
    category: AmenityCategory
    amenities: list[AnnotatedAmenity] = field(default_factory=list)
    source: str = "none"
    skipped_invalid: int = 0
    error: str | None = None


def build_cache(settings: Settings) -> FileCache:
    return FileCache(
        resolve_project_path(settings.cache.dir),
        enabled=settings.cache.enabled,
        default_ttl_seconds=settings.cache.default_ttl_seconds,
    )


def build_store(settings: Settings) -> SuggestionStore:
    return SuggestionStore(
        resolve_project_path(settings.storage.path),
        flag_archive_threshold=settings.storage.flag_archive_threshold,
    )


class AmenityFinder:
    def __init__(
        self,
        settings: Settings,
        route: RouteIndex,
        overpass: OverpassClient,
        store: SuggestionStore,
    ):
        self._settings = settings
        self._route = route
        self._overpass = overpass
        self._store = store

    @property
    def route(self) -> RouteIndex:
        return self._route

    def _radius(self, max_distance_m: float | None) -> float:
        return float(max_distance_m if max_distance_m is not None else self._settings.proximity.max_distance_m)

    def _buffer(self, buffer_m: float | None, max_distance_m: float | None) -> float:
        # Call sites historically buffered the bbox by the inclusion radius itself.
        if buffer_m is not None:
            return float(buffer_m)
        if max_distance_m is not None:
            return float(max_distance_m)
        return float(self._settings.proximity.buffer_m)

    def find_category(
        self,
        category: AmenityCategory,
        *,
        max_distance_m: float | None = None,
        buffer_m: float | None = None,
        refresh: bool = False,
    ) -> CategoryResult:
        """Amenities of one category along the route (raises `EmptyRouteError`)."""
        radius = self._radius(max_distance_m)
        bounds = self._route.bounding_box(self._buffer(buffer_m, max_distance_m))

        candidates: list[AmenityCandidate] = []
        source = "none"
        error: str | None = None
        try:
            fetched, source = self._overpass.fetch_candidates(bounds, category, refresh=refresh)
            flagged = self._store.heavily_flagged_ids(category)
            candidates.extend(c for c in fetched if c.id not in flagged)
        except Exception as exc:
            logger.warning("Amenity fetch failed for %s: %s", category, exc)
            error = f"{type(exc).__name__}: {exc}"

        suggestions = self._store.list_suggestions(bounds=bounds, category=category)
        candidates.extend(s.to_candidate() for s in suggestions)

        batch = process_candidates(candidates, self._route, category, radius)
        return CategoryResult(
            category=category,
            amenities=batch.amenities,
            source=source,
            skipped_invalid=batch.skipped_invalid,
            error=error,
        )

    def find_all(
        self,
        categories: Iterable[AmenityCategory] = ALL_CATEGORIES,
        *,
        max_distance_m: float | None = None,
        buffer_m: float | None = None,
        refresh: bool = False,
    ) -> dict[AmenityCategory, CategoryResult]:
        """Run every category concurrently; results keyed in request order."""
        wanted = list(dict.fromkeys(categories))
        if not wanted:
            return {}
        # Fail fast (and once) when no route is loaded.
        self._route.bounding_box(0)

        with ThreadPoolExecutor(max_workers=len(wanted), thread_name_prefix="amenities") as pool:
            futures = {
                category: pool.submit(
                    contextvars.copy_context().run,
                    self.find_category,
                    category,
                    max_distance_m=max_distance_m,
                    buffer_m=buffer_m,
                    refresh=refresh,
                )
                for category in wanted
            }
            return {category: future.result() for category, future in futures.items()}

    def locate(self, lat: float, lng: float) -> LocateResult:
        point = validate_point(lat, lng)
        nearest = self._route.nearest_point(point)
        return LocateResult(
            lat=point.lat,
            lng=point.lon,
            nearest_index=nearest.index,
            distance_to_route_m=nearest.distance_m,
            distance_to_finish_m=self._route.remaining_distance_from(nearest.index),
        )
