"""
Proximity filter pipeline.

Turns a batch of raw amenity candidates (Overpass, cache or user suggestions) into the
list shown along the route:

1. validate coordinates (malformed records are skipped and counted, never fatal),
2. distance to the route (nearest vertex),
3. drop anything farther than `max_distance_m`,
4. route-following distance from the nearest vertex to the finish,
5. display name via the classifier,
6. stable sort by distance to the route (ties keep input order).

Pure: no I/O, no hidden state. The only shared input is the read-only `RouteIndex`, so
the three categories can run in parallel. `EmptyRouteError` propagates to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from metroranta.core.errors import InvalidCoordinateError
from metroranta.core.geo import validate_point
from metroranta.core.route_index import RouteIndex
from metroranta.domain.models import AmenityCandidate, AmenityCategory, AnnotatedAmenity
from metroranta.features.classifier import resolve_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProximityBatch:
    amenities: list[AnnotatedAmenity]
    skipped_invalid: int = 0


def _display_name(candidate: AmenityCandidate, category: AmenityCategory) -> str:
    tag_name = (candidate.tags.get("name") or "").strip()
    raw_name = (candidate.raw_name or "").strip()
    if not tag_name and raw_name:
        return raw_name
    return resolve_name(candidate.tags, category)


def process_candidates(
    candidates: Iterable[AmenityCandidate],
    route: RouteIndex,
    category: AmenityCategory,
    max_distance_m: float = 100,
) -> ProximityBatch:
    """Annotate, filter and sort one category's candidates against `route`."""
    kept: list[AnnotatedAmenity] = []
    skipped = 0

    for candidate in candidates:
        try:
            point = validate_point(candidate.lat, candidate.lng)
        except InvalidCoordinateError as exc:
            skipped += 1
            logger.debug("Skipping %s candidate %s: %s", category, candidate.id, exc)
            continue

        nearest = route.nearest_point(point)
        distance_to_route = nearest.distance_m
        if distance_to_route > max_distance_m:
            continue

        kept.append(
            AnnotatedAmenity(
                id=candidate.id,
                category=category,
                lat=point.lat,
                lng=point.lon,
                tags=dict(candidate.tags),
                raw_name=candidate.raw_name,
                source=candidate.source,
                description=candidate.description,
                resolved_name=_display_name(candidate, category),
                distance_to_route_m=distance_to_route,
                distance_to_finish_m=route.remaining_distance_from(nearest.index),
            )
        )

    if skipped:
        logger.warning("Skipped %s %s candidates with invalid coordinates", skipped, category)

    kept.sort(key=lambda a: a.distance_to_route_m)
    return ProximityBatch(amenities=kept, skipped_invalid=skipped)


def process(
    candidates: Iterable[AmenityCandidate],
    route: RouteIndex,
    category: AmenityCategory,
    max_distance_m: float = 100,
) -> list[AnnotatedAmenity]:
    return process_candidates(candidates, route, category, max_distance_m).amenities
