"""
Route loading.

The route is stored as JSON (`{"route": [[lat, lon], ...], "bounds": {...}}`, a bare
list of pairs is accepted too) and produced once from the organiser's GPX file with
`gpx_to_route_json`. Loading always builds a fresh `RouteIndex`; a different route is
a different index.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import gpxpy

from metroranta.core.env import resolve_project_path
from metroranta.core.route_index import RouteIndex

logger = logging.getLogger(__name__)


def _route_pairs(payload: Any) -> list[Any]:
    if isinstance(payload, dict):
        payload = payload.get("route")
    if not isinstance(payload, list):
        raise ValueError("Route JSON must be a list of [lat, lon] pairs or an object with a 'route' list.")
    return payload


def load_route(path: str | Path) -> RouteIndex:
    """Load and validate a route JSON file into a `RouteIndex`."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    route = RouteIndex.from_pairs(_route_pairs(payload))
    logger.info("Loaded route with %s points from %s", len(route), resolved)
    return route


def parse_gpx(path: str | Path) -> list[tuple[float, float]]:
    """Return (lat, lon) points: track points, else route points, else waypoints."""
    resolved = resolve_project_path(path)
    with resolved.open(encoding="utf-8") as f:
        gpx = gpxpy.parse(f)

    points = [
        (p.latitude, p.longitude)
        for track in gpx.tracks
        for segment in track.segments
        for p in segment.points
    ]
    if not points:
        points = [(p.latitude, p.longitude) for r in gpx.routes for p in r.points]
    if not points:
        points = [(w.latitude, w.longitude) for w in gpx.waypoints]
    if not points:
        raise ValueError(f"No points found in GPX file: {resolved}")
    return points


def route_payload(points: list[tuple[float, float]]) -> dict[str, Any]:
    """Route JSON document with the raw (unbuffered) bounds."""
    route = RouteIndex.from_pairs(points)
    bounds = route.bounding_box(0)
    return {"route": [[p.lat, p.lon] for p in route.points], "bounds": bounds.as_dict()}


def gpx_to_route_json(gpx_path: str | Path, out_path: str | Path) -> Path:
    """Convert a GPX file into the route JSON format read by `load_route`."""
    points = parse_gpx(gpx_path)
    out = resolve_project_path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(route_payload(points), indent=2), encoding="utf-8")
    logger.info("Converted %s GPX points into %s", len(points), out)
    return out
