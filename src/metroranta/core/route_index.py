"""
Route index: proximity queries against a fixed polyline.

The route is an ordered list of GPS track points (start -> finish). An index is built
once per loaded route and then only read, so one instance can serve concurrent
per-category queries without locking. Loading a different route means building a new
`RouteIndex`; nothing here mutates after `__init__`.

Distances are point-to-vertex, not point-to-segment. That is accurate as long as the
track is densely sampled (a few meters between points); `max_segment_m` exposes the
largest gap so the audit can warn when that assumption breaks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from metroranta.core.errors import EmptyRouteError
from metroranta.core.geo import BoundingBox, GeoPoint, degrees_for_meters, haversine_m, validate_point


@dataclass(frozen=True)
class NearestRoutePoint:
    index: int
    distance_m: float


class RouteIndex:
    def __init__(self, points: Sequence[GeoPoint]):
        self._points: tuple[GeoPoint, ...] = tuple(points)

        segments = [
            haversine_m(self._points[i], self._points[i + 1]) for i in range(len(self._points) - 1)
        ]
        # remaining[i] = route distance from vertex i to the finish.
        remaining = [0.0] * len(self._points)
        for i in range(len(segments) - 1, -1, -1):
            remaining[i] = remaining[i + 1] + segments[i]
        self._remaining_m: tuple[float, ...] = tuple(remaining)
        self._max_segment_m = max(segments) if segments else 0.0

    @classmethod
    def from_pairs(cls, pairs: Iterable[Sequence[float]]) -> "RouteIndex":
        """Build from `[lat, lon]` pairs; raises `InvalidCoordinateError` on a bad pair."""
        points: list[GeoPoint] = []
        for pair in pairs:
            if len(pair) < 2:
                raise ValueError(f"Route point must be [lat, lon], got {pair!r}")
            points.append(validate_point(pair[0], pair[1]))
        return cls(points)

    @property
    def points(self) -> tuple[GeoPoint, ...]:
        return self._points

    def __len__(self) -> int:
        return len(self._points)

    @property
    def total_distance_m(self) -> float:
        return self._remaining_m[0] if self._points else 0.0

    @property
    def max_segment_m(self) -> float:
        return self._max_segment_m

    def _require_points(self) -> None:
        if not self._points:
            raise EmptyRouteError()

    def nearest_point(self, point: GeoPoint) -> NearestRoutePoint:
        """Closest route vertex; the lowest index wins an exact tie."""
        self._require_points()
        best_index = 0
        best_distance = haversine_m(point, self._points[0])
        for i in range(1, len(self._points)):
            d = haversine_m(point, self._points[i])
            if d < best_distance:
                best_index = i
                best_distance = d
        return NearestRoutePoint(index=best_index, distance_m=best_distance)

    def min_distance_to_route(self, point: GeoPoint) -> float:
        return self.nearest_point(point).distance_m

    def remaining_distance_to_end(self, point: GeoPoint) -> float:
        """Route-following distance from the vertex nearest to `point` to the finish."""
        nearest = self.nearest_point(point)
        return self.remaining_distance_from(nearest.index)

    def remaining_distance_from(self, index: int) -> float:
        """Route distance from vertex `index` to the finish (0 for the last vertex)."""
        self._require_points()
        return self._remaining_m[index]

    def bounding_box(self, buffer_m: float = 100) -> BoundingBox:
        self._require_points()
        lats = [p.lat for p in self._points]
        lons = [p.lon for p in self._points]
        pad = degrees_for_meters(buffer_m)
        return BoundingBox(
            north=max(lats) + pad,
            south=min(lats) - pad,
            east=max(lons) + pad,
            west=min(lons) - pad,
        )
