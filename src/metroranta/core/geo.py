from __future__ import annotations
from dataclasses import dataclass
from math import asin, cos, isfinite, radians, sin, sqrt
from typing import Any

from metroranta.core.errors import InvalidCoordinateError

"""
Geospatial helpers.

A tiny spherical geometry layer shared by the route index, the pipeline and the
scripts. Every distance in the project goes through `haversine_m` so the precision
behaviour is the same everywhere.
"""

EARTH_RADIUS_M = 6_371_000
METERS_PER_DEGREE = 111_000


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned lat/lon box (no antimeridian handling)."""

    north: float
    south: float
    east: float
    west: float

    def contains(self, point: GeoPoint) -> bool:
        return self.south <= point.lat <= self.north and self.west <= point.lon <= self.east

    def as_overpass(self) -> str:
        """Overpass QL bbox order: south,west,north,east."""
        return f"{self.south},{self.west},{self.north},{self.east}"

    def cache_key(self) -> str:
        return f"{self.south:.6f},{self.west:.6f},{self.north:.6f},{self.east:.6f}"

    def as_dict(self) -> dict[str, float]:
        return {"north": self.north, "south": self.south, "east": self.east, "west": self.west}


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """Compute great-circle distance in meters between two points."""
    lat1 = radians(a.lat)
    lon1 = radians(a.lon)
    lat2 = radians(b.lat)
    lon2 = radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push h a hair above 1 for near-antipodal pairs.
    return 2 * EARTH_RADIUS_M * asin(min(1.0, sqrt(h)))


def degrees_for_meters(meters: float) -> float:
    """Convert a metric buffer to degrees (flat 111 km/degree).

    Latitude-independent on purpose: it over-covers longitude near the equator and
    under-covers it towards the poles. Callers rely on the exact value.
    """
    return float(meters) / METERS_PER_DEGREE


def validate_point(lat: Any, lon: Any) -> GeoPoint:
    """Return a `GeoPoint` or raise `InvalidCoordinateError`."""
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError) as exc:
        raise InvalidCoordinateError(f"Non-numeric coordinate: lat={lat!r} lon={lon!r}") from exc

    if not (isfinite(lat_f) and isfinite(lon_f)):
        raise InvalidCoordinateError(f"Non-finite coordinate: lat={lat_f} lon={lon_f}")
    if not -90.0 <= lat_f <= 90.0:
        raise InvalidCoordinateError(f"Latitude out of range [-90, 90]: {lat_f}")
    if not -180.0 <= lon_f <= 180.0:
        raise InvalidCoordinateError(f"Longitude out of range [-180, 180]: {lon_f}")
    return GeoPoint(lat=lat_f, lon=lon_f)
