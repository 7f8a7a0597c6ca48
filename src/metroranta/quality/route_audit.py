"""
Offline route + suggestion audit.

Network-free checks used by the CLI (`audit`, `clean`) and the API stats endpoint:
- is a route loaded at all,
- is it sampled densely enough for nearest-vertex distances to be meaningful,
- which stored suggestions have drifted out of the inclusion radius (typically after
  the route file was replaced).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from metroranta.config.settings import Settings
from metroranta.core.errors import InvalidCoordinateError
from metroranta.core.geo import validate_point
from metroranta.core.route_index import RouteIndex
from metroranta.domain.models import Suggestion
from metroranta.storage.suggestions import SuggestionStore


@dataclass(frozen=True)
class Issue:
    severity: str  # "info" | "warning" | "error"
    code: str
    message: str
    count: int = 1
    sample: list[str] | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity,
            "code": self.code,
            "message": self.message,
            "count": int(self.count),
            "sample": list(self.sample or []),
        }


@dataclass(frozen=True)
class OffRouteSuggestion:
    suggestion: Suggestion
    distance_to_route_m: float


def route_issues(route: RouteIndex, *, sparse_segment_warning_m: float) -> list[Issue]:
    if len(route) == 0:
        return [Issue(severity="error", code="ROUTE_EMPTY", message="No route points loaded.")]
    issues: list[Issue] = []
    if len(route) == 1:
        issues.append(
            Issue(severity="warning", code="ROUTE_SINGLE_POINT", message="Route has a single point; distance to finish is always 0.")
        )
    if route.max_segment_m > sparse_segment_warning_m:
        issues.append(
            Issue(
                severity="warning",
                code="ROUTE_SPARSE_SAMPLING",
                message=(
                    f"Largest gap between route points is {route.max_segment_m:.0f}m "
                    f"(> {sparse_segment_warning_m:.0f}m); nearest-point distances overestimate there."
                ),
            )
        )
    return issues


def off_route_suggestions(
    route: RouteIndex, suggestions: list[Suggestion], *, max_distance_m: float
) -> tuple[list[OffRouteSuggestion], list[Suggestion]]:
    """Split live suggestions into (beyond radius, invalid coordinates)."""
    off_route: list[OffRouteSuggestion] = []
    invalid: list[Suggestion] = []
    for s in suggestions:
        try:
            point = validate_point(s.lat, s.lng)
        except InvalidCoordinateError:
            invalid.append(s)
            continue
        d = route.min_distance_to_route(point)
        if d > max_distance_m:
            off_route.append(OffRouteSuggestion(suggestion=s, distance_to_route_m=d))
    return off_route, invalid


def build_audit_report(settings: Settings, route: RouteIndex, store: SuggestionStore) -> dict[str, Any]:
    cfg = settings.proximity
    issues = route_issues(route, sparse_segment_warning_m=cfg.sparse_segment_warning_m)

    suggestions = store.list_suggestions()
    off_route: list[OffRouteSuggestion] = []
    if len(route):
        off_route, invalid = off_route_suggestions(route, suggestions, max_distance_m=cfg.max_distance_m)
        if invalid:
            issues.append(
                Issue(
                    severity="error",
                    code="SUGGESTION_INVALID_COORDINATE",
                    message="Some suggestions have coordinates outside the valid range.",
                    count=len(invalid),
                    sample=[str(s.id) for s in invalid[:8]],
                )
            )
        if off_route:
            issues.append(
                Issue(
                    severity="warning",
                    code="SUGGESTION_OFF_ROUTE",
                    message=f"Some suggestions are farther than {cfg.max_distance_m:.0f}m from the route.",
                    count=len(off_route),
                    sample=[
                        f"[{o.suggestion.category}] {o.suggestion.name} ({round(o.distance_to_route_m)}m)"
                        for o in off_route[:8]
                    ],
                )
            )

    return {
        "route": {
            "points": len(route),
            "total_distance_m": round(route.total_distance_m, 1),
            "max_segment_m": round(route.max_segment_m, 1),
        },
        "suggestions": {"live": len(suggestions), "off_route": len(off_route)},
        "issues": [i.as_dict() for i in issues],
        "ok": not any(i.severity == "error" for i in issues),
    }
