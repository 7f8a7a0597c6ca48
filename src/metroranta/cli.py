"""
Metroranta CLI entrypoint.

Maintenance and debugging without the API:
- `find`: amenities along the route (cache first, Overpass on a miss)
- `refetch`: bypass the cache and refresh every category from Overpass
- `audit`: offline route + suggestion report
- `clean`: archive suggestions that are no longer within the radius of the route
- `gpx-to-json`: convert the organiser's GPX track into the route JSON
- `bounds`: print the buffered route bounding box
"""

from __future__ import annotations

import argparse
import json
import time
from typing import Any

from metroranta.catalog.route_loader import gpx_to_route_json, load_route
from metroranta.config.settings import get_settings
from metroranta.core.errors import EmptyRouteError
from metroranta.core.logging import configure_logging
from metroranta.domain.models import ALL_CATEGORIES
from metroranta.finder.amenities import AmenityFinder, build_cache, build_store
from metroranta.ingestion.overpass_client import OverpassClient
from metroranta.quality.route_audit import build_audit_report, off_route_suggestions


def _finder(args: argparse.Namespace) -> AmenityFinder:
    settings = get_settings()
    route = load_route(args.route or settings.route.path)
    return AmenityFinder(settings, route, OverpassClient(settings, build_cache(settings)), build_store(settings))


def _cmd_find(args: argparse.Namespace) -> int:
    finder = _finder(args)
    try:
        results = finder.find_all(args.category or ALL_CATEGORIES, max_distance_m=args.max_distance)
    except EmptyRouteError as e:
        print(f"Amenities currently unavailable: {e}")
        return 1

    if args.json:
        payload = {
            name: {
                "source": r.source,
                "error": r.error,
                "skipped_invalid": r.skipped_invalid,
                "amenities": [a.model_dump(mode="json") for a in r.amenities],
            }
            for name, r in results.items()
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    for name, r in results.items():
        status = f"source={r.source}" + (f" error={r.error}" if r.error else "")
        print(f"{name}: {len(r.amenities)} found ({status})")
        for a in r.amenities:
            marker = " *" if a.source == "user" else ""
            print(
                f"  - {a.resolved_name}{marker}  {a.distance_to_route_m:.0f}m from route, "
                f"{a.distance_to_finish_m / 1000:.1f}km to finish"
            )
    return 0


def _cmd_refetch(args: argparse.Namespace) -> int:
    finder = _finder(args)
    categories = args.category or list(ALL_CATEGORIES)
    failures = 0
    for i, category in enumerate(categories):
        try:
            result = finder.find_category(category, max_distance_m=args.max_distance, refresh=True)
        except EmptyRouteError as e:
            print(f"Amenities currently unavailable: {e}")
            return 1
        if result.error:
            failures += 1
        print(f"{category}: {len(result.amenities)} within radius (source={result.source})")
        if i < len(categories) - 1 and args.sleep_seconds > 0:
            # Stay polite towards the public Overpass instance.
            time.sleep(args.sleep_seconds)
    return 1 if failures else 0


def _cmd_audit(args: argparse.Namespace) -> int:
    settings = get_settings()
    route = load_route(args.route or settings.route.path)
    report = build_audit_report(settings, route, build_store(settings))
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return 0 if report["ok"] else 1


def _cmd_clean(args: argparse.Namespace) -> int:
    settings = get_settings()
    route = load_route(args.route or settings.route.path)
    store = build_store(settings)
    radius = args.max_distance if args.max_distance is not None else settings.proximity.max_distance_m
    off_route, _ = off_route_suggestions(route, store.list_suggestions(), max_distance_m=radius)

    if not off_route:
        print("No off-route suggestions found.")
        return 0

    for o in off_route:
        s = o.suggestion
        print(f"  - [{s.category}] {s.name} ({round(o.distance_to_route_m)}m from route) status={s.status}")
    if args.dry_run:
        print(f"Dry run: {len(off_route)} suggestions would be archived.")
        return 0

    archived = sum(1 for o in off_route if store.archive(o.suggestion.id))
    print(f"Archived {archived} off-route suggestions.")
    return 0


def _cmd_gpx_to_json(args: argparse.Namespace) -> int:
    out = gpx_to_route_json(args.input, args.output)
    print(f"Route written to: {out}")
    return 0


def _cmd_bounds(args: argparse.Namespace) -> int:
    settings = get_settings()
    route = load_route(args.route or settings.route.path)
    buffer = args.buffer if args.buffer is not None else settings.proximity.buffer_m
    try:
        bounds = route.bounding_box(buffer)
    except EmptyRouteError as e:
        print(f"Amenities currently unavailable: {e}")
        return 1
    print(json.dumps({"buffer_m": buffer, **bounds.as_dict()}, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the Metroranta CLI."""
    parser = argparse.ArgumentParser(prog="metroranta")
    parser.add_argument("--route", type=str, default=None, help="Route JSON path (defaults to settings).")
    parser.add_argument("--log-level", type=str, default=None, help="Override app.log_level (e.g. DEBUG).")
    sub = parser.add_subparsers(dest="command", required=True)

    find = sub.add_parser("find", help="List amenities along the route.")
    find.add_argument("--category", action="append", choices=list(ALL_CATEGORIES), default=[])
    find.add_argument("--max-distance", type=float, default=None, help="Inclusion radius in meters.")
    find.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    find.set_defaults(func=_cmd_find)

    ref = sub.add_parser("refetch", help="Refresh the Overpass cache for the route bounding box.")
    ref.add_argument("--category", action="append", choices=list(ALL_CATEGORIES), default=[])
    ref.add_argument("--max-distance", type=float, default=None)
    ref.add_argument("--sleep-seconds", type=float, default=None, help="Pause between categories.")
    ref.set_defaults(func=_cmd_refetch)

    aud = sub.add_parser("audit", help="Offline route + suggestion report.")
    aud.set_defaults(func=_cmd_audit)

    cl = sub.add_parser("clean", help="Archive suggestions that are now off-route.")
    cl.add_argument("--max-distance", type=float, default=None)
    cl.add_argument("--dry-run", action="store_true")
    cl.set_defaults(func=_cmd_clean)

    gpx = sub.add_parser("gpx-to-json", help="Convert a GPX track into route JSON.")
    gpx.add_argument("input")
    gpx.add_argument("output")
    gpx.set_defaults(func=_cmd_gpx_to_json)

    b = sub.add_parser("bounds", help="Print the buffered route bounding box.")
    b.add_argument("--buffer", type=float, default=None, help="Buffer in meters.")
    b.set_defaults(func=_cmd_bounds)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m metroranta.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    if getattr(args, "sleep_seconds", 0) is None:
        args.sleep_seconds = get_settings().ingestion.overpass.request_spacing_seconds
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
