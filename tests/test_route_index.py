import pytest

from metroranta.core.errors import EmptyRouteError, InvalidCoordinateError
from metroranta.core.geo import GeoPoint, haversine_m
from metroranta.core.route_index import RouteIndex


def _route(*pairs):
    return RouteIndex.from_pairs([list(p) for p in pairs])


def test_nearest_point_between_two_vertices():
    route = _route((60.0, 24.0), (60.001, 24.0), (60.002, 24.0))

    nearest = route.nearest_point(GeoPoint(lat=60.0015, lon=24.0))

    assert nearest.index in (1, 2)
    assert nearest.distance_m < 60


def test_nearest_point_tie_goes_to_lowest_index():
    route = _route((0.001, 0.0), (-0.001, 0.0))
    # Mirrored about the equator, so both vertices are exactly equidistant.
    nearest = route.nearest_point(GeoPoint(lat=0.0, lon=0.0))
    assert nearest.index == 0


def test_remaining_distance_is_zero_at_last_point():
    route = _route((60.0, 24.0), (60.001, 24.0), (60.002, 24.0))
    assert route.remaining_distance_to_end(GeoPoint(lat=60.002, lon=24.0)) == 0


def test_remaining_distance_from_start_equals_total_length():
    route = _route((60.0, 24.0), (60.001, 24.0), (60.002, 24.0))
    expected = haversine_m(route.points[0], route.points[1]) + haversine_m(route.points[1], route.points[2])

    assert route.remaining_distance_to_end(GeoPoint(lat=60.0, lon=24.0)) == pytest.approx(expected)
    assert route.total_distance_m == pytest.approx(expected)
    assert route.remaining_distance_from(1) == pytest.approx(haversine_m(route.points[1], route.points[2]))


def test_remaining_distance_never_increases_along_the_route():
    route = _route((60.0, 24.0), (60.0005, 24.001), (60.001, 24.0), (60.0015, 24.0))
    remaining = [route.remaining_distance_from(i) for i in range(len(route))]
    assert remaining == sorted(remaining, reverse=True)


def test_single_point_route():
    route = _route((60.0, 24.0))
    p = GeoPoint(lat=60.001, lon=24.0)

    assert route.remaining_distance_to_end(p) == 0
    assert route.min_distance_to_route(p) == pytest.approx(haversine_m(p, route.points[0]))
    assert route.max_segment_m == 0


def test_bounding_box_with_buffer():
    route = _route((60.0, 24.0), (60.0, 24.01))
    box = route.bounding_box(111)

    assert box.south == pytest.approx(59.999, abs=1e-4)
    assert box.north == pytest.approx(60.001, abs=1e-4)
    assert box.west == pytest.approx(23.999, abs=1e-4)
    assert box.east == pytest.approx(24.011, abs=1e-4)
    assert box.north >= box.south
    assert box.east >= box.west


def test_bounding_box_without_buffer_is_raw_extent():
    route = _route((60.1, 24.9), (60.2, 25.0))
    box = route.bounding_box(0)
    assert (box.south, box.north, box.west, box.east) == (60.1, 60.2, 24.9, 25.0)


def test_empty_route_raises():
    route = RouteIndex([])
    p = GeoPoint(lat=60.0, lon=24.0)

    with pytest.raises(EmptyRouteError):
        route.nearest_point(p)
    with pytest.raises(EmptyRouteError):
        route.min_distance_to_route(p)
    with pytest.raises(EmptyRouteError):
        route.remaining_distance_to_end(p)
    with pytest.raises(EmptyRouteError):
        route.bounding_box()
    assert route.total_distance_m == 0
    assert issubclass(EmptyRouteError, ValueError)


def test_from_pairs_rejects_invalid_points():
    with pytest.raises(InvalidCoordinateError):
        RouteIndex.from_pairs([[60.0, 24.0], [95.0, 24.0]])
    with pytest.raises(ValueError):
        RouteIndex.from_pairs([[60.0]])
