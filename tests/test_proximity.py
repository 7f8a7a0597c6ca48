import pytest

from metroranta.core.errors import EmptyRouteError
from metroranta.core.route_index import RouteIndex
from metroranta.domain.models import AmenityCandidate
from metroranta.features.proximity import process, process_candidates


def _route() -> RouteIndex:
    return RouteIndex.from_pairs([[60.0, 24.0], [60.001, 24.0], [60.002, 24.0]])


def _candidate(id_, lat, lng, **tags):
    return AmenityCandidate(id=id_, lat=lat, lng=lng, tags=tags)


def test_filters_by_radius_and_sorts_by_distance():
    candidates = [
        _candidate("far", 60.0, 24.003, name="Far Cafe"),  # ~167m east
        _candidate("b", 60.0, 24.001, amenity="cafe"),  # ~56m
        _candidate("a", 60.001, 24.0005, amenity="restaurant"),  # ~28m
    ]

    out = process(candidates, _route(), "cafes", max_distance_m=100)

    assert [a.id for a in out] == ["a", "b"]
    assert [a.resolved_name for a in out] == ["Restaurant", "Café"]
    assert all(a.category == "cafes" for a in out)
    assert out[0].distance_to_route_m <= out[1].distance_to_route_m
    assert all(a.distance_to_route_m <= 100 for a in out)


def test_distance_to_finish_follows_nearest_vertex():
    route = _route()
    out = process(
        [_candidate("start", 60.0, 24.0), _candidate("end", 60.002, 24.0)],
        route,
        "toilets",
    )
    by_id = {a.id: a for a in out}

    assert by_id["end"].distance_to_finish_m == 0
    assert by_id["start"].distance_to_finish_m == pytest.approx(route.total_distance_m)


def test_stable_order_for_equal_distances():
    candidates = [_candidate(str(i), 60.001, 24.0) for i in range(5)]
    out = process(candidates, _route(), "toilets")
    assert [a.id for a in out] == ["0", "1", "2", "3", "4"]


def test_reprocessing_output_is_idempotent():
    route = _route()
    first = process(
        [_candidate("a", 60.001, 24.0005), _candidate("b", 60.0, 24.001)],
        route,
        "indoor",
    )
    again = process(
        [AmenityCandidate.model_validate(a.model_dump()) for a in first],
        route,
        "indoor",
    )
    assert [(a.id, a.distance_to_route_m) for a in again] == [(a.id, a.distance_to_route_m) for a in first]


def test_invalid_coordinates_are_skipped_and_counted():
    candidates = [
        _candidate("ok", 60.001, 24.0),
        _candidate("bad-lat", 95.0, 24.0),
        _candidate("bad-lng", 60.0, float("nan")),
    ]

    batch = process_candidates(candidates, _route(), "toilets")

    assert [a.id for a in batch.amenities] == ["ok"]
    assert batch.skipped_invalid == 2


def test_empty_route_propagates():
    with pytest.raises(EmptyRouteError):
        process([_candidate("a", 60.0, 24.0)], RouteIndex([]), "toilets")


def test_empty_route_with_no_candidates_returns_empty():
    assert process([], RouteIndex([]), "toilets") == []


def test_user_suggestion_keeps_its_name():
    suggestion = AmenityCandidate(id="user-7", lat=60.001, lng=24.0, raw_name="Pop-up kahvila", source="user")

    [out] = process([suggestion], _route(), "cafes")

    assert out.resolved_name == "Pop-up kahvila"
    assert out.source == "user"


def test_tag_name_beats_raw_name():
    candidate = AmenityCandidate(
        id="1", lat=60.001, lng=24.0, tags={"name": "Oodi", "amenity": "library"}, raw_name="ignored"
    )
    [out] = process([candidate], _route(), "indoor")
    assert out.resolved_name == "Oodi"
