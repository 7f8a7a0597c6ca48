import httpx
import pytest

from metroranta.config.settings import get_settings
from metroranta.core.cache import FileCache
from metroranta.core.geo import BoundingBox
from metroranta.ingestion.overpass_client import OverpassClient, build_query, parse_elements

BOUNDS = BoundingBox(north=60.2, south=60.1, east=25.0, west=24.9)


def _settings(max_attempts: int = 2):
    settings = get_settings()
    retry = settings.ingestion.overpass.retry.model_copy(
        update={"max_attempts": max_attempts, "base_delay_seconds": 0.0, "max_delay_seconds": 0.0}
    )
    overpass = settings.ingestion.overpass.model_copy(
        update={"base_url": "https://overpass.example.test/api/interpreter", "retry": retry}
    )
    ingestion = settings.ingestion.model_copy(update={"overpass": overpass})
    return settings.model_copy(update={"ingestion": ingestion})


def _status_error(status: int, headers: dict | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://overpass.example.test/api/interpreter")
    response = httpx.Response(status, request=request, headers=headers or {})
    return httpx.HTTPStatusError(str(status), request=request, response=response)


PAYLOAD = {
    "elements": [
        {"type": "node", "id": 1, "lat": 60.15, "lon": 24.95, "tags": {"amenity": "cafe", "name": "Kahvila"}},
        {"type": "node", "id": 2, "lat": 60.16, "lon": 24.96},
    ]
}


def test_build_query_for_indoor():
    q = build_query(BOUNDS, "indoor", timeout_seconds=25)

    assert q.startswith("[out:json][timeout:25];(")
    assert q.endswith(");out geom;")
    assert 'node["amenity"="library"](60.1,24.9,60.2,25.0);' in q
    assert 'node["shop"="mall"](60.1,24.9,60.2,25.0);' in q
    assert q.count("node[") == 5


def test_build_query_for_toilets_includes_information_offices():
    q = build_query(BOUNDS, "toilets")
    assert 'node["tourism"="information"]["information"="office"]' in q


def test_parse_elements_drops_malformed_records():
    payload = {
        "elements": [
            *PAYLOAD["elements"],
            {"type": "way", "id": 3},
            {"type": "node", "id": 4, "lat": "60.1", "lon": 24.9},
            {"type": "node", "id": 5, "lat": True, "lon": 24.9},
            {"type": "node", "lat": 60.1, "lon": 24.9},
        ]
    }

    out = parse_elements(payload)

    assert [c.id for c in out] == ["1", "2"]
    assert out[0].raw_name == "Kahvila"
    assert out[1].tags == {}
    assert parse_elements(None) == []
    assert parse_elements({"remark": "runtime error"}) == []


def test_fetch_retries_on_429(monkeypatch, tmp_path):
    calls: list[dict] = []

    def fake_post_form(url, *, data, headers=None, timeout_seconds=30):  # noqa: ARG001
        calls.append(data)
        if len(calls) == 1:
            raise _status_error(429, {"Retry-After": "0"})
        return PAYLOAD

    sleeps: list[float] = []
    monkeypatch.setattr("metroranta.ingestion.overpass_client.post_form", fake_post_form)
    monkeypatch.setattr("metroranta.ingestion.overpass_client.time.sleep", lambda s: sleeps.append(s))

    client = OverpassClient(_settings(), FileCache(tmp_path, enabled=False))
    candidates, mode = client.fetch_candidates(BOUNDS, "cafes")

    assert mode == "live"
    assert [c.id for c in candidates] == ["1", "2"]
    assert len(calls) == 2
    assert sleeps == [0.0]
    assert calls[0]["data"].startswith("[out:json]")


def test_fetch_does_not_retry_on_400(monkeypatch, tmp_path):
    calls = 0

    def fake_post_form(url, *, data, headers=None, timeout_seconds=30):  # noqa: ARG001
        nonlocal calls
        calls += 1
        raise _status_error(400)

    monkeypatch.setattr("metroranta.ingestion.overpass_client.post_form", fake_post_form)
    monkeypatch.setattr("metroranta.ingestion.overpass_client.time.sleep", lambda *_: None)

    client = OverpassClient(_settings(), FileCache(tmp_path, enabled=False))
    with pytest.raises(httpx.HTTPStatusError):
        client.fetch_candidates(BOUNDS, "cafes")
    assert calls == 1


def test_fetch_gives_up_after_max_attempts(monkeypatch, tmp_path):
    calls = 0

    def fake_post_form(url, *, data, headers=None, timeout_seconds=30):  # noqa: ARG001
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("boom")

    monkeypatch.setattr("metroranta.ingestion.overpass_client.post_form", fake_post_form)
    monkeypatch.setattr("metroranta.ingestion.overpass_client.time.sleep", lambda *_: None)

    client = OverpassClient(_settings(max_attempts=1), FileCache(tmp_path, enabled=False))
    with pytest.raises(httpx.ConnectError):
        client.fetch_candidates(BOUNDS, "toilets")
    assert calls == 2


def test_fetch_serves_cache_then_stale(monkeypatch, tmp_path):
    responses = [PAYLOAD]

    def fake_post_form(url, *, data, headers=None, timeout_seconds=30):  # noqa: ARG001
        if not responses:
            raise _status_error(504)
        return responses.pop()

    monkeypatch.setattr("metroranta.ingestion.overpass_client.post_form", fake_post_form)
    monkeypatch.setattr("metroranta.ingestion.overpass_client.time.sleep", lambda *_: None)

    client = OverpassClient(_settings(max_attempts=0), FileCache(tmp_path, enabled=True))

    live, live_mode = client.fetch_candidates(BOUNDS, "cafes")
    cached, cached_mode = client.fetch_candidates(BOUNDS, "cafes")
    stale, stale_mode = client.fetch_candidates(BOUNDS, "cafes", refresh=True)

    assert (live_mode, cached_mode, stale_mode) == ("live", "cache", "stale")
    assert {c.source for c in live} == {"overpass"}
    assert {c.source for c in cached} == {"cache"}
    assert [c.id for c in stale] == ["1", "2"]


def test_fetch_raises_without_cache_fallback(monkeypatch, tmp_path):
    def fake_post_form(url, *, data, headers=None, timeout_seconds=30):  # noqa: ARG001
        raise _status_error(503)

    monkeypatch.setattr("metroranta.ingestion.overpass_client.post_form", fake_post_form)
    monkeypatch.setattr("metroranta.ingestion.overpass_client.time.sleep", lambda *_: None)

    client = OverpassClient(_settings(max_attempts=0), FileCache(tmp_path, enabled=True))
    with pytest.raises(httpx.HTTPStatusError):
        client.fetch_candidates(BOUNDS, "indoor")


def test_fetch_treats_runtime_error_remark_as_failure(monkeypatch, tmp_path):
    def fake_post_form(url, *, data, headers=None, timeout_seconds=30):  # noqa: ARG001
        return {"elements": [], "remark": "runtime error: Query timed out in \"query\" at line 1 after 26 seconds."}

    monkeypatch.setattr("metroranta.ingestion.overpass_client.post_form", fake_post_form)

    cache = FileCache(tmp_path, enabled=True)
    client = OverpassClient(_settings(max_attempts=0), cache)
    with pytest.raises(ValueError, match="runtime error"):
        client.fetch_candidates(BOUNDS, "cafes")
    assert cache.get_stale("overpass:cafes", BOUNDS.cache_key()) is None
