import pytest

from metroranta.core.cache import FileCache, record_cache_stats


def test_file_cache_stale_if_error_returns_expired_value(monkeypatch, tmp_path):
    cache = FileCache(tmp_path, enabled=True, default_ttl_seconds=1)

    monkeypatch.setattr("metroranta.core.cache.time.time", lambda: 0)
    cache.set("ns", "k", {"v": 1}, ttl_seconds=1)

    monkeypatch.setattr("metroranta.core.cache.time.time", lambda: 100)

    def builder():
        raise RuntimeError("upstream down")

    with record_cache_stats() as stats:
        result = cache.fetch(
            "ns",
            "k",
            builder,
            ttl_seconds=1,
            stale_if_error=True,
            stale_predicate=lambda exc: isinstance(exc, RuntimeError),
        )
    assert result.value == {"v": 1}
    assert result.mode == "stale"
    assert result.created_at_unix == 0
    assert stats.expired == 1
    assert stats.stale_fallbacks == 1


def test_file_cache_stale_if_error_respects_predicate(monkeypatch, tmp_path):
    cache = FileCache(tmp_path, enabled=True, default_ttl_seconds=1)

    monkeypatch.setattr("metroranta.core.cache.time.time", lambda: 0)
    cache.set("ns", "k", {"v": 1}, ttl_seconds=1)

    monkeypatch.setattr("metroranta.core.cache.time.time", lambda: 100)

    def builder():
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError):
        cache.fetch(
            "ns",
            "k",
            builder,
            ttl_seconds=1,
            stale_if_error=True,
            stale_predicate=lambda exc: isinstance(exc, ValueError),
        )


def test_file_cache_fetch_modes(monkeypatch, tmp_path):
    cache = FileCache(tmp_path, enabled=True, default_ttl_seconds=60)
    monkeypatch.setattr("metroranta.core.cache.time.time", lambda: 1000)
    calls: list[int] = []

    def builder():
        calls.append(1)
        return [1, 2, 3]

    first = cache.fetch("overpass:cafes", "bbox", builder)
    second = cache.fetch("overpass:cafes", "bbox", builder)
    refreshed = cache.fetch("overpass:cafes", "bbox", builder, refresh=True)

    assert (first.mode, second.mode, refreshed.mode) == ("live", "cache", "live")
    assert second.value == [1, 2, 3]
    assert len(calls) == 2


def test_file_cache_disabled_never_stores(tmp_path):
    cache = FileCache(tmp_path, enabled=False)
    cache.set("ns", "k", {"v": 1})
    assert cache.get("ns", "k") is None
    assert not any(tmp_path.iterdir())


def test_file_cache_ignores_corrupt_entry(tmp_path):
    cache = FileCache(tmp_path, enabled=True)
    cache.set("ns", "k", {"v": 1})
    path = cache._path("ns", "k")
    path.write_text("{not json", encoding="utf-8")

    assert cache.get("ns", "k") is None
    assert cache.get_stale("ns", "k") is None
