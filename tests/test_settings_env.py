import pytest

from metroranta.config.settings import get_logging_config, get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults_load_from_packaged_yaml():
    settings = get_settings()

    assert settings.proximity.max_distance_m == 100
    assert settings.proximity.buffer_m == 100
    assert settings.storage.flag_archive_threshold == 3
    assert settings.ingestion.overpass.base_url.startswith("https://")


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("METRORANTA_CACHE_DIR", "/tmp/metroranta-cache")
    monkeypatch.setenv("METRORANTA_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("METRORANTA_ROUTE_PATH", "/tmp/route.json")
    monkeypatch.setenv("OVERPASS_URL", "https://overpass.example.test/api/interpreter")

    settings = get_settings()

    assert settings.cache.dir == "/tmp/metroranta-cache"
    assert settings.app.log_level == "DEBUG"
    assert settings.route.path == "/tmp/route.json"
    assert settings.ingestion.overpass.base_url == "https://overpass.example.test/api/interpreter"


def test_external_config_file(monkeypatch, tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text("proximity:\n  max_distance_m: 250\nstorage:\n  flag_archive_threshold: 5\n", encoding="utf-8")
    monkeypatch.setenv("METRORANTA_CONFIG_PATH", str(config))

    settings = get_settings()

    assert settings.proximity.max_distance_m == 250
    assert settings.proximity.buffer_m == 100
    assert settings.storage.flag_archive_threshold == 5


def test_invalid_config_is_rejected(monkeypatch, tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text("proximity:\n  max_distance_m: -1\n", encoding="utf-8")
    monkeypatch.setenv("METRORANTA_CONFIG_PATH", str(config))

    with pytest.raises(ValueError):
        get_settings()


def test_logging_config_is_dict_config():
    config = get_logging_config()
    assert config["version"] == 1
    assert "console" in config["handlers"]
