import pytest

from netatmo_bridge.core.config import (
    DEFAULT_REFRESH_INTERVAL, DEFAULT_STALE_THRESHOLD, ConfigError, load_settings, parse_duration,
)

BASE_ENV = {"NETATMO_CLIENT_ID": "id", "NETATMO_CLIENT_SECRET": "secret"}


@pytest.mark.parametrize("text,seconds", [
    ("90", 90.0),
    ("45s", 45.0),
    ("8m", 480.0),
    ("1h", 3600.0),
    ("1h30m", 5400.0),
    ("2.5m", 150.0),
])
def test_parse_duration(text, seconds):
    assert parse_duration(text) == seconds


@pytest.mark.parametrize("text", ["", "abc", "5x", "m5", "1h 30m", "nan"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ConfigError):
        parse_duration(text)


def test_defaults():
    s = load_settings(BASE_ENV)
    assert s.refresh_interval == DEFAULT_REFRESH_INTERVAL
    assert s.stale_threshold == DEFAULT_STALE_THRESHOLD
    assert s.enabled_sources() == ["weather", "homecoach"]
    assert s.scopes() == ["read_station", "read_homecoach"]
    assert s.host == "0.0.0.0"
    assert s.port == 9210
    assert not s.debug_handlers
    assert not s.runtime_metrics


def test_overrides():
    s = load_settings({
        **BASE_ENV,
        "NETATMO_REFRESH_INTERVAL": "5m",
        "NETATMO_AGE_STALE": "2h",
        "NETATMO_ENABLE_HOMECOACH": "false",
        "NETATMO_EXPORTER_ADDR": "127.0.0.1:9999",
        "NETATMO_EXTERNAL_URL": "https://exporter.example.com/",
        "NETATMO_DISPLAY_TZ": "Europe/Berlin",
        "NETATMO_ENABLE_RUNTIME_METRICS": "true",
    })
    assert s.refresh_interval == 300
    assert s.stale_threshold == 7200
    assert s.enabled_sources() == ["weather"]
    assert s.scopes() == ["read_station"]
    assert (s.host, s.port) == ("127.0.0.1", 9999)
    assert s.external_url == "https://exporter.example.com"
    assert s.timezone.zone == "Europe/Berlin"
    assert s.runtime_metrics


@pytest.mark.parametrize("addr,host,port", [
    (":9210", "0.0.0.0", 9210),
    ("[::]:9210", "::", 9210),
    ("[::1]:8080", "::1", 8080),
])
def test_listen_address(addr, host, port):
    s = load_settings({**BASE_ENV, "NETATMO_EXPORTER_ADDR": addr})
    assert (s.host, s.port) == (host, port)


def test_missing_client_credentials():
    with pytest.raises(ConfigError, match="NETATMO_CLIENT_ID"):
        load_settings({})


@pytest.mark.parametrize("key,value", [
    ("NETATMO_REFRESH_INTERVAL", "soon"),
    ("NETATMO_AGE_STALE", "0"),
    ("NETATMO_ENABLE_WEATHER", "maybe"),
    ("NETATMO_DISPLAY_TZ", "Mars/Olympus"),
    ("NETATMO_LOG_LEVEL", "loud"),
    ("NETATMO_EXPORTER_ADDR", "localhost"),
])
def test_malformed_values(key, value):
    with pytest.raises(ConfigError, match=key):
        load_settings({**BASE_ENV, key: value})
