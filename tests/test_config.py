import json
from datetime import time

import pytest

from stmq.config import Breakpoint, ConfigError, find_config_path, load_config, parse_config

CONFIG_YAML = """
geoloc:
  country_code: FI
  lat: 60.17
  lon: 24.94
timezone: Europe/Helsinki
entsoe:
  token: from-file
mqtt:
  address: mqtts://broker.local
temp_to_hours:
  - {temp: 15, hours: 2}
  - {temp: -20, hours: 22}
rate_limit:
  min_reassert_minutes: 45
  strong_window: {start: "04:45", end: "18:45"}
"""


@pytest.fixture(autouse=True)
def no_secrets_in_env(monkeypatch):
    for variable in ("STMQ_CONFIG", "STMQ_ENTSOE_TOKEN", "STMQ_MQTT_USER", "STMQ_MQTT_PW"):
        monkeypatch.delenv(variable, raising=False)


def test_load_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML)

    config = load_config(path)

    assert config.geoloc.country_code == "fi"
    assert config.geoloc.lat == 60.17
    assert config.timezone == "Europe/Helsinki"
    assert config.zone.zone == "Europe/Helsinki"
    assert config.entsoe_token == "from-file"
    assert config.temp_to_hours == (Breakpoint(15.0, 2.0), Breakpoint(-20.0, 22.0))
    assert config.rate_limit.min_reassert_minutes == 45.0
    assert config.rate_limit.strong_start == time(4, 45)
    assert config.rate_limit.strong_end == time(18, 45)


def test_defaults(make_config):
    config = make_config()
    assert config.timezone == "Europe/Berlin"
    assert config.fixed_price_floor == 30.0
    assert config.price_refresh_hours == 12.0
    assert config.rate_limit.min_reassert_minutes == 60.0
    assert config.rate_limit.strong_start is None
    assert config.rate_limit.in_strong_window(time(3, 0))
    assert config.mqtt.action_topic == "from_stmq/heat/action"
    assert config.mqtt.receipt_topic == "to_stmq/heat/receipt"
    assert not config.dashboard.enabled
    assert not config.easee.enabled


def test_addon_options_are_unwrapped(tmp_path):
    path = tmp_path / "options.json"
    path.write_text(json.dumps({"options": {
        "geoloc": {"country_code": "ee"},
        "mqtt": {"address": "mqtt://core-mosquitto"},
        "fixed_price_floor": 15,
    }}))
    config = load_config(path)
    assert config.geoloc.country_code == "ee"
    assert config.fixed_price_floor == 15.0


def test_secrets_from_environment_override_the_file(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML)
    monkeypatch.setenv("STMQ_ENTSOE_TOKEN", "from-env")
    monkeypatch.setenv("STMQ_MQTT_USER", "heater")
    monkeypatch.setenv("STMQ_MQTT_PW", "secret")

    config = load_config(path)

    assert config.entsoe_token == "from-env"
    assert config.mqtt.user == "heater"
    assert config.mqtt.pw == "secret"


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "elsewhere.yaml"
    path.write_text(CONFIG_YAML)
    monkeypatch.setenv("STMQ_CONFIG", str(path))
    assert find_config_path() == path


def test_missing_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ConfigError):
        find_config_path()


def test_unreadable_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("geoloc: [unclosed")
    with pytest.raises(ConfigError):
        load_config(path)


@pytest.mark.parametrize("options", [
    {"mqtt": {"address": "mqtt://localhost"}},
    {"geoloc": {"country_code": "us"}, "mqtt": {"address": "mqtt://localhost"}},
    {"geoloc": {"country_code": "fi"}},
    {"geoloc": {"country_code": "fi"}, "mqtt": {"address": "mqtt://localhost"}, "timezone": "Mars/Olympus"},
    {"geoloc": {"country_code": "fi"}, "mqtt": {"address": "mqtt://localhost"}, "temp_to_hours": [{"temp": 5}]},
    {"geoloc": {"country_code": "fi"}, "mqtt": {"address": "mqtt://localhost"}, "fixed_price_floor": "cheap"},
    {"geoloc": {"country_code": "fi"}, "mqtt": {"address": "mqtt://localhost"},
     "rate_limit": {"strong_window": {"start": "25:99", "end": "06:00"}}},
    {"geoloc": {"country_code": "fi"}, "mqtt": {"address": "mqtt://localhost"},
     "rate_limit": {"strong_window": {"start": "22:00"}}},
])
def test_invalid_options(options):
    with pytest.raises(ConfigError):
        parse_config(options)


def test_easee_enabled_with_credentials_and_devices(make_config):
    config = make_config(easee={"user": "me", "pw": "pw", "charger_id": "EH123", "equalizer_id": "QP456"})
    assert config.easee.enabled
    assert config.easee.interval_minutes == 5.0


def test_empty_addon_options_is_a_config_error(tmp_path):
    path = tmp_path / "options.json"
    path.write_text("options: null\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_addon_options_must_be_a_mapping(tmp_path, monkeypatch):
    monkeypatch.setenv("STMQ_ENTSOE_TOKEN", "from-env")
    path = tmp_path / "options.json"
    path.write_text("options: [fi, mqtt://localhost]\n")
    with pytest.raises(ConfigError):
        load_config(path)
