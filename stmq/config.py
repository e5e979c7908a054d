import os
from dataclasses import dataclass, field
from datetime import time
from pathlib import Path
from typing import Optional

import pytz
import yaml
from dotenv import load_dotenv

from stmq.dynamic_prices.elering_fetcher import ELERING_COUNTRIES
from stmq.dynamic_prices.entsoe_fetcher import ENTSOE_AREAS

DEFAULT_TIMEZONE = "Europe/Berlin"
DEFAULT_CSV = "./share/st-mq/st-mq.csv"
DEFAULT_EASEE_CSV = "./share/st-mq/easee.csv"
DEFAULT_ACTION_TOPIC = "from_stmq/heat/action"
DEFAULT_RECEIPT_TOPIC = "to_stmq/heat/receipt"

# (variable, section, key)
ENV_SECRETS = [
    ("STMQ_ENTSOE_TOKEN", "entsoe", "token"),
    ("STMQ_MQTT_USER", "mqtt", "user"),
    ("STMQ_MQTT_PW", "mqtt", "pw"),
    ("STMQ_SMARTTHINGS_TOKEN", "smartthings", "token"),
    ("STMQ_OWM_TOKEN", "openweathermap", "token"),
    ("STMQ_EASEE_USER", "easee", "user"),
    ("STMQ_EASEE_PW", "easee", "pw"),
]


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class Breakpoint:
    temp: float
    hours: float


@dataclass(frozen=True)
class Geolocation:
    country_code: str
    postal_code: str = ""
    lat: Optional[float] = None
    lon: Optional[float] = None


@dataclass(frozen=True)
class RateLimit:
    min_reassert_minutes: float = 60.0
    strong_start: Optional[time] = None
    strong_end: Optional[time] = None

    def in_strong_window(self, local_time):
        if self.strong_start is None or self.strong_end is None:
            return True
        if self.strong_start <= self.strong_end:
            return self.strong_start <= local_time < self.strong_end
        # window wraps midnight
        return local_time >= self.strong_start or local_time < self.strong_end


@dataclass(frozen=True)
class MqttSettings:
    address: str
    user: str = ""
    pw: str = ""
    action_topic: str = DEFAULT_ACTION_TOPIC
    receipt_topic: str = DEFAULT_RECEIPT_TOPIC


@dataclass(frozen=True)
class SmartThingsSettings:
    token: str = ""
    inside_temp_dev_id: str = ""
    garage_temp_dev_id: str = ""
    outside_temp_dev_id: str = ""


@dataclass(frozen=True)
class DashboardSettings:
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 1234


@dataclass(frozen=True)
class EaseeSettings:
    user: str = ""
    pw: str = ""
    charger_id: str = ""
    equalizer_id: str = ""
    csv_path: str = DEFAULT_EASEE_CSV
    interval_minutes: float = 5.0

    @property
    def enabled(self):
        return bool(self.user and self.pw and self.charger_id and self.equalizer_id)


@dataclass(frozen=True)
class Config:
    geoloc: Geolocation
    mqtt: MqttSettings
    timezone: str = DEFAULT_TIMEZONE
    entsoe_token: str = ""
    smartthings: SmartThingsSettings = field(default_factory=SmartThingsSettings)
    weather_token: str = ""
    temp_to_hours: tuple = ()
    rate_limit: RateLimit = field(default_factory=RateLimit)
    fixed_price_floor: float = 30.0
    price_refresh_hours: float = 12.0
    csv_path: str = DEFAULT_CSV
    log_file: str = ""
    log_level: str = "INFO"
    dashboard: DashboardSettings = field(default_factory=DashboardSettings)
    easee: EaseeSettings = field(default_factory=EaseeSettings)

    @property
    def zone(self):
        return pytz.timezone(self.timezone)


def find_config_path():
    candidates = [os.getenv("STMQ_CONFIG"), "./data/options.json", "./config.yaml"]
    for candidate in candidates:
        if candidate and Path(candidate).exists():
            return Path(candidate)
    raise ConfigError(f"No config file found (tried {', '.join(c for c in candidates if c)})")


def load_config(path=None):
    """Read the YAML (or add-on JSON) options file and build a Config."""
    load_dotenv()
    config_path = Path(path) if path else find_config_path()
    try:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path} does not contain a mapping")
    options = raw.get("options") or raw
    if not isinstance(options, dict):
        raise ConfigError(f"{config_path}: 'options' must be a mapping")
    apply_env_secrets(options)
    return parse_config(options)


def apply_env_secrets(options):
    for variable, section, key in ENV_SECRETS:
        value = os.getenv(variable)
        if value:
            options.setdefault(section, {})
            if options[section] is None:
                options[section] = {}
            options[section][key] = value


def parse_config(options):
    geoloc = section(options, "geoloc")
    country_code = str(geoloc.get("country_code") or "").lower()
    if not country_code:
        raise ConfigError("geoloc.country_code is required")
    if country_code not in ENTSOE_AREAS and country_code not in ELERING_COUNTRIES:
        raise ConfigError(f"Unsupported country code '{country_code}'")

    mqtt = section(options, "mqtt")
    if not mqtt.get("address"):
        raise ConfigError("mqtt.address is required")

    timezone = options.get("timezone") or DEFAULT_TIMEZONE
    try:
        pytz.timezone(timezone)
    except pytz.UnknownTimeZoneError as e:
        raise ConfigError(f"Unknown timezone '{timezone}'") from e

    st = section(options, "smartthings")
    dash = section(options, "dashboard")
    easee = section(options, "easee")
    return Config(
        geoloc=Geolocation(
            country_code=country_code,
            postal_code=str(geoloc.get("postal_code") or ""),
            lat=optional_float(geoloc.get("lat"), "geoloc.lat"),
            lon=optional_float(geoloc.get("lon"), "geoloc.lon"),
        ),
        mqtt=MqttSettings(
            address=str(mqtt["address"]),
            user=str(mqtt.get("user") or ""),
            pw=str(mqtt.get("pw") or ""),
            action_topic=mqtt.get("action_topic") or DEFAULT_ACTION_TOPIC,
            receipt_topic=mqtt.get("receipt_topic") or DEFAULT_RECEIPT_TOPIC,
        ),
        timezone=timezone,
        entsoe_token=str(section(options, "entsoe").get("token") or ""),
        smartthings=SmartThingsSettings(
            token=str(st.get("token") or ""),
            inside_temp_dev_id=str(st.get("inside_temp_dev_id") or ""),
            garage_temp_dev_id=str(st.get("garage_temp_dev_id") or ""),
            outside_temp_dev_id=str(st.get("outside_temp_dev_id") or ""),
        ),
        weather_token=str(section(options, "openweathermap").get("token") or ""),
        temp_to_hours=parse_breakpoints(options.get("temp_to_hours") or []),
        rate_limit=parse_rate_limit(section(options, "rate_limit")),
        fixed_price_floor=required_float(options.get("fixed_price_floor", 30.0), "fixed_price_floor"),
        price_refresh_hours=required_float(options.get("price_refresh_hours", 12.0), "price_refresh_hours"),
        csv_path=options.get("csv_path") or DEFAULT_CSV,
        log_file=options.get("log_file") or "",
        log_level=str(options.get("log_level") or "INFO").upper(),
        dashboard=DashboardSettings(
            enabled=bool(dash.get("enabled", False)),
            host=dash.get("host") or "0.0.0.0",
            port=int(required_float(dash.get("port", 1234), "dashboard.port")),
        ),
        easee=EaseeSettings(
            user=str(easee.get("user") or ""),
            pw=str(easee.get("pw") or ""),
            charger_id=str(easee.get("charger_id") or ""),
            equalizer_id=str(easee.get("equalizer_id") or ""),
            csv_path=easee.get("csv_path") or DEFAULT_EASEE_CSV,
            interval_minutes=required_float(easee.get("interval_minutes", 5.0), "easee.interval_minutes"),
        ),
    )


def section(options, name):
    value = options.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return value


def optional_float(value, name):
    if value is None or value == "":
        return None
    return required_float(value, name)


def required_float(value, name):
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def parse_breakpoints(entries):
    """temp_to_hours entries, kept in the configured (descending temp) order."""
    if not isinstance(entries, list):
        raise ConfigError("temp_to_hours must be a list")
    breakpoints = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict) or "temp" not in entry or "hours" not in entry:
            raise ConfigError(f"temp_to_hours[{i}] needs 'temp' and 'hours'")
        breakpoints.append(Breakpoint(
            temp=required_float(entry["temp"], f"temp_to_hours[{i}].temp"),
            hours=required_float(entry["hours"], f"temp_to_hours[{i}].hours"),
        ))
    return tuple(breakpoints)


def parse_clock(value, name):
    if value is None or value == "":
        return None
    try:
        hour, minute = str(value).split(":")
        return time(int(hour), int(minute))
    except ValueError as e:
        raise ConfigError(f"{name} must look like HH:MM, got {value!r}") from e


def parse_rate_limit(options):
    window = options.get("strong_window") or {}
    if not isinstance(window, dict):
        raise ConfigError("rate_limit.strong_window must be a mapping")
    start = parse_clock(window.get("start"), "rate_limit.strong_window.start")
    end = parse_clock(window.get("end"), "rate_limit.strong_window.end")
    if (start is None) != (end is None):
        raise ConfigError("rate_limit.strong_window needs both start and end")
    return RateLimit(
        min_reassert_minutes=required_float(options.get("min_reassert_minutes", 60.0), "rate_limit.min_reassert_minutes"),
        strong_start=start,
        strong_end=end,
    )
