import logging
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)

SMARTTHINGS_URL = "https://api.smartthings.com/v1/devices/{device_id}/status"
OWM_URL = "https://api.openweathermap.org/data/2.5/weather"
OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
TIMEOUT = 10


def as_float(value):
    return float(value) if value is not None else None


class SmartThingsSensor:
    def __init__(self, token, device_id):
        self.token = token
        self.device_id = device_id
        self.name = f"SmartThings ({device_id[:8]})"

    def read(self):
        headers = {"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"}
        try:
            r = requests.get(SMARTTHINGS_URL.format(device_id=self.device_id), headers=headers, timeout=TIMEOUT)
            if r.status_code != 200:
                logger.error(f"{self.name} query failed: HTTP {r.status_code}")
                return None
            status = r.json()
            value = (status.get("components", {}).get("main", {})
                     .get("temperatureMeasurement", {}).get("temperature", {}).get("value"))
            return as_float(value)
        except (requests.RequestException, ValueError, TypeError, AttributeError) as e:
            logger.error(f"{self.name} query failed: {e}")
            return None


class OpenWeatherMap:
    def __init__(self, token, country_code="", postal_code="", lat=None, lon=None):
        self.token = token
        if postal_code:
            self.params = {"zip": f"{postal_code},{country_code}"}
            self.name = f"OpenWeatherMap ({country_code}-{postal_code})"
        else:
            self.params = {"lat": lat, "lon": lon}
            self.name = f"OpenWeatherMap ({lat},{lon})"

    def read(self):
        params = dict(self.params, appid=self.token, units="metric")
        try:
            r = requests.get(OWM_URL, params=params, timeout=TIMEOUT)
            if r.status_code != 200:
                logger.error(f"{self.name} query failed: HTTP {r.status_code}")
                return None
            return as_float(r.json().get("main", {}).get("temp"))
        except (requests.RequestException, ValueError, TypeError, AttributeError) as e:
            logger.error(f"{self.name} query failed: {e}")
            return None


class OpenMeteo:
    def __init__(self, lat, lon):
        self.lat = lat
        self.lon = lon
        self.name = f"Open-Meteo ({lat},{lon})"

    def read(self):
        params = {"latitude": self.lat, "longitude": self.lon, "current": "temperature_2m"}
        try:
            r = requests.get(OPEN_METEO_URL, params=params, timeout=TIMEOUT)
            r.raise_for_status()
            return as_float(r.json().get("current", {}).get("temperature_2m"))
        except (requests.RequestException, ValueError, TypeError, AttributeError) as e:
            logger.error(f"{self.name} query failed: {e}")
            return None


@dataclass(frozen=True)
class Readings:
    inside: Optional[float]
    garage: Optional[float]
    outside: Optional[float]


class TemperatureSource:
    """Inside, garage and outside temperatures with last-known-good retention.

    Each zone has an ordered list of providers tried until one returns a value.
    A zone whose providers all fail keeps the value it held before.
    """

    def __init__(self, inside, outside, garage=None):
        self.inside = list(inside)
        self.outside = list(outside)
        self.garage = list(garage or [])
        self.inside_temp = None
        self.garage_temp = None
        self.outside_temp = None

    @property
    def has_garage(self):
        return bool(self.garage)

    def read_all(self):
        self.inside_temp = self.read_zone("inside", self.inside, self.inside_temp)
        self.garage_temp = self.read_zone("garage", self.garage, self.garage_temp)
        self.outside_temp = self.read_zone("outside", self.outside, self.outside_temp)
        return self.readings()

    def readings(self):
        return Readings(self.inside_temp, self.garage_temp, self.outside_temp)

    def read_zone(self, zone, providers, held):
        for provider in providers:
            value = provider.read()
            if value is not None:
                logger.debug(f"{zone} temperature {value} from {provider.name}")
                return value
        if providers:
            logger.warning(f"No {zone} temperature from {len(providers)} source(s), keeping {held}")
        return held


def temperature_source_from_config(config):
    st = config.smartthings
    geo = config.geoloc

    def sensors(device_id):
        return [SmartThingsSensor(st.token, device_id)] if st.token and device_id else []

    outside = sensors(st.outside_temp_dev_id)
    has_coordinates = geo.lat is not None and geo.lon is not None
    if config.weather_token and (geo.postal_code or has_coordinates):
        outside.append(OpenWeatherMap(config.weather_token, geo.country_code, geo.postal_code, geo.lat, geo.lon))
    if has_coordinates:
        outside.append(OpenMeteo(geo.lat, geo.lon))
    return TemperatureSource(
        inside=sensors(st.inside_temp_dev_id),
        outside=outside,
        garage=sensors(st.garage_temp_dev_id),
    )
