import logging
from datetime import datetime, time, timedelta

import requests
from dateutil import tz

from stmq.dynamic_prices.series import (
    HOUR, QUARTER_HOUR, PriceBlock, PriceDataError, PriceSeries, series_from_blocks,
)

logger = logging.getLogger(__name__)

API_URL = "https://dashboard.elering.ee/api/nps/price"
TIMEOUT = 30
ELERING_COUNTRIES = ("ee", "fi", "lt", "lv")


def infer_resolution(entries):
    if len(entries) < 2:
        return HOUR
    delta = entries[1][0] - entries[0][0]
    if delta == 900:
        return QUARTER_HOUR
    if delta == 3600:
        return HOUR
    logger.warning(f"Elering: unexpected timestamp difference {delta}s, assuming PT60M")
    return HOUR


def local_day_bounds(day, zone):
    start = zone.localize(datetime.combine(day, time())).astimezone(tz.UTC)
    end = zone.localize(datetime.combine(day + timedelta(days=1), time())).astimezone(tz.UTC)
    return start, end


def blocks_from_entries(entries, zone):
    """(unix_timestamp, price) pairs -> one PriceBlock per local civil day."""
    entries = sorted(entries)
    if not entries:
        return []
    resolution = infer_resolution(entries)
    first = datetime.fromtimestamp(entries[0][0], tz.UTC)
    last_end = datetime.fromtimestamp(entries[-1][0], tz.UTC) + resolution

    days = {}
    for timestamp, price in entries:
        instant = datetime.fromtimestamp(timestamp, tz.UTC)
        days.setdefault(instant.astimezone(zone).date(), []).append((instant, price))

    blocks = []
    for day, day_entries in days.items():
        day_start, day_end = local_day_bounds(day, zone)
        start = max(day_start, first)
        end = min(day_end, last_end)
        points = {(instant - start) // resolution + 1: price for instant, price in day_entries}
        blocks.append(PriceBlock(start, end, resolution, points))
    return blocks


class EleringFetcher:
    name = "Elering"

    def __init__(self, country_code, zone):
        self.country_code = country_code
        self.zone = zone

    def fetch(self, window_start, window_end):
        if self.country_code not in ELERING_COUNTRIES:
            logger.warning(f"Elering has no prices for '{self.country_code}', skipping")
            return PriceSeries(source=self.name)
        params = {
            "start": window_start.astimezone(tz.UTC).strftime("%Y-%m-%dT%H:%M:%S.000Z"),
            "end": window_end.astimezone(tz.UTC).strftime("%Y-%m-%dT%H:%M:%S.000Z"),
        }
        try:
            r = requests.get(API_URL, params=params, timeout=TIMEOUT)
            if r.status_code != 200:
                logger.error(f"Elering query failed: HTTP {r.status_code}")
                return PriceSeries(source=self.name)
            data = r.json()
            if not data.get("success") or not (data.get("data") or {}).get(self.country_code):
                logger.error(f"Elering API error: no valid data for country code {self.country_code}")
                return PriceSeries(source=self.name)
            logger.info("Elering query successful")
            start_ts = window_start.timestamp()
            end_ts = window_end.timestamp()
            entries = [
                (int(entry["timestamp"]), float(entry["price"]))
                for entry in data["data"][self.country_code]
                if start_ts <= int(entry["timestamp"]) < end_ts
            ]
            series = series_from_blocks(blocks_from_entries(entries, self.zone), self.name)
        except (requests.RequestException, ValueError, KeyError, TypeError, PriceDataError) as e:
            logger.error(f"Elering query failed: {e}")
            return PriceSeries(source=self.name)
        logger.info(f"Elering: {len(series)} periods in {len(series.segments)} segments")
        return series
