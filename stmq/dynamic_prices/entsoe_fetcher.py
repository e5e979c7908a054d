import logging
from xml.etree import ElementTree as ET

import requests
from dateutil import parser, tz

from stmq.dynamic_prices.series import (
    RESOLUTIONS, PriceBlock, PriceDataError, PriceSeries, series_from_blocks,
)

logger = logging.getLogger(__name__)

API_URL = "https://web-api.tp.entsoe.eu/api"
TIMEOUT = 30

# Bidding zone EIC codes by country code
ENTSOE_AREAS = {
    "at": "10YAT-APG------L",
    "be": "10YBE----------2",
    "de": "10Y1001A1001A82H",
    "dk": "10Y1001A1001A65H",
    "ee": "10Y1001A1001A39I",
    "fi": "10YFI-1--------U",
    "fr": "10YFR-RTE------C",
    "lt": "10YLT-1001A0008Q",
    "lv": "10YLV-1001A00074",
    "nl": "10YNL----------L",
    "no": "10YNO-0--------C",
    "pl": "10YPL-AREA-----S",
    "se": "10YSE-1--------K",
}


def local_name(element):
    return element.tag.rsplit("}", 1)[-1]


def parse_entsoe_xml(text):
    """Market document -> list of PriceBlock.

    An acknowledgement document (the API's error envelope) yields no blocks.
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise PriceDataError(f"Unparseable ENTSO-E document: {e}") from e

    if local_name(root) == "Acknowledgement_MarketDocument":
        reason = root.find(".//{*}Reason/{*}text")
        logger.error(f"ENTSO-E API error: {reason.text if reason is not None else 'Unknown error'}")
        return []

    blocks = []
    for period in root.findall(".//{*}TimeSeries/{*}Period"):
        start = period.find("{*}timeInterval/{*}start")
        end = period.find("{*}timeInterval/{*}end")
        resolution = period.find("{*}resolution")
        if start is None or end is None or resolution is None:
            logger.warning("ENTSO-E: Period without timeInterval or resolution, skipping")
            continue
        if resolution.text not in RESOLUTIONS:
            logger.warning(f"ENTSO-E: unsupported resolution {resolution.text}, skipping period at {start.text}")
            continue

        points = {}
        for point in period.findall("{*}Point"):
            position = point.find("{*}position")
            price = point.find("{*}price.amount")
            if position is None or price is None:
                logger.warning("ENTSO-E: Point without position or price.amount")
                continue
            try:
                points[int(position.text)] = float(price.text)
            except (TypeError, ValueError) as e:
                raise PriceDataError(f"Bad ENTSO-E point: {e}") from e

        try:
            block_start = parser.isoparse(start.text)
            block_end = parser.isoparse(end.text)
        except ValueError as e:
            raise PriceDataError(f"Bad ENTSO-E timeInterval: {e}") from e
        blocks.append(PriceBlock(block_start, block_end, RESOLUTIONS[resolution.text], points))
    return blocks


class EntsoeFetcher:
    name = "ENTSO-E"

    def __init__(self, token, country_code):
        self.token = token
        self.country_code = country_code
        self.area = ENTSOE_AREAS.get(country_code)

    def fetch(self, window_start, window_end):
        if not self.token or not self.area:
            logger.warning(f"ENTSO-E not configured for '{self.country_code}', skipping")
            return PriceSeries(source=self.name)
        params = {
            "securityToken": self.token,
            "documentType": "A44",
            "in_Domain": self.area,
            "out_Domain": self.area,
            "periodStart": window_start.astimezone(tz.UTC).strftime("%Y%m%d%H%M"),
            "periodEnd": window_end.astimezone(tz.UTC).strftime("%Y%m%d%H%M"),
        }
        try:
            r = requests.get(API_URL, params=params, timeout=TIMEOUT)
            if r.status_code != 200:
                logger.error(f"ENTSO-E ({self.country_code}) query failed: HTTP {r.status_code}")
                logger.debug(f"ENTSO-E response: {r.text[:1000]}")
                return PriceSeries(source=self.name)
            logger.info(f"ENTSO-E ({self.country_code}) query successful")
            series = series_from_blocks(parse_entsoe_xml(r.text), self.name)
        except (requests.RequestException, PriceDataError) as e:
            logger.error(f"ENTSO-E query failed: {e}")
            return PriceSeries(source=self.name)
        logger.info(f"ENTSO-E: {len(series)} periods in {len(series.segments)} segments")
        return series
