import logging
from datetime import datetime, time, timedelta

from dateutil import tz

from stmq.dynamic_prices.elering_fetcher import EleringFetcher
from stmq.dynamic_prices.entsoe_fetcher import EntsoeFetcher
from stmq.dynamic_prices.series import PriceSeries

logger = logging.getLogger(__name__)


class PriceSource:
    """Ordered list of price providers; the first one with data wins."""

    def __init__(self, providers, zone, days=2):
        self.providers = list(providers)
        self.zone = zone
        self.days = days

    def window(self, now):
        """Local midnight today until local midnight `days` later, in UTC."""
        today = now.astimezone(self.zone).date()
        start = self.zone.localize(datetime.combine(today, time()))
        end = self.zone.localize(datetime.combine(today + timedelta(days=self.days), time()))
        return start.astimezone(tz.UTC), end.astimezone(tz.UTC)

    def fetch(self, window_start, window_end):
        for provider in self.providers:
            series = provider.fetch(window_start, window_end)
            if series.has_data():
                return series
            logger.warning(f"{provider.name} returned no prices, trying next source")
        logger.error(f"No prices for {window_start}..{window_end} from any source")
        return PriceSeries()


def price_source_from_config(config):
    zone = config.zone
    return PriceSource(
        [EntsoeFetcher(config.entsoe_token, config.geoloc.country_code),
         EleringFetcher(config.geoloc.country_code, zone)],
        zone,
    )
