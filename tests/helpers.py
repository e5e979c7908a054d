from datetime import datetime, timedelta

from dateutil import tz

from stmq.dynamic_prices.series import HOUR, QUARTER_HOUR, PriceBlock

# 2024-01-02 00:00 in Europe/Berlin
DAY_START = datetime(2024, 1, 1, 23, 0, tzinfo=tz.UTC)


def utc(*args):
    return datetime(*args, tzinfo=tz.UTC)


def hourly_block(start, prices):
    return PriceBlock(start, start + len(prices) * HOUR, HOUR,
                      {i + 1: price for i, price in enumerate(prices)})


def quarter_block(start, prices):
    return PriceBlock(start, start + len(prices) * QUARTER_HOUR, QUARTER_HOUR,
                      {i + 1: price for i, price in enumerate(prices)})


def response(status_code=200, text="", json_data=None):
    r = type("Response", (), {})()
    r.status_code = status_code
    r.text = text
    r.json = lambda: json_data
    return r
