from unittest.mock import MagicMock, patch

import pytz

from stmq.dynamic_prices.elering_fetcher import EleringFetcher
from stmq.dynamic_prices.entsoe_fetcher import EntsoeFetcher
from stmq.dynamic_prices.price_source import PriceSource, price_source_from_config
from stmq.dynamic_prices.series import PriceSeries, series_from_blocks
from tests.helpers import DAY_START, hourly_block, response, utc

BERLIN = pytz.timezone("Europe/Berlin")


def provider(name, series):
    fake = MagicMock()
    fake.name = name
    fake.fetch.return_value = series
    return fake


def test_window_is_local_today_and_tomorrow_in_utc():
    source = PriceSource([], BERLIN)
    start, end = source.window(utc(2024, 1, 2, 13, 37))
    assert start == DAY_START
    assert end == utc(2024, 1, 3, 23, 0)


def test_window_across_spring_forward_is_47_hours():
    start, end = PriceSource([], BERLIN).window(utc(2024, 3, 30, 12, 0))
    assert start == utc(2024, 3, 29, 23, 0)
    assert (end - start).total_seconds() == 47 * 3600


def test_first_provider_with_data_wins():
    prices = series_from_blocks([hourly_block(DAY_START, [1.0] * 24)], "second")
    first = provider("first", PriceSeries(source="first"))
    second = provider("second", prices)
    third = provider("third", prices)

    result = PriceSource([first, second, third], BERLIN).fetch(DAY_START, utc(2024, 1, 3, 23, 0))

    assert result is prices
    first.fetch.assert_called_once_with(DAY_START, utc(2024, 1, 3, 23, 0))
    third.fetch.assert_not_called()


def test_no_provider_with_data_gives_empty_series():
    source = PriceSource([provider("a", PriceSeries()), provider("b", PriceSeries())], BERLIN)
    assert not source.fetch(DAY_START, utc(2024, 1, 3, 23, 0)).has_data()


def test_built_from_config_with_entsoe_first(make_config):
    source = price_source_from_config(make_config(timezone="Europe/Helsinki"))
    assert [p.name for p in source.providers] == ["ENTSO-E", "Elering"]
    assert source.zone.zone == "Europe/Helsinki"


@patch("stmq.dynamic_prices.entsoe_fetcher.requests.get")
def test_entsoe_error_document_falls_back_to_elering(mock_get):
    acknowledgement = (
        '<Acknowledgement_MarketDocument xmlns="urn:iec62325.351:tc57wg16:451-1:acknowledgementdocument:7:0">'
        "<Reason><code>999</code><text>No matching data found</text></Reason>"
        "</Acknowledgement_MarketDocument>"
    )
    t0 = int(DAY_START.timestamp())
    elering = {"success": True, "data": {"fi": [{"timestamp": t0 + i * 3600, "price": 40.0} for i in range(48)]}}
    mock_get.side_effect = [response(200, acknowledgement), response(200, json_data=elering)]
    source = PriceSource([EntsoeFetcher("token", "fi"), EleringFetcher("fi", BERLIN)], BERLIN)

    series = source.fetch(*source.window(DAY_START))

    assert mock_get.call_count == 2
    assert series.source == "Elering"
    assert len(series) == 48
