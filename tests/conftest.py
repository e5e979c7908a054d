import pytest

from stmq.config import parse_config

BASE_OPTIONS = {
    "geoloc": {"country_code": "fi"},
    "mqtt": {"address": "mqtt://localhost:1883"},
}


@pytest.fixture
def make_config(tmp_path):
    def factory(**options):
        merged = dict(BASE_OPTIONS, csv_path=str(tmp_path / "st-mq.csv"))
        merged.update(options)
        return parse_config(merged)
    return factory
