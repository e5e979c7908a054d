import logging
import math
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from dateutil import tz

from stmq.dynamic_prices.series import PriceSeries
from stmq.heating.threshold import ThresholdCalculator
from stmq.temperatures import Readings

logger = logging.getLogger(__name__)


class HeatAction(Enum):
    OFF = ("heatoff", 0)
    WEAK = ("heaton15", 15)
    STRONG = ("heaton60", 60)

    def __init__(self, token, code):
        self.token = token
        self.code = code


@dataclass(frozen=True)
class Decision:
    time: datetime
    action: HeatAction
    current_price: Optional[float]
    threshold: float
    readings: Readings
    remaining_periods: int


def csv_number(value, fmt):
    return "NaN" if value is None else format(value, fmt)


class AuditLog:
    """Append-only decision log, one row per cycle."""

    def __init__(self, path, with_garage=True):
        self.path = path
        self.with_garage = with_garage

    @property
    def header(self):
        if self.with_garage:
            return "unix_time,price,heat_on,temp_in,temp_ga,temp_out\n"
        return "unix_time,price,heat_on,temp_in,temp_out\n"

    def init_csv(self):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if not os.path.exists(self.path) or os.path.getsize(self.path) == 0:
            with open(self.path, "w") as f:
                f.write(self.header)

    def write(self, now, price, action, readings):
        # Prices arrive in EUR/MWh, the log keeps c/kWh.
        fields = [
            str(int(now.timestamp())),
            csv_number(None if price is None else price / 10.0, ".3f"),
            str(action.code),
            csv_number(readings.inside, ".1f"),
        ]
        if self.with_garage:
            fields.append(csv_number(readings.garage, ".1f"))
        fields.append(csv_number(readings.outside, ".1f"))
        try:
            self.init_csv()
            with open(self.path, "a") as f:
                f.write(",".join(fields) + "\n")
        except OSError as e:
            logger.error(f"Failed to write to {self.path}: {e}")


def utc_now():
    return datetime.now(tz.UTC)


class HeatingDecisionEngine:
    """One heat adjustment per call to adjust().

    Owns the held price series and the strong-pulse bookkeeping; both are only
    touched while the cycle lock is held, so overlapping triggers are skipped.
    """

    def __init__(self, config, prices, temperatures, publisher, audit=None, clock=utc_now):
        self.prices = prices
        self.temperatures = temperatures
        self.publisher = publisher
        self.calculator = ThresholdCalculator(config.temp_to_hours)
        self.audit = audit or AuditLog(config.csv_path, temperatures.has_garage)
        self.clock = clock
        self.zone = config.zone
        self.rate_limit = config.rate_limit
        self.price_floor = config.fixed_price_floor
        self.refresh_below = timedelta(hours=config.price_refresh_hours)
        self.action_topic = config.mqtt.action_topic

        self.series = PriceSeries()
        self.last_strong_pulse_time = None
        self.last_decision = None
        self._cycle_lock = threading.Lock()

    def adjust(self):
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Previous heat adjustment still running, skipping this trigger")
            return None
        try:
            return self.run_cycle()
        except Exception:
            logger.exception("Heat adjustment failed")
            return None
        finally:
            self._cycle_lock.release()

    def run_cycle(self):
        now = self.clock()
        self.refresh_prices(now)
        readings = self.temperatures.read_all()

        remaining = self.series.slice_from(now)
        current_price = remaining[0] if remaining else None
        threshold = self.calculator.threshold_price(readings.outside, remaining)
        action = self.decide(now, current_price, threshold)

        if not self.publisher.post_trigger(self.action_topic, action.token):
            logger.warning(f"Action {action.token} may not have reached the actuator")
        self.audit.write(now, current_price, action, readings)

        decision = Decision(now, action, current_price, threshold, readings, len(remaining))
        self.last_decision = decision
        logger.info(f"Action = {action.token}, Price = {current_price}, Threshold = {threshold}, "
                    f"Temps in/ga/out = {readings.inside}/{readings.garage}/{readings.outside}")
        return decision

    def refresh_prices(self, now):
        remaining = self.series.remaining(now)
        if remaining >= self.refresh_below:
            logger.debug(f"{remaining} of prices left, no refresh needed")
            return
        window_start, window_end = self.prices.window(now)
        fetched = self.prices.fetch(window_start, window_end)
        if not fetched.has_data():
            logger.warning(f"No new prices, keeping {len(self.series)} held periods")
            return
        if fetched.same_content(self.series):
            logger.info("Prices unchanged, keeping held series")
            return
        self.series = fetched
        logger.info(f"Prices updated from {fetched.source}: {len(fetched)} periods "
                    f"{fetched.start_time} .. {fetched.end_time}")

    def heat_wanted(self, current_price, threshold):
        return current_price is None or current_price <= threshold or current_price <= self.price_floor

    def strong_pulse_due(self, now):
        if self.last_strong_pulse_time is not None:
            interval = timedelta(minutes=self.rate_limit.min_reassert_minutes)
            if now - self.last_strong_pulse_time < interval:
                return False
        return self.rate_limit.in_strong_window(now.astimezone(self.zone).time())

    def decide(self, now, current_price, threshold):
        if not self.heat_wanted(current_price, threshold):
            return HeatAction.OFF
        if self.strong_pulse_due(now):
            self.last_strong_pulse_time = now
            return HeatAction.STRONG
        return HeatAction.WEAK

    def status(self):
        decision = self.last_decision
        readings = self.temperatures.readings()
        return {
            "action": decision.action.token if decision else None,
            "time": decision.time.isoformat() if decision else None,
            "price": decision.current_price if decision else None,
            "threshold": decision.threshold if decision and math.isfinite(decision.threshold) else None,
            "remaining_periods": decision.remaining_periods if decision else 0,
            "price_source": self.series.source or None,
            "prices_until": self.series.end_time.isoformat() if self.series.end_time else None,
            "last_strong_pulse": self.last_strong_pulse_time.isoformat() if self.last_strong_pulse_time else None,
            "temp_in": readings.inside,
            "temp_ga": readings.garage,
            "temp_out": readings.outside,
        }
