import logging
import math

logger = logging.getLogger(__name__)

FULL_DAY_HOURS = 24.0


class ThresholdCalculator:
    """Outside temperature -> heating hours -> price threshold.

    `breakpoints` is the temp_to_hours table sorted by descending temperature:
    the first entry is the warm end (fewest hours), the last the cold end.
    """

    def __init__(self, breakpoints):
        self.breakpoints = list(breakpoints)

    def heating_hours(self, outside_temp):
        table = self.breakpoints
        if outside_temp is None or not table:
            return FULL_DAY_HOURS
        if outside_temp >= table[0].temp:
            return table[0].hours
        if outside_temp <= table[-1].temp:
            return table[-1].hours
        i = 0
        while outside_temp < table[i].temp:
            i += 1
        x1, y1 = table[i - 1].temp, table[i - 1].hours
        x2, y2 = table[i].temp, table[i].hours
        return y1 + (y2 - y1) / (x2 - x1) * (outside_temp - x1)

    def threshold_for_hours(self, hours, remaining_prices):
        prices = sorted(p for p in remaining_prices if p is not None)
        if not prices:
            return math.inf, 0
        target_count = int(math.floor(hours / FULL_DAY_HOURS * len(prices) + 0.5))
        index = max(0, min(target_count - 1, len(prices) - 1))
        return prices[index], target_count

    def threshold_price(self, outside_temp, remaining_prices):
        """Price of the target_count-th cheapest remaining period; +inf without prices."""
        hours = self.heating_hours(outside_temp)
        threshold, target_count = self.threshold_for_hours(hours, remaining_prices)
        ranked = sum(1 for p in remaining_prices if p is not None)
        logger.info(
            f"HeatedHours={hours:.2f}/24 ({hours / FULL_DAY_HOURS * 100:.1f}%) @ {outside_temp}C, "
            f"TargetPeriods={target_count}/{ranked}, Threshold={threshold}"
        )
        return threshold
