"""Day-ahead price series with per-day resolution.

A series is built from daily blocks as reported by the market APIs.  Every block
carries its own resolution, so a quarter-hourly day can follow an hourly one; the
cursor walks the segments one by one instead of dividing by a single resolution.
All instants are kept in UTC so that arithmetic stays exact across DST changes.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta

from dateutil import tz

logger = logging.getLogger(__name__)

QUARTER_HOUR = timedelta(minutes=15)
HOUR = timedelta(minutes=60)
RESOLUTIONS = {"PT15M": QUARTER_HOUR, "PT60M": HOUR}


class PriceDataError(Exception):
    pass


@dataclass(frozen=True)
class Segment:
    start: object
    period_count: int
    resolution: timedelta

    @property
    def end(self):
        return self.start + self.period_count * self.resolution


@dataclass(frozen=True)
class PriceBlock:
    """One civil day as delivered by a provider: 1-based position -> price."""
    start: object
    end: object
    resolution: timedelta
    points: dict = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class PriceSeries:
    values: tuple = ()
    segments: tuple = ()
    source: str = ""

    @property
    def start_time(self):
        return self.segments[0].start if self.segments else None

    @property
    def end_time(self):
        return self.segments[-1].end if self.segments else None

    def __len__(self):
        return len(self.values)

    def has_data(self):
        return any(value is not None for value in self.values)

    def index_at(self, now):
        """Index of the period containing `now` (len(values) once the series has ended)."""
        now = now.astimezone(tz.UTC)
        index = 0
        for segment in self.segments:
            if now >= segment.end:
                index += segment.period_count
                continue
            if now > segment.start:
                index += (now - segment.start) // segment.resolution
            return index
        return index

    def slice_from(self, now):
        if not self.has_data():
            return []
        return list(self.values[self.index_at(now):])

    def remaining(self, now):
        """Wall-clock time still covered by the series after `now`."""
        if not self.has_data():
            return timedelta(0)
        return max(timedelta(0), self.end_time - max(now.astimezone(tz.UTC), self.start_time))

    def periods(self):
        """Yield (period_start, resolution, value) in chronological order."""
        values = iter(self.values)
        for segment in self.segments:
            for i in range(segment.period_count):
                yield segment.start + i * segment.resolution, segment.resolution, next(values)

    def equals(self, other):
        return other is not None and self.values == other.values

    def same_content(self, other):
        # Positional comparison: a reordered series is a different series.
        return (self.equals(other)
                and self.segments == other.segments
                and self.start_time == other.start_time)


def fill_forward(points, slot_count):
    prices = [None] * slot_count
    for position, price in points.items():
        if 1 <= position <= slot_count:
            prices[position - 1] = price
        else:
            logger.debug(f"Dropping point at position {position}, block has {slot_count} slots")
    for i in range(1, slot_count):
        if prices[i] is None and prices[i - 1] is not None:
            prices[i] = prices[i - 1]
    return prices


def series_from_blocks(blocks, source=""):
    values = []
    segments = []
    for block in sorted(blocks, key=lambda b: b.start):
        start = block.start.astimezone(tz.UTC)
        end = block.end.astimezone(tz.UTC)
        slot_count, remainder = divmod(end - start, block.resolution)
        if slot_count <= 0 or remainder:
            raise PriceDataError(f"{source} block {start}..{end} is not a whole number of {block.resolution} slots")

        if segments:
            previous = segments[-1]
            if start < previous.end:
                logger.warning(f"{source}: skipping block at {start}, overlaps block ending {previous.end}")
                continue
            if start > previous.end:
                gap_count, gap_rest = divmod(start - previous.end, previous.resolution)
                if gap_rest:
                    raise PriceDataError(f"{source}: gap {previous.end}..{start} does not fit {previous.resolution} slots")
                logger.warning(f"{source}: no prices for {previous.end}..{start}, filling {gap_count} empty slots")
                segments.append(Segment(previous.end, gap_count, previous.resolution))
                values.extend([None] * gap_count)

        if not block.points:
            logger.warning(f"{source}: block at {start} has no prices")
        values.extend(fill_forward(block.points, slot_count))
        segments.append(Segment(start, slot_count, block.resolution))
    return PriceSeries(tuple(values), tuple(segments), source)
