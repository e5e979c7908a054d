import logging
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


def next_boundary(now, minutes):
    """First multiple of `minutes` since midnight strictly after `now`."""
    step = timedelta(minutes=minutes)
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = (now - day) // step + 1
    return day + elapsed * step


def run_every(job, minutes, stop, name="job", clock=datetime.now):
    """Run `job` now and then on every `minutes` boundary until `stop` is set."""
    while not stop.is_set():
        try:
            job()
        except Exception:
            logger.exception(f"{name} failed")
        now = clock()
        next_run = next_boundary(now, minutes)
        wait = (next_run - now).total_seconds()
        logger.info(f"{name}: sleeping {wait:.0f}s until {next_run:%H:%M:%S}")
        stop.wait(wait)
