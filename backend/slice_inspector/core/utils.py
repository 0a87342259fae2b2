# core/utils.py

import logging
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional

logger = logging.getLogger(__name__)

def format_time(seconds: Optional[float]) -> str:
    """
    Renders a run duration for logs and console output.

    Runs under a minute keep sub-second precision; longer ones are rounded
    to whole units (e.g. "2m 5s"). Anything that is not a non-negative number
    gives "N/A".
    """
    if not isinstance(seconds, (int, float)) or seconds < 0:
        return "N/A"
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes, sec = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    units = ((hours, "h"), (minutes, "m"), (sec, "s"))
    return " ".join(f"{value}{unit}" for value, unit in units if value)


@contextmanager
def timed(label: str) -> Iterator[List[float]]:
    """
    Logs how long the wrapped block took at INFO level.

    Yields a one-element list that holds the elapsed seconds once the block exits.
    """
    elapsed = [0.0]
    start_time = time.time()
    try:
        yield elapsed
    finally:
        elapsed[0] = time.time() - start_time
        logger.info(f"{label} completed in {format_time(elapsed[0])}")
