"""Wall-clock helpers; timestamps are integer milliseconds since the epoch."""

import time
from typing import Callable

Clock = Callable[[], int]

MILLIS_PER_DAY = 24 * 60 * 60 * 1000


def now_millis() -> int:
    return int(time.time() * 1000)


def days_to_millis(days: float) -> int:
    return int(days * MILLIS_PER_DAY)
