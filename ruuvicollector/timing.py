"""Wall-clock alignment for interval scanning."""

from __future__ import annotations

import math


def until_next_boundary(now: float, interval: float) -> float:
    """Seconds from now until the next epoch-aligned multiple of interval.

    With a 300 second interval, runs land on :00, :05, :10 and so on. When now
    is exactly on a boundary the full interval is returned.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")
    next_boundary = (math.floor(now / interval) + 1) * interval
    return next_boundary - now
