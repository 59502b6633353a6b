"""Utility functions for ShieldGate."""

import time
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], float]


def now_ms(clock: Clock = time.time) -> int:
    """Current time in epoch milliseconds.

    Args:
        clock: Time source returning UNIX time in seconds.
    """
    return int(clock() * 1000)


def ms_to_datetime(timestamp_ms: float) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime.

    Examples:
        >>> ms_to_datetime(0).isoformat()
        '1970-01-01T00:00:00+00:00'
    """
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
