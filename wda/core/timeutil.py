"""UTC timestamps.

All timestamps are timezone-aware UTC and serialize as ISO-8601.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

_TICK = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def next_timestamp(previous: Optional[datetime]) -> datetime:
    """Current time, bumped past previous if the clock has not moved on.

    Successive mutations of one record must carry strictly increasing
    updated_at values even when they land within the clock resolution.
    """
    now = utc_now()
    if previous is not None and now <= previous:
        return previous + _TICK
    return now


def elapsed_ms(start: datetime, end: datetime) -> float:
    """Milliseconds between two timestamps, never below one microsecond."""
    delta = (end - start) / timedelta(milliseconds=1)
    return max(delta, 0.001)
