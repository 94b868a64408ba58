"""Time-related utility functions."""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_micros(dt: datetime) -> int:
    """Convert a datetime to microseconds since the epoch at millisecond precision."""
    return ((dt - EPOCH) // timedelta(milliseconds=1)) * 1000


def duration_micros(duration: timedelta) -> int:
    """Convert a duration to microseconds at millisecond precision."""
    return (duration // timedelta(milliseconds=1)) * 1000


def format_local_time(dt: datetime, tz: Optional[tzinfo] = None) -> str:
    """Format a datetime as local wall-clock time with offset.

    Args:
        dt: Aware datetime to format
        tz: Target timezone (default: the machine's local timezone)

    Returns:
        Formatted string like "14:03:22.1234+02:00"
    """
    local = dt.astimezone(tz)
    offset = local.utcoffset() or timedelta(0)
    sign = "-" if offset < timedelta(0) else "+"
    offset_minutes = abs(int(offset.total_seconds())) // 60
    hours, minutes = divmod(offset_minutes, 60)
    return (
        f"{local:%H:%M:%S}.{local.microsecond // 100:04d}"
        f"{sign}{hours:02d}:{minutes:02d}"
    )


def format_duration(seconds: float) -> str:
    """Format duration in seconds as human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string like "2h 15m" or "45m 30s"
    """
    if seconds < 60:
        return f"{int(seconds)}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if minutes < 60:
        if remaining_seconds > 0:
            return f"{minutes}m {remaining_seconds}s"
        return f"{minutes}m"

    hours = minutes // 60
    remaining_minutes = minutes % 60

    if remaining_minutes > 0:
        return f"{hours}h {remaining_minutes}m"
    return f"{hours}h"
