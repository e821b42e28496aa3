"""Shared time arithmetic used across the scheduling core."""

import datetime as dt
from zoneinfo import ZoneInfo

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: dt.time) -> int:
    """Convert a time of day to minutes since midnight.

    Examples:
        >>> to_minutes(dt.time(10, 45))
        645
    """
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> dt.time:
    """Convert minutes since midnight back to a time of day.

    Raises:
        ValueError: If the value falls outside a single day.

    Examples:
        >>> from_minutes(645)
        datetime.time(10, 45)
    """
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return dt.time(minutes // 60, minutes % 60)


def day_of_week(value: dt.date) -> int:
    """Day index with 0=Sunday .. 6=Saturday.

    Examples:
        >>> day_of_week(dt.date(2025, 3, 18))  # a Tuesday
        2
    """
    return (value.weekday() + 1) % 7


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Strict overlap of half-open intervals; touching endpoints do not overlap.

    Examples:
        >>> intervals_overlap(600, 645, 630, 660)
        True
        >>> intervals_overlap(600, 645, 645, 675)
        False
    """
    return a_start < b_end and a_end > b_start


def parse_time(value: str) -> dt.time:
    """Parse an ``HH:MM`` or ``HH:MM:SS`` string."""
    value = value.strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return dt.datetime.strptime(value, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Invalid time {value!r}, expected HH:MM")


def utc_now() -> dt.datetime:
    """Timezone-aware current time. Default clock for record timestamps."""
    return dt.datetime.now(dt.timezone.utc)


def garage_timezone(name: str) -> dt.tzinfo:
    """Resolve a configured IANA zone name; ``UTC`` needs no tz database.

    Examples:
        >>> garage_timezone("UTC")
        datetime.timezone.utc
    """
    if name.upper() == "UTC":
        return dt.timezone.utc
    return ZoneInfo(name)
