"""
Datetime and duration helpers.
"""

import re
from datetime import datetime, timedelta, timezone

_DURATION_RE = re.compile(r"^(?P<hours>\d{1,2}):(?P<minutes>[0-5]\d)(?::(?P<seconds>[0-5]\d))?$")


def utcnow() -> datetime:
    """
    Get current UTC time as a naive datetime.

    Timestamp columns are stored without timezone, always in UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_duration(value) -> timedelta:
    """
    Parse an interval such as "00:15:00", "00:15" or a number of minutes.

    Raises:
        ValueError: if the value cannot be interpreted as a duration
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(minutes=value)

    text = str(value).strip()
    match = _DURATION_RE.match(text)
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    return timedelta(
        hours=int(match.group("hours")),
        minutes=int(match.group("minutes")),
        seconds=int(match.group("seconds") or 0),
    )


def format_duration(value: timedelta | None) -> str | None:
    """Render a duration as HH:MM:SS."""
    if value is None:
        return None
    total = int(value.total_seconds())
    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"


def humanize_duration(value: timedelta) -> str:
    """Friendly text used in customer notifications ("15 minutes", "1 hour 5 minutes", "30 seconds")."""
    total_seconds = int(value.total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    parts = []
    if hours:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if minutes:
        parts.append(f"{minutes} minute{'s' if minutes != 1 else ''}")
    if seconds or not parts:
        parts.append(f"{seconds} second{'s' if seconds != 1 else ''}")
    return " ".join(parts)
