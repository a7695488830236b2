# -*- coding: utf-8 -*-
"""Time helpers for gridforce."""

# Import datetime helpers.
from datetime import datetime, timezone


def utc_now_iso() -> str:
    """Return current UTC time as an ISO-8601 string with 'Z'."""
    # Get current time in UTC.
    now = datetime.now(timezone.utc)
    # Convert to ISO string and force 'Z' suffix.
    return now.isoformat().replace("+00:00", "Z")


def parse_iso8601_to_utc_datetime(value: str | None) -> datetime:
    """Parse ISO-8601 string into an aware UTC datetime (fallback: now)."""
    if not value:
        return datetime.now(timezone.utc)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def datetime_to_unix_seconds(dt: datetime) -> int:
    """Convert an aware datetime to whole seconds since the Unix epoch."""
    return int(dt.timestamp())


def expand_timestamp_mask(mask: str, unix_seconds: int) -> str:
    """Expand strftime directives in `mask` for an absolute UTC timestamp.

    Example: ``rain_%Y%m%d_%H%M.nc`` -> ``rain_20251221_0100.nc``.
    """
    dt = datetime.fromtimestamp(int(unix_seconds), tz=timezone.utc)
    return dt.strftime(mask)


def seconds_to_time(seconds: float) -> str:
    """Format elapsed seconds as [Dd ]HH:MM:SS for messages."""
    total = int(round(float(seconds)))
    sign = "-" if total < 0 else ""
    total = abs(total)
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    if days:
        return f"{sign}{days}d {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"
