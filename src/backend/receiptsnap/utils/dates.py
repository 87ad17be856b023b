"""
Locale date/time normalization for receipt fields.

Receipts print day-first, period-delimited dates (DD.MM.YY or DD.MM.YYYY)
and a separate HH:MM time. These helpers turn them into the canonical
timestamp stored on the receipt row:

- date only (legacy extraction): "YYYY-MM-DD"
- date + time (current extraction): ISO-8601 UTC instant

Parsing never raises. A bad date-only value is returned unchanged; a bad
date+time pair falls back to the current time.
"""

import logging
from datetime import datetime, timezone, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from receiptsnap.config import settings

logger = logging.getLogger(__name__)


def _parse_date_parts(date_str: str) -> Tuple[int, int, int]:
    """
    Split a DD.MM.YY / DD.MM.YYYY string into (year, month, day).

    Raises:
        ValueError: wrong field count or non-numeric components
    """
    parts = [part.strip() for part in date_str.strip().split('.')]
    if len(parts) != 3:
        raise ValueError(f"expected DD.MM.YY(YY), got {date_str!r}")

    day, month, year = parts
    if not (day.isdigit() and month.isdigit() and year.isdigit()):
        raise ValueError(f"non-numeric date component in {date_str!r}")

    # Two-digit years belong to this century
    if len(year) == 2:
        year = '20' + year

    return int(year), int(month), int(day)


def _parse_time_parts(time_str: str) -> Tuple[int, int]:
    """Split HH:MM (optionally HH:MM:SS, seconds ignored) into (hour, minute)."""
    parts = [part.strip() for part in time_str.strip().split(':')]
    if len(parts) not in (2, 3) or not all(part.isdigit() for part in parts):
        raise ValueError(f"expected HH:MM, got {time_str!r}")
    return int(parts[0]), int(parts[1])


def resolve_timezone(tz_name: Optional[str] = None) -> Optional[tzinfo]:
    """
    Resolve the wall-clock timezone for receipt times.

    Returns None for the host timezone.
    """
    name = tz_name or settings.LOCAL_TIMEZONE
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone, using host timezone", extra={"timezone": name})
        return None


def convert_date_format(date_str: str) -> str:
    """
    Convert a day-first receipt date to YYYY-MM-DD.

    Args:
        date_str: "05.03.24" or "5.3.2024"

    Returns:
        "2024-03-05", or the original string if it cannot be parsed

    Examples:
        >>> convert_date_format("05.03.24")
        '2024-03-05'
        >>> convert_date_format("1.2.2024")
        '2024-02-01'
    """
    try:
        year, month, day = _parse_date_parts(date_str)
        return f"{year:04d}-{month:02d}-{day:02d}"
    except (ValueError, AttributeError) as e:
        logger.warning("Could not convert receipt date", extra={
            "date": date_str,
            "error": str(e)
        })
        return date_str


def build_timestamp(
    date_str: str,
    time_str: str,
    tz: Optional[tzinfo] = None,
    now: Optional[datetime] = None
) -> datetime:
    """
    Build the UTC instant for a receipt's local date and time.

    The wall-clock fields (year, month, day, hour, minute) are taken exactly
    as printed and interpreted in ``tz`` (host timezone when None), then
    converted once to UTC.

    Args:
        date_str: "DD.MM.YY" or "DD.MM.YYYY"
        time_str: "HH:MM"
        tz: Local timezone of the receipt
        now: Fallback instant (defaults to the current time)

    Returns:
        Timezone-aware UTC datetime. Falls back to ``now`` when either
        value is malformed or names an impossible date/time.
    """
    try:
        year, month, day = _parse_date_parts(date_str)
        hour, minute = _parse_time_parts(time_str)

        local = datetime(year, month, day, hour, minute)
        if tz is not None:
            local = local.replace(tzinfo=tz)
        else:
            local = local.astimezone()

        return local.astimezone(timezone.utc)

    except (ValueError, AttributeError, OverflowError) as e:
        fallback = now or datetime.now(timezone.utc)
        logger.warning("Could not parse receipt date/time, using current time", extra={
            "date": date_str,
            "time": time_str,
            "error": str(e),
            "fallback": fallback.isoformat()
        })
        return fallback


def canonical_timestamp(
    date_str: str,
    time_str: Optional[str] = None,
    tz: Optional[tzinfo] = None,
    now: Optional[datetime] = None
) -> str:
    """
    Canonical timestamp string for storage.

    With a time: ISO-8601 UTC instant. Without one: YYYY-MM-DD.
    """
    if time_str:
        if tz is None:
            tz = resolve_timezone()
        return build_timestamp(date_str, time_str, tz=tz, now=now).isoformat()

    return convert_date_format(date_str)
