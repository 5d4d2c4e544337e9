"""Rolling time windows and quiet-hours arithmetic shared by the governor and alerting.

All persisted timestamps are timezone-aware UTC datetimes. Rolling windows are
measured backward from "now" and are never aligned to clock or calendar
boundaries. Quiet hours are the only place local wall-clock time is used.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

HOUR = timedelta(hours=1)
DAY = timedelta(hours=24)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def window_start(now: datetime, span: timedelta) -> datetime:
    """Return the exclusive lower bound of a rolling window ending at ``now``."""
    return now - span


def within_window(occurred_at: datetime, now: datetime, span: timedelta) -> bool:
    """Check whether ``occurred_at`` falls strictly inside the rolling window."""
    return occurred_at > window_start(now, span)


def count_within(timestamps: Iterable[datetime], now: datetime, span: timedelta) -> int:
    """Count timestamps that fall inside the rolling window ending at ``now``."""
    cutoff = window_start(now, span)
    return sum(1 for ts in timestamps if ts > cutoff)


def parse_hhmm(value: str) -> int:
    """Parse an ``HH:MM`` string into a comparable ``HH*100 + MM`` integer.

    Args:
        value: Wall-clock time such as ``"22:00"``

    Returns:
        Integer clock value (``"07:45"`` -> ``745``)

    Raises:
        ValueError: If the string is not a valid 24-hour ``HH:MM`` time
    """
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")

    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid time {value!r}, out of range")

    return hours * 100 + minutes


def clock_value(at: time) -> int:
    """Convert a wall-clock time to the ``HH*100 + MM`` form (seconds ignored)."""
    return at.hour * 100 + at.minute


def in_quiet_hours(start: str, end: str, at: time) -> bool:
    """Check quiet-hours membership at minute granularity, both ends inclusive.

    When ``start`` is later than ``end`` the window wraps past midnight.

    Examples:
        >>> in_quiet_hours("22:00", "06:00", time(23, 30))
        True
        >>> in_quiet_hours("09:00", "17:00", time(17, 0))
        True
        >>> in_quiet_hours("09:00", "17:00", time(17, 1))
        False
    """
    start_value = parse_hhmm(start)
    end_value = parse_hhmm(end)
    current = clock_value(at)

    if start_value > end_value:
        return current >= start_value or current <= end_value
    return start_value <= current <= end_value


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Resolve an IANA zone name; ``None`` means the system local zone."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown time zone {name!r}, falling back to system local time")
        return None


def to_local(now: datetime, tz: tzinfo | None = None) -> datetime:
    """Convert an aware datetime to local wall-clock time (system zone if ``tz`` is None)."""
    return now.astimezone(tz) if tz is not None else now.astimezone()
