"""
Wire timestamp helpers.

Clients send and receive timestamps as ``DD/MM/YYYY HH:mm:ss`` in a fixed
regional time zone (``settings.display_timezone``). The database stores
naive UTC datetimes. Every conversion between the two goes through here.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from tap4service.core.config import settings

WIRE_FORMAT = "%d/%m/%Y %H:%M:%S"
_ACCEPTED_FORMATS = (WIRE_FORMAT, "%d/%m/%Y %H:%M")


def display_zone() -> ZoneInfo:
    return ZoneInfo(settings.display_timezone)


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_wire_datetime(value: str) -> datetime:
    """Parse a wire timestamp in the display zone into naive UTC.

    Raises:
        ValueError: If the string does not match ``DD/MM/YYYY HH:mm[:ss]``.
    """
    text = (value or "").strip()
    for fmt in _ACCEPTED_FORMATS:
        try:
            local = datetime.strptime(text, fmt)
        except ValueError:
            continue
        aware = local.replace(tzinfo=display_zone())
        return aware.astimezone(timezone.utc).replace(tzinfo=None)
    raise ValueError(f"Invalid date: {value!r}. Use DD/MM/YYYY HH:MM:SS")


def format_wire_datetime(value: Optional[datetime]) -> Optional[str]:
    """Render a stored naive-UTC datetime as a wire timestamp."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(display_zone()).strftime(WIRE_FORMAT)


def is_not_before_today(value: datetime, now: Optional[datetime] = None) -> bool:
    """True when ``value`` (naive UTC) falls after local midnight today.

    Availability windows may be any time later today, so the comparison is
    against the start of the current day in the display zone, not ``now``.
    """
    now = now or utcnow()
    zone = display_zone()
    local_now = now.replace(tzinfo=timezone.utc).astimezone(zone)
    start_of_day = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    local_value = value.replace(tzinfo=timezone.utc).astimezone(zone)
    return local_value > start_of_day


def within_notice_window(
    scheduled: Optional[datetime],
    now: Optional[datetime] = None,
    hours: Optional[int] = None,
) -> bool:
    """True when a confirmed schedule is too close (or already past) to change."""
    if scheduled is None:
        return False
    now = now or utcnow()
    window = timedelta(hours=settings.notice_window_hours if hours is None else hours)
    return scheduled - now <= window
