"""Utility functions for time handling.

All timestamps are UTC and timezone-aware. The rig has no timezone database,
so "local" time is UTC shifted by a fixed offset (summer time for the site),
and calendar days for irrigation limits are taken from that shifted clock.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

LOCAL_UTC_OFFSET_HOURS = 2


def utc_now() -> datetime:
    """Return current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def iso_now(*, timespec: str | None = None) -> str:
    """Return current UTC time as an ISO8601 string (timezone-aware)."""
    now = utc_now()
    if timespec:
        return now.isoformat(timespec=timespec)
    return now.isoformat()


def to_local(dt: datetime, offset_hours: float = LOCAL_UTC_OFFSET_HOURS) -> datetime:
    """Shift a UTC datetime by the fixed site offset."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone(timedelta(hours=offset_hours)))


def local_day(dt: datetime, offset_hours: float = LOCAL_UTC_OFFSET_HOURS) -> date:
    """Calendar day of ``dt`` on the shifted local clock."""
    return to_local(dt, offset_hours).date()

