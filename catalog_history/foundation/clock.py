"""Timezone-aware clock utilities.

All timestamps in catalog-history MUST be UTC-aware.  This module is the
single source of "now" so tests can monkey-patch it trivially.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def end_of_day(value: datetime, tz: tzinfo = timezone.utc) -> datetime:
    """Return the last representable instant of *value*'s calendar day in *tz*.

    The result is expressed in UTC.
    """
    local = ensure_utc(value).astimezone(tz)
    last = local.replace(hour=23, minute=59, second=59, microsecond=999999)
    return last.astimezone(timezone.utc)
