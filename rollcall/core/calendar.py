"""
Business-day normalisation.

Every piece of day bucketing in the project goes through :func:`day_key`.
Instants are stored in UTC; the organisation reports against calendar days
in one fixed UTC offset (e.g. ``+05:30``).
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from rollcall.core.exceptions import ValidationError

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def parse_offset(value: str) -> tzinfo:
    """Turn ``"+05:30"`` / ``"-0400"`` into a fixed-offset tzinfo."""
    match = _OFFSET_RE.match(value.strip()) if value else None
    if match is None:
        raise ValidationError(f"Invalid UTC offset: {value!r}", field="offset")
    sign, hours, minutes = match.groups()
    delta = timedelta(hours=int(hours), minutes=int(minutes))
    if delta >= timedelta(hours=24) or int(minutes) >= 60:
        raise ValidationError(f"Invalid UTC offset: {value!r}", field="offset")
    return timezone(-delta if sign == "-" else delta)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a potentially-naive timestamp to UTC-aware.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns; everything written by this project is UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def day_key(instant: datetime, offset: tzinfo) -> date:
    """Calendar date of *instant* in the organisation's offset."""
    return ensure_utc(instant).astimezone(offset).date()


def _iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def date_range(start: date, end: date) -> Iterator[date]:
    """Lazily yield every day from *start* to *end*, both inclusive.

    The bounds are checked eagerly so a bad range fails at the call site.
    """
    if start > end:
        raise ValidationError(
            f"start date {start.isoformat()} is after end date {end.isoformat()}",
            field="start_date",
        )
    return _iter_days(start, end)


def local_time_of(instant: datetime, offset: tzinfo) -> time:
    return ensure_utc(instant).astimezone(offset).time()
