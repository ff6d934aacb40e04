"""
Date and period helpers shared by the contract and reporting engines.

Store rows carry real `date`/`datetime` objects, but values typed at the
prompt or read back from exports arrive as ISO strings, so everything goes
through to_date() first.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from gestcrm.config import config


def local_now(tz: Optional[str] = None) -> datetime:
    """Aware current time in `tz`, defaulting to config.TIMEZONE."""
    return datetime.now(ZoneInfo(tz or config.TIMEZONE))


def local_today(tz: Optional[str] = None) -> date:
    """Today's date on the business calendar, not the host's."""
    return local_now(tz).date()


def to_date(value) -> Optional[date]:
    """
    Coerce a date-ish value to a `date`.

    Accepts date, datetime, ISO date or timestamp strings ('2025-01-05',
    '2025-01-05T10:30:00Z'). Returns None for None / blank.
    Raises ValueError for anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return date.fromisoformat(text[:10])
    raise ValueError(f"Not a date: {value!r}")


def days_between(start: date, end: date) -> int:
    """Whole days from start to end (negative when end is earlier)."""
    return (end - start).days


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def day_key(d: date) -> str:
    return d.isoformat()


def quarter_of(d: date) -> int:
    return (d.month - 1) // 3 + 1


def quarter_label(d: date) -> str:
    return f"Q{quarter_of(d)} {d.year}"


def add_months(d: date, months: int) -> date:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    index = d.year * 12 + (d.month - 1) + months
    year, month0 = divmod(index, 12)
    month = month0 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def trailing_months(today: date, count: int) -> List[Tuple[int, int]]:
    """The last `count` (year, month) pairs ending with today's month, oldest first."""
    first = today.replace(day=1)
    months = []
    for back in range(count - 1, -1, -1):
        d = add_months(first, -back)
        months.append((d.year, d.month))
    return months


def week_start(today: date) -> date:
    """Most recent Sunday (weeks start on Sunday)."""
    return today - timedelta(days=(today.weekday() + 1) % 7)
