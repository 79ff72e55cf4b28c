"""
Date helpers for listing filters and search windows
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

RANGE_DAYS = {
    'today': 0,
    'week': 7,
    'month': 30,
}


def resolve_date_range(name: Optional[str],
                       now: datetime = None) -> Optional[Tuple[datetime, datetime]]:
    """
    Turn a named range into a [start, end) datetime window

    Returns None for 'all' or an empty name (no bound).
    """
    if not name or name == 'all':
        return None
    if name not in RANGE_DAYS:
        raise ValueError(f"Unknown date range: {name}")

    now = now or datetime.now()
    today = datetime.combine(now.date(), datetime.min.time())
    start = today - timedelta(days=RANGE_DAYS[name])
    end = today + timedelta(days=1)
    return start, end


def months_ago(now: datetime, months: int) -> datetime:
    """Same clock time `months` calendar months earlier, clamped to month end"""
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD (a trailing time component is ignored)"""
    return date.fromisoformat(value.strip()[:10])


def format_long_date(value: date) -> str:
    """e.g. March 5, 2025"""
    return f"{value:%B} {value.day}, {value.year}"
