"""Calendar helpers for monthly series and month filters."""
from datetime import date, datetime
from typing import Optional, Tuple

from dateutil.relativedelta import relativedelta


def add_months(start: date, months: int) -> date:
    """
    Returns `start` shifted by a number of calendar months.
    Year boundaries roll over and the day is clamped to the end of the target month
    (Jan 31 + 1 month -> Feb 28/29). Offsets are always taken from the original start date.
    """
    return start + relativedelta(months=+months)


def parse_month(month_str: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parses a YYYY-MM string into (year, month), None when absent or malformed."""
    if not month_str:
        return None
    try:
        parsed = datetime.strptime(month_str, "%Y-%m")
    except ValueError:
        return None
    return parsed.year, parsed.month


def months_between(start: date, end: date) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def to_datetime(value: date) -> datetime:
    # MongoDB stores datetimes only
    return datetime.combine(value, datetime.min.time())
