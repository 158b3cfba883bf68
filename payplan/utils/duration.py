"""Service duration parsing."""
import calendar
import re
from datetime import datetime, timedelta

DEFAULT_DURATION_DAYS = 30

_LEADING_NUMBER = re.compile(r"^\s*(\d+)")


def _leading_int(text: str) -> int | None:
    match = _LEADING_NUMBER.match(text)
    if match:
        return int(match.group(1))
    return None


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def compute_end_date(start: datetime, duration: str | None) -> datetime:
    """
    End of a service window that opens at ``start``.

    "3 months" and "1 year" are calendar based; anything else is a day count.
    Months and years default to 1 when no count is given, days default to 30.
    """
    text = (duration or "").strip().lower()
    count = _leading_int(text)

    if "month" in text:
        return add_months(start, count or 1)
    if "year" in text:
        return add_months(start, 12 * (count or 1))
    return start + timedelta(days=count or DEFAULT_DURATION_DAYS)
