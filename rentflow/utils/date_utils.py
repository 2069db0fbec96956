"""Date manipulation utilities"""

from datetime import date, timedelta
from typing import List


def add_months(day: date, months: int) -> date:
    """Shift to the first day of the month ``months`` after ``day``'s month"""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_starts(start: date, count: int) -> List[date]:
    """First day of each of ``count`` consecutive months beginning with ``start``'s month"""
    return [add_months(start, i) for i in range(count)]


def period_of(day: date) -> str:
    """YYYY-MM label for the month containing ``day``"""
    return f"{day.year:04d}-{day.month:02d}"


def day_before(day: date) -> date:
    return day - timedelta(days=1)
