"""
Calendar Period Module

Provides calendar-month arithmetic and period bucketing for the analytics
components. All comparisons are made on calendar dates; time of day is
always discarded.

Key Concepts:
- Month arithmetic clamps the day to the end of the target month
  (Jan 31 + 1 month = Feb 28/29)
- Period keys sort lexically in chronological order
  (day "2025-03-07", week "2025-W10", month "2025-03", quarter "2025-Q1", year "2025")
"""
from datetime import date, datetime, timedelta
from typing import Union
from enum import Enum
import calendar

DateLike = Union[date, datetime, str]


class PeriodType(Enum):
    """Granularities a transaction series can be bucketed into."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


def to_date(value: DateLike) -> date:
    """Reduce a date, datetime or ISO string to its calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise TypeError(f"Cannot interpret {value!r} as a date")


def add_months(d: date, months: int) -> date:
    """
    Shift a date by a number of calendar months.

    The day of month is clamped to the last day of the target month, so
    add_months(date(2025, 1, 31), 1) == date(2025, 2, 28).
    """
    month_index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def start_of_month(d: date) -> date:
    return date(d.year, d.month, 1)


def end_of_month(d: date) -> date:
    return date(d.year, d.month, calendar.monthrange(d.year, d.month)[1])


def month_key(d: date) -> str:
    """Calendar month key, e.g. '2025-03'."""
    return f"{d.year:04d}-{d.month:02d}"


def month_label(d: date) -> str:
    """Short display label, e.g. 'Mar 2025'."""
    return f"{calendar.month_abbr[d.month]} {d.year}"


def period_key(d: date, period: PeriodType) -> str:
    """Bucket key of the period containing ``d``."""
    period = PeriodType(period)
    if period == PeriodType.DAY:
        return d.isoformat()
    if period == PeriodType.WEEK:
        iso_year, iso_week, _ = d.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    if period == PeriodType.MONTH:
        return month_key(d)
    if period == PeriodType.QUARTER:
        return f"{d.year:04d}-Q{(d.month - 1) // 3 + 1}"
    return f"{d.year:04d}"


def period_start(d: date, period: PeriodType) -> date:
    """First calendar date of the period containing ``d``."""
    period = PeriodType(period)
    if period == PeriodType.DAY:
        return d
    if period == PeriodType.WEEK:
        return d - timedelta(days=d.weekday())
    if period == PeriodType.MONTH:
        return start_of_month(d)
    if period == PeriodType.QUARTER:
        return date(d.year, ((d.month - 1) // 3) * 3 + 1, 1)
    return date(d.year, 1, 1)


def shift_period(d: date, period: PeriodType, steps: int) -> date:
    """Move a period start date forward by ``steps`` periods."""
    period = PeriodType(period)
    if period == PeriodType.DAY:
        return d + timedelta(days=steps)
    if period == PeriodType.WEEK:
        return d + timedelta(weeks=steps)
    if period == PeriodType.MONTH:
        return add_months(d, steps)
    if period == PeriodType.QUARTER:
        return add_months(d, steps * 3)
    return add_months(d, steps * 12)
