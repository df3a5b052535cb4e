"""
Period Resolution

Turns period tokens ("this_month", "past_3_months") and explicit ISO
dates into concrete date ranges.

This is DETERMINISTIC - no LLM involvement. The model may pick the
dates it passes to a tool, but what a period means is decided here.

All datetimes are naive local time. Aware datetimes coming from a
store are converted to local time before comparison.
"""

import re
from datetime import date, datetime, time, timedelta
from typing import Optional

from pydantic import BaseModel, model_validator


DEFAULT_PERIOD = "this_month"

PAST_PERIOD_RE = re.compile(r"^past_(\d+)_(day|week|month|year)s?$")


class AggregationError(Exception):
    """Base error for bad aggregation input."""
    pass


class InvalidDateRangeError(AggregationError):
    """Dates that can't be parsed, or a range that ends before it starts."""
    pass


def to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


def shift_months(day: date, months: int) -> date:
    """Move by whole months, clamping the day to the target month's length."""
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    if month == 12:
        next_first = date(year + 1, 1, 1)
    else:
        next_first = date(year, month + 1, 1)
    last_day = (next_first - timedelta(days=1)).day
    return date(year, month, min(day.day, last_day))


def past_start(today: date, count: str, unit: str) -> date:
    """
    First day of "past <count> <unit>s".

    Counts reaching back before year 1 start at the earliest date.
    """
    try:
        n = int(count)
        if unit == "day":
            return today - timedelta(days=n)
        if unit == "week":
            return today - timedelta(weeks=n)
        if unit == "month":
            return shift_months(today, -n)
        return shift_months(today, -12 * n)
    except (ValueError, OverflowError):
        return date.min


class DateRange(BaseModel):
    """An inclusive range with a human label for summaries."""

    start: datetime
    end: datetime
    label: str

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        self.start = to_local_naive(self.start)
        self.end = to_local_naive(self.end)
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self

    def contains(self, moment: datetime) -> bool:
        moment = to_local_naive(moment)
        return self.start <= moment <= self.end


def parse_period(period: Optional[str], now: Optional[datetime] = None) -> DateRange:
    """
    Resolve a period token against now.

    Unknown or missing tokens mean this month.
    """
    now = to_local_naive(now or datetime.now())
    today = now.date()
    token = (period or DEFAULT_PERIOD).strip().lower()

    if token == "today":
        return DateRange(start=start_of_day(today), end=now, label="today")

    if token == "yesterday":
        yesterday = today - timedelta(days=1)
        return DateRange(
            start=start_of_day(yesterday),
            end=end_of_day(yesterday),
            label="yesterday",
        )

    # Weeks start on Sunday
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)

    if token == "this_week":
        return DateRange(start=start_of_day(week_start), end=now, label="this week")

    if token == "last_week":
        start = week_start - timedelta(days=7)
        return DateRange(
            start=start_of_day(start),
            end=end_of_day(start + timedelta(days=6)),
            label="last week",
        )

    if token == "last_month":
        first_of_this_month = today.replace(day=1)
        end = first_of_this_month - timedelta(days=1)
        return DateRange(
            start=start_of_day(end.replace(day=1)),
            end=end_of_day(end),
            label="last month",
        )

    if token == "this_year":
        return DateRange(
            start=start_of_day(today.replace(month=1, day=1)),
            end=now,
            label="this year",
        )

    if token == "last_year":
        return DateRange(
            start=start_of_day(date(today.year - 1, 1, 1)),
            end=end_of_day(date(today.year - 1, 12, 31)),
            label="last year",
        )

    match = PAST_PERIOD_RE.match(token)
    if match:
        count = match.group(1).lstrip("0") or "0"
        unit = match.group(2)
        return DateRange(
            start=start_of_day(past_start(today, count, unit)),
            end=now,
            label=f"past {count} {unit}{'s' if count != '1' else ''}",
        )

    return DateRange(
        start=start_of_day(today.replace(day=1)),
        end=now,
        label="this month",
    )


def range_from_iso(start_date: str, end_date: str) -> DateRange:
    """
    Build a range from YYYY-MM-DD strings, end date inclusive.

    Raises:
        InvalidDateRangeError: If either date is malformed or end < start
    """
    try:
        start = date.fromisoformat(str(start_date)[:10])
        end = date.fromisoformat(str(end_date)[:10])
    except ValueError as e:
        raise InvalidDateRangeError(f"Invalid date: {e}") from e

    if end < start:
        raise InvalidDateRangeError(f"end_date {end} is before start_date {start}")

    return DateRange(
        start=start_of_day(start),
        end=end_of_day(end),
        label=f"from {start:%b %d, %Y} to {end:%b %d, %Y}",
    )
