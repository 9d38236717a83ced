"""Civil-date helpers shared by the recurrence, occurrence and stats code."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterator, Union

DayLike = Union[date, datetime, str]


def to_day(value: DayLike) -> date:
    """Truncate a date, datetime or ISO string to its calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    raise TypeError(f"Cannot convert {value!r} to a date")


def is_same_or_before(a: DayLike, b: DayLike) -> bool:
    return to_day(a) <= to_day(b)


def in_range(day: DayLike, start: DayLike, end: DayLike) -> bool:
    d = to_day(day)
    return to_day(start) <= d <= to_day(end)


def iter_days(start: date, end: date) -> Iterator[date]:
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def month_start(day: date) -> date:
    return day.replace(day=1)


def year_start(day: date) -> date:
    return day.replace(month=1, day=1)


def weeks_between(a: date, b: date) -> int:
    # whole weeks between the Monday-based weeks containing a and b
    return (week_start(b) - week_start(a)).days // 7
