"""Recurrence engine for habit definitions.

Expansion uses ``dateutil.rrule`` for the generative patterns (daily and
weekly-every-N-weeks); non-repeating windows and explicit monthly dates are
plain date arithmetic. Expansion is total over validated definitions: it never
raises, and the lifetime ``repeat_count`` cap is applied before the query
window, so every query sees the same series.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from enum import Enum, IntEnum
from typing import Iterable, List, Optional, Tuple

from dateutil.rrule import DAILY, MO, WEEKLY, rrule

from .dates import iter_days, to_day
from .errors import InvalidDefinition, OutOfRange

logger = logging.getLogger(__name__)

MAX_REPEAT_COUNT = 365


class RepeatType(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Weekday(IntEnum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def parse(cls, value) -> "Weekday":
        """Accept an index (0 = Monday), a full English name or a 3-letter abbreviation."""
        if isinstance(value, Weekday):
            return value
        if isinstance(value, bool):
            raise InvalidDefinition("weekly_days", f"unknown weekday {value!r}")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise InvalidDefinition("weekly_days", f"weekday index {value} is outside 0-6") from None
        text = str(value).strip().upper()
        for wd in cls:
            if text == wd.name or text == wd.name[:3]:
                return wd
        raise InvalidDefinition("weekly_days", f"unknown weekday {value!r}")


@dataclass(frozen=True)
class HabitDefinition:
    habit_id: Optional[int]
    owner_id: Optional[int]
    name: str
    start_date: date
    description: str = ""
    repeat_type: RepeatType = RepeatType.NONE
    weekly_days: frozenset = field(default_factory=frozenset)
    weekly_interval_weeks: int = 1
    monthly_dates: Tuple[date, ...] = ()
    monthly_interval_months: int = 1
    end_date: Optional[date] = None
    repeat_count: Optional[int] = None
    reminder_offsets: Tuple[int, ...] = ()

    @property
    def is_repeating(self) -> bool:
        return self.repeat_type != RepeatType.NONE


def validate(definition: HabitDefinition, today: Optional[date] = None) -> HabitDefinition:
    """Check a definition and return its normalized form.

    ``today`` is only passed at creation time: a start date in the past is
    rejected then, but already-stored definitions stay expandable.
    Monthly dates earlier than the start date are dropped, not rejected.
    """
    d = definition
    if not d.name or not d.name.strip():
        raise InvalidDefinition("name", "must not be empty")
    if today is not None and d.start_date < today:
        raise InvalidDefinition("start_date", "cannot be in the past")

    if d.end_date is not None and d.repeat_count is not None:
        raise InvalidDefinition("end_date", "cannot be combined with repeat_count")
    if d.end_date is not None:
        if d.is_repeating:
            raise InvalidDefinition("end_date", "only allowed when repeat_type is none")
        if d.end_date < d.start_date:
            raise InvalidDefinition("end_date", "must not be earlier than start_date")
    if d.repeat_count is not None:
        if not d.is_repeating:
            raise InvalidDefinition("repeat_count", "only allowed for repeating habits")
        if not 1 <= d.repeat_count <= MAX_REPEAT_COUNT:
            raise OutOfRange("repeat_count", f"must be between 1 and {MAX_REPEAT_COUNT}")
    if d.reminder_offsets:
        if not d.is_repeating:
            raise InvalidDefinition("reminder_offsets", "only allowed for repeating habits")
        if any(o < 1 for o in d.reminder_offsets):
            raise InvalidDefinition("reminder_offsets", "offsets must be positive day counts")
    if d.weekly_interval_weeks < 1:
        raise InvalidDefinition("weekly_interval_weeks", "must be a positive integer")
    if d.monthly_interval_months < 1:
        raise InvalidDefinition("monthly_interval_months", "must be a positive integer")

    if d.repeat_type == RepeatType.WEEKLY and not d.weekly_days:
        raise InvalidDefinition("weekly_days", "at least one weekday is required for weekly habits")
    if d.repeat_type == RepeatType.MONTHLY and not d.monthly_dates:
        raise InvalidDefinition("monthly_dates", "at least one date is required for monthly habits")

    monthly = tuple(sorted({x for x in d.monthly_dates if x >= d.start_date}))
    if len(monthly) != len(d.monthly_dates):
        logger.debug("Dropped %d monthly dates before start_date", len(d.monthly_dates) - len(monthly))
    return replace(
        d,
        weekly_days=frozenset(Weekday.parse(w) for w in d.weekly_days),
        monthly_dates=monthly,
        reminder_offsets=tuple(sorted(set(d.reminder_offsets))),
    )


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time())


def _rule(definition: HabitDefinition) -> rrule:
    start = _midnight(definition.start_date)
    if definition.repeat_type == RepeatType.DAILY:
        return rrule(DAILY, dtstart=start, count=definition.repeat_count)
    return rrule(
        WEEKLY,
        dtstart=start,
        interval=definition.weekly_interval_weeks,
        byweekday=sorted(int(w) for w in definition.weekly_days),
        wkst=MO,
        count=definition.repeat_count,
    )


def expand(definition: HabitDefinition, range_start, range_end) -> List[date]:
    """Return the ascending due dates of ``definition`` inside ``[range_start, range_end]``.

    Exceptions (deleted occurrences) are not applied here.
    """
    start, end = to_day(range_start), to_day(range_end)
    d = definition
    if start > end or d.start_date > end:
        return []

    if d.repeat_type == RepeatType.NONE:
        last = d.end_date or d.start_date
        return list(iter_days(max(start, d.start_date), min(end, last)))

    if d.repeat_type == RepeatType.MONTHLY:
        dates = sorted({x for x in d.monthly_dates if x >= d.start_date})
        if d.repeat_count is not None:
            dates = dates[: d.repeat_count]
        return [x for x in dates if start <= x <= end]

    if d.repeat_type == RepeatType.WEEKLY and not d.weekly_days:
        return []
    hits = _rule(d).between(_midnight(start), _midnight(end), inc=True)
    return [h.date() for h in hits]


def occurrence_count(definition: HabitDefinition, range_start, range_end) -> int:
    return len(expand(definition, range_start, range_end))


def reminder_dates(definition: HabitDefinition, range_start, range_end) -> List[date]:
    """Days on which a reminder fires: each occurrence minus each reminder offset.

    Reminders never fall before the habit's start date.
    """
    start, end = to_day(range_start), to_day(range_end)
    if not definition.reminder_offsets or start > end:
        return []
    horizon = end + timedelta(days=max(definition.reminder_offsets))
    out = set()
    for occ in expand(definition, start, horizon):
        for offset in definition.reminder_offsets:
            r = occ - timedelta(days=offset)
            if r >= definition.start_date and start <= r <= end:
                out.add(r)
    return sorted(out)


def parse_weekdays(values: Iterable) -> frozenset:
    return frozenset(Weekday.parse(v) for v in values)
