from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Dict, Iterable, List

from .dates import month_start, to_day, week_start, year_start
from .occurrences import OccurrenceState, due_dates
from .recurrence import HabitDefinition


class BucketUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


_BUCKET_KEY: Dict[BucketUnit, Callable[[date], date]] = {
    BucketUnit.DAY: lambda d: d,
    BucketUnit.WEEK: week_start,
    BucketUnit.MONTH: month_start,
    BucketUnit.YEAR: year_start,
}


@dataclass(frozen=True)
class Summary:
    total_due: int
    total_complete: int

    @property
    def rate(self) -> float:
        if self.total_due == 0:
            return 0.0
        return self.total_complete / self.total_due

    @property
    def percent(self) -> float:
        return round(self.rate * 100.0, 2)


@dataclass(frozen=True)
class Bucket:
    period_start: date
    due: int
    complete: int

    @property
    def rate(self) -> float:
        return self.complete / self.due if self.due else 0.0


def classify(definition: HabitDefinition, state: OccurrenceState, range_start, range_end) -> List[tuple]:
    """(day, completed) for every non-deleted due day in the range."""
    return [(d, d in state.completion_dates) for d in due_dates(definition, state, range_start, range_end)]


def summarize(definition: HabitDefinition, state: OccurrenceState, range_start, range_end) -> Summary:
    days = classify(definition, state, range_start, range_end)
    return Summary(total_due=len(days), total_complete=sum(1 for _, done in days if done))


def bucketize(definition: HabitDefinition, state: OccurrenceState, range_start, range_end,
              unit: BucketUnit = BucketUnit.DAY) -> List[Bucket]:
    return _fold(classify(definition, state, range_start, range_end), unit)


def combine(per_habit: Iterable[List[tuple]], unit: BucketUnit = BucketUnit.DAY) -> List[Bucket]:
    """Sum classified days of several habits into shared calendar buckets."""
    merged: List[tuple] = []
    for days in per_habit:
        merged.extend(days)
    merged.sort(key=lambda x: x[0])
    return _fold(merged, unit)


def _fold(days: List[tuple], unit: BucketUnit) -> List[Bucket]:
    key = _BUCKET_KEY[BucketUnit(unit)]
    acc: "OrderedDict[date, List[int]]" = OrderedDict()
    for d, done in days:
        slot = acc.setdefault(key(to_day(d)), [0, 0])
        slot[0] += 1
        if done:
            slot[1] += 1
    return [Bucket(period_start=k, due=v[0], complete=v[1]) for k, v in acc.items()]
