from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Iterable, List

from .dates import to_day
from .recurrence import HabitDefinition, expand


@dataclass(frozen=True)
class OccurrenceState:
    completion_dates: frozenset = field(default_factory=frozenset)
    deleted_occurrences: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_days(cls, completions: Iterable = (), deleted: Iterable = ()) -> "OccurrenceState":
        return cls(
            completion_dates=frozenset(to_day(d) for d in completions),
            deleted_occurrences=frozenset(to_day(d) for d in deleted),
        )


def is_due(definition: HabitDefinition, state: OccurrenceState, day) -> bool:
    d = to_day(day)
    return d not in state.deleted_occurrences and bool(expand(definition, d, d))


def is_complete(state: OccurrenceState, day) -> bool:
    return to_day(day) in state.completion_dates


def toggle_completion(state: OccurrenceState, day, completed: bool) -> OccurrenceState:
    d = to_day(day)
    if completed == (d in state.completion_dates):
        return state
    if completed:
        return replace(state, completion_dates=state.completion_dates | {d})
    return replace(state, completion_dates=state.completion_dates - {d})


def delete_occurrence(definition: HabitDefinition, state: OccurrenceState, day) -> OccurrenceState:
    """Exclude one day from the series.

    The completion mark for that day, if any, is left in place; readers check
    ``deleted_occurrences`` first. Whether a start-date deletion should remove
    the whole series is decided by the caller before getting here.
    """
    d = to_day(day)
    if d in state.deleted_occurrences:
        return state
    return replace(state, deleted_occurrences=state.deleted_occurrences | {d})


def due_dates(definition: HabitDefinition, state: OccurrenceState, range_start, range_end) -> List[date]:
    return [d for d in expand(definition, range_start, range_end) if d not in state.deleted_occurrences]


def current_streak(state: OccurrenceState) -> int:
    # consecutive completed days ending at the latest completion
    if not state.completion_dates:
        return 0
    d = max(state.completion_dates)
    streak = 0
    while d in state.completion_dates:
        streak += 1
        d = d - timedelta(days=1)
    return streak
