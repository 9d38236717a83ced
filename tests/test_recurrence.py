"""Tests for recurrence expansion and definition validation."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from habitsync.dates import weeks_between
from habitsync.errors import InvalidDefinition, OutOfRange
from habitsync.recurrence import (
    HabitDefinition,
    RepeatType,
    Weekday,
    expand,
    occurrence_count,
    reminder_dates,
    validate,
)

MON, WED = Weekday.MONDAY, Weekday.WEDNESDAY
FAR_START = date(2000, 1, 1)
FAR_END = date(2100, 12, 31)


def make(**kw) -> HabitDefinition:
    kw.setdefault("start_date", date(2024, 1, 1))
    return HabitDefinition(habit_id=1, owner_id=1, name=kw.pop("name", "Read"), **kw)


SAMPLES = [
    make(),
    make(end_date=date(2024, 1, 9)),
    make(repeat_type=RepeatType.DAILY, repeat_count=30),
    make(repeat_type=RepeatType.DAILY),
    make(repeat_type=RepeatType.WEEKLY, weekly_days=frozenset({MON, WED}), repeat_count=20),
    make(start_date=date(2024, 1, 4), repeat_type=RepeatType.WEEKLY,
         weekly_days=frozenset({Weekday.TUESDAY, Weekday.SUNDAY}), weekly_interval_weeks=3),
    make(repeat_type=RepeatType.MONTHLY,
         monthly_dates=(date(2024, 3, 5), date(2024, 1, 15), date(2024, 2, 1))),
]


class TestNonRepeating:
    def test_only_start_date_is_due(self):
        d = make(start_date=date(2024, 1, 5))
        assert expand(d, date(2024, 1, 1), date(2024, 1, 31)) == [date(2024, 1, 5)]

    def test_start_date_outside_range(self):
        d = make(start_date=date(2024, 1, 5))
        assert expand(d, date(2024, 1, 6), date(2024, 1, 31)) == []

    def test_end_date_makes_a_continuous_window(self):
        d = make(start_date=date(2024, 1, 5), end_date=date(2024, 1, 8))
        assert expand(d, date(2024, 1, 1), date(2024, 1, 31)) == [
            date(2024, 1, 5), date(2024, 1, 6), date(2024, 1, 7), date(2024, 1, 8),
        ]

    def test_window_is_clipped_to_query(self):
        d = make(start_date=date(2024, 1, 5), end_date=date(2024, 1, 8))
        assert expand(d, date(2024, 1, 7), date(2024, 1, 20)) == [date(2024, 1, 7), date(2024, 1, 8)]


class TestDaily:
    def test_every_day_from_start(self):
        d = make(start_date=date(2024, 1, 30), repeat_type=RepeatType.DAILY)
        assert expand(d, date(2024, 1, 1), date(2024, 2, 2)) == [
            date(2024, 1, 30), date(2024, 1, 31), date(2024, 2, 1), date(2024, 2, 2),
        ]

    def test_repeat_count_caps_lifetime_series(self):
        d = make(start_date=date(2024, 3, 1), repeat_type=RepeatType.DAILY, repeat_count=3)
        assert expand(d, date(2024, 1, 1), date(2024, 12, 31)) == [
            date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3),
        ]

    def test_repeat_count_is_not_per_query(self):
        d = make(start_date=date(2024, 3, 1), repeat_type=RepeatType.DAILY, repeat_count=3)
        assert expand(d, date(2024, 3, 2), date(2024, 3, 10)) == [date(2024, 3, 2), date(2024, 3, 3)]
        assert expand(d, date(2024, 3, 4), date(2024, 3, 10)) == []


class TestWeekly:
    def test_mon_wed_four_occurrences(self):
        d = make(start_date=date(2024, 1, 1), repeat_type=RepeatType.WEEKLY,
                 weekly_days=frozenset({MON, WED}), weekly_interval_weeks=1, repeat_count=4)
        assert expand(d, date(2024, 1, 1), date(2024, 1, 31)) == [
            date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 8), date(2024, 1, 10),
        ]

    def test_every_other_week_counts_from_week_of_start(self):
        # start on a Wednesday: the Monday of that week is before start and never due
        d = make(start_date=date(2024, 1, 3), repeat_type=RepeatType.WEEKLY,
                 weekly_days=frozenset({MON, WED}), weekly_interval_weeks=2)
        assert expand(d, date(2024, 1, 1), date(2024, 1, 31)) == [
            date(2024, 1, 3), date(2024, 1, 15), date(2024, 1, 17), date(2024, 1, 29), date(2024, 1, 31),
        ]

    def test_weekdays_and_interval_hold_for_every_date(self):
        for sample in SAMPLES:
            if sample.repeat_type != RepeatType.WEEKLY:
                continue
            for d in expand(sample, FAR_START, date(2026, 12, 31)):
                assert Weekday(d.weekday()) in sample.weekly_days
                assert weeks_between(sample.start_date, d) % sample.weekly_interval_weeks == 0
                assert d >= sample.start_date


class TestMonthly:
    def test_sorted_and_bounded_by_repeat_count(self):
        d = make(start_date=date(2024, 1, 10), repeat_type=RepeatType.MONTHLY,
                 monthly_dates=(date(2024, 2, 1), date(2024, 1, 15)), repeat_count=1)
        assert expand(d, FAR_START, FAR_END) == [date(2024, 1, 15)]

    def test_dates_before_start_are_ignored(self):
        d = make(start_date=date(2024, 1, 10), repeat_type=RepeatType.MONTHLY,
                 monthly_dates=(date(2024, 1, 5), date(2024, 1, 20)))
        assert expand(d, FAR_START, FAR_END) == [date(2024, 1, 20)]

    def test_interval_has_no_generative_effect(self):
        d = make(repeat_type=RepeatType.MONTHLY, monthly_dates=(date(2024, 1, 15),), monthly_interval_months=3)
        assert expand(d, FAR_START, FAR_END) == [date(2024, 1, 15)]


class TestProperties:
    @pytest.mark.parametrize("definition", SAMPLES)
    def test_strictly_ascending_without_duplicates(self, definition):
        out = expand(definition, FAR_START, date(2026, 12, 31))
        assert all(a < b for a, b in zip(out, out[1:]))

    @pytest.mark.parametrize("definition", [s for s in SAMPLES if s.repeat_count])
    def test_never_more_than_repeat_count(self, definition):
        assert occurrence_count(definition, FAR_START, FAR_END) <= definition.repeat_count

    @pytest.mark.parametrize("definition", SAMPLES)
    def test_inverted_range_is_empty(self, definition):
        assert expand(definition, date(2024, 2, 1), date(2024, 1, 1)) == []

    @pytest.mark.parametrize("definition", SAMPLES)
    def test_start_after_range_is_empty(self, definition):
        assert expand(definition, date(2023, 1, 1), date(2023, 12, 31)) == []

    def test_single_day_query_matches_full_expansion(self):
        d = SAMPLES[4]
        full = expand(d, date(2024, 1, 1), date(2024, 3, 31))
        for offset in range(90):
            day = date(2024, 1, 1) + timedelta(days=offset)
            assert (expand(d, day, day) == [day]) == (day in full)


class TestValidation:
    def test_weekly_requires_days(self):
        with pytest.raises(InvalidDefinition) as exc:
            validate(make(repeat_type=RepeatType.WEEKLY))
        assert exc.value.field == "weekly_days"

    def test_monthly_requires_dates(self):
        with pytest.raises(InvalidDefinition) as exc:
            validate(make(repeat_type=RepeatType.MONTHLY))
        assert exc.value.field == "monthly_dates"

    @pytest.mark.parametrize("count", [0, 366, -1])
    def test_repeat_count_bounds(self, count):
        with pytest.raises(OutOfRange) as exc:
            validate(make(repeat_type=RepeatType.DAILY, repeat_count=count))
        assert exc.value.field == "repeat_count"
        assert isinstance(exc.value, InvalidDefinition)

    def test_repeat_count_limits_are_inclusive(self):
        validate(make(repeat_type=RepeatType.DAILY, repeat_count=1))
        validate(make(repeat_type=RepeatType.DAILY, repeat_count=365))

    def test_end_date_before_start(self):
        with pytest.raises(InvalidDefinition) as exc:
            validate(make(start_date=date(2024, 1, 10), end_date=date(2024, 1, 9)))
        assert exc.value.field == "end_date"

    def test_end_date_only_without_repeat(self):
        with pytest.raises(InvalidDefinition) as exc:
            validate(make(repeat_type=RepeatType.DAILY, end_date=date(2024, 2, 1)))
        assert exc.value.field == "end_date"

    def test_repeat_count_only_when_repeating(self):
        with pytest.raises(InvalidDefinition) as exc:
            validate(make(repeat_count=5))
        assert exc.value.field == "repeat_count"

    def test_reminders_only_when_repeating(self):
        with pytest.raises(InvalidDefinition) as exc:
            validate(make(reminder_offsets=(1,)))
        assert exc.value.field == "reminder_offsets"

    def test_intervals_must_be_positive(self):
        with pytest.raises(InvalidDefinition) as exc:
            validate(make(repeat_type=RepeatType.WEEKLY, weekly_days=frozenset({MON}), weekly_interval_weeks=0))
        assert exc.value.field == "weekly_interval_weeks"

    def test_past_start_rejected_only_at_creation(self):
        d = make(start_date=date(2024, 1, 1), repeat_type=RepeatType.DAILY)
        with pytest.raises(InvalidDefinition) as exc:
            validate(d, today=date(2024, 1, 2))
        assert exc.value.field == "start_date"
        assert validate(d) == d
        assert validate(d, today=date(2024, 1, 1)) == d

    def test_monthly_dates_before_start_are_dropped(self):
        d = make(start_date=date(2024, 1, 10), repeat_type=RepeatType.MONTHLY,
                 monthly_dates=(date(2024, 2, 1), date(2024, 1, 5), date(2024, 1, 20)))
        assert validate(d).monthly_dates == (date(2024, 1, 20), date(2024, 2, 1))

    def test_weekday_names_are_normalized(self):
        d = make(repeat_type=RepeatType.WEEKLY, weekly_days=frozenset({"Monday", "wed", 4}))
        assert validate(d).weekly_days == frozenset({MON, WED, Weekday.FRIDAY})

    def test_unknown_weekday(self):
        with pytest.raises(InvalidDefinition):
            Weekday.parse("Funday")

    def test_weekday_index_outside_week(self):
        for bad in (7, -1, True):
            with pytest.raises(InvalidDefinition) as exc:
                Weekday.parse(bad)
            assert exc.value.field == "weekly_days"


class TestReminders:
    def test_reminders_precede_occurrences_and_respect_start(self):
        d = make(start_date=date(2024, 1, 1), repeat_type=RepeatType.DAILY, repeat_count=5, reminder_offsets=(1,))
        assert reminder_dates(d, date(2024, 1, 1), date(2024, 1, 31)) == [
            date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4),
        ]

    def test_reminder_for_occurrence_after_range(self):
        d = make(start_date=date(2024, 1, 1), repeat_type=RepeatType.WEEKLY,
                 weekly_days=frozenset({MON}), reminder_offsets=(2,))
        assert reminder_dates(d, date(2024, 1, 13), date(2024, 1, 13)) == [date(2024, 1, 13)]

    def test_no_offsets_no_reminders(self):
        assert reminder_dates(make(repeat_type=RepeatType.DAILY), date(2024, 1, 1), date(2024, 1, 31)) == []
