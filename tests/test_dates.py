from datetime import date, datetime

import pytest

from habitsync.dates import in_range, is_same_or_before, iter_days, month_start, to_day, week_start, weeks_between, year_start


def test_to_day_truncates_time_of_day():
    assert to_day(datetime(2024, 1, 3, 23, 59)) == date(2024, 1, 3)
    assert to_day("2024-01-03") == date(2024, 1, 3)
    assert to_day("2024-01-03T08:15:00Z") == date(2024, 1, 3)
    assert to_day(date(2024, 1, 3)) == date(2024, 1, 3)


def test_to_day_rejects_other_types():
    with pytest.raises(TypeError):
        to_day(20240103)


def test_same_day_timestamps_compare_equal():
    assert is_same_or_before(datetime(2024, 1, 3, 22), datetime(2024, 1, 3, 1))
    assert not is_same_or_before(date(2024, 1, 4), date(2024, 1, 3))


def test_in_range_is_inclusive():
    assert in_range(date(2024, 1, 1), date(2024, 1, 1), date(2024, 1, 31))
    assert in_range(date(2024, 1, 31), date(2024, 1, 1), date(2024, 1, 31))
    assert not in_range(date(2024, 2, 1), date(2024, 1, 1), date(2024, 1, 31))


def test_iter_days():
    assert list(iter_days(date(2024, 2, 28), date(2024, 3, 1))) == [
        date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1),
    ]
    assert list(iter_days(date(2024, 3, 2), date(2024, 3, 1))) == []


def test_period_starts():
    assert week_start(date(2024, 1, 7)) == date(2024, 1, 1)     # Sunday -> Monday
    assert month_start(date(2024, 2, 29)) == date(2024, 2, 1)
    assert year_start(date(2024, 7, 4)) == date(2024, 1, 1)


def test_weeks_between_counts_calendar_weeks():
    assert weeks_between(date(2024, 1, 7), date(2024, 1, 8)) == 1
    assert weeks_between(date(2024, 1, 1), date(2024, 1, 7)) == 0
    assert weeks_between(date(2024, 1, 3), date(2024, 1, 29)) == 4
