from datetime import date

import pytest

from schedule_ledger.domain.recurrence.expander import (
    DailyRecurrence,
    MonthlyRecurrence,
    WeeklyRecurrence,
    active_days_in_month,
    expand,
    sunday_weekday,
    validate_descriptor,
)
from schedule_ledger.exceptions import RecurrenceValidationError
from schedule_ledger.shared.validators import normalize_weekdays


def dates(occurrences):
    return [o.date for o in occurrences]


def test_sunday_is_weekday_zero():
    assert sunday_weekday(date(2025, 3, 9)) == 0
    assert sunday_weekday(date(2025, 3, 10)) == 1
    assert sunday_weekday(date(2025, 3, 15)) == 6


def test_weekly_expansion_emits_selected_weekdays_in_order():
    descriptor = WeeklyRecurrence(weekdays=frozenset({1, 3}), start_date=date(2025, 3, 1))

    result = expand(descriptor, 100.0, date(2025, 3, 1), date(2025, 3, 31))

    assert dates(result) == [
        date(2025, 3, 3),
        date(2025, 3, 5),
        date(2025, 3, 10),
        date(2025, 3, 12),
        date(2025, 3, 17),
        date(2025, 3, 19),
        date(2025, 3, 24),
        date(2025, 3, 26),
        date(2025, 3, 31),
    ]
    assert all(o.amount == 100.0 for o in result)


def test_weekly_interval_counts_calendar_weeks_from_start_week():
    # Starts on a Wednesday; the week of Sunday 2 March is week 0
    descriptor = WeeklyRecurrence(
        weekdays=frozenset({1, 3}), start_date=date(2025, 3, 5), interval_weeks=2
    )

    result = expand(descriptor, 50.0, date(2025, 3, 1), date(2025, 3, 31))

    assert dates(result) == [date(2025, 3, 5), date(2025, 3, 17), date(2025, 3, 19), date(2025, 3, 31)]


def test_weekly_respects_end_date():
    descriptor = WeeklyRecurrence(
        weekdays=frozenset({1}), start_date=date(2025, 3, 1), end_date=date(2025, 3, 17)
    )

    result = expand(descriptor, 10.0, date(2025, 3, 1), date(2025, 6, 30))

    assert dates(result) == [date(2025, 3, 3), date(2025, 3, 10), date(2025, 3, 17)]


def test_descriptor_starting_after_window_yields_nothing():
    descriptor = WeeklyRecurrence(weekdays=frozenset({1}), start_date=date(2025, 7, 1))

    assert expand(descriptor, 10.0, date(2025, 3, 1), date(2025, 3, 31)) == []


def test_monthly_interval_two_skips_alternate_months():
    descriptor = MonthlyRecurrence(day_of_month=15, start_date=date(2025, 1, 1), interval_months=2)

    result = expand(descriptor, 300.0, date(2025, 1, 1), date(2025, 6, 30))

    assert dates(result) == [date(2025, 1, 15), date(2025, 3, 15), date(2025, 5, 15)]


@pytest.mark.parametrize("year,last_day", [(2025, 28), (2024, 29)])
def test_monthly_day_31_clamps_to_end_of_february(year, last_day):
    descriptor = MonthlyRecurrence(day_of_month=31, start_date=date(year, 1, 1))

    result = expand(descriptor, 10.0, date(year, 2, 1), date(year, 2, 28 if last_day == 28 else 29))

    assert dates(result) == [date(year, 2, last_day)]


def test_daily_expansion_is_capped_by_default_limit():
    descriptor = DailyRecurrence(start_date=date(2025, 1, 1))

    result = expand(descriptor, 1.0, date(2025, 1, 1), date(2027, 12, 31))

    assert len(result) == 366


def test_explicit_cap_bounds_weekly_expansion():
    descriptor = WeeklyRecurrence(weekdays=frozenset(range(7)), start_date=date(2025, 1, 1))

    assert len(expand(descriptor, 1.0, date(2025, 1, 1), date(2026, 12, 31))) == 100
    assert len(expand(descriptor, 1.0, date(2025, 1, 1), date(2026, 12, 31), max_occurrences=5)) == 5


def test_active_days_in_month_is_bounded_by_range():
    descriptor = DailyRecurrence(start_date=date(2025, 3, 20), end_date=date(2025, 4, 5))

    assert active_days_in_month(descriptor, date(2025, 3, 1)) == 12
    assert active_days_in_month(descriptor, date(2025, 4, 1)) == 5
    assert active_days_in_month(descriptor, date(2025, 5, 1)) == 0


def test_validation_rejects_empty_weekdays_for_active_rule():
    descriptor = WeeklyRecurrence(weekdays=frozenset(), start_date=date(2025, 3, 1))

    with pytest.raises(RecurrenceValidationError) as exc:
        validate_descriptor(descriptor)
    assert exc.value.field == "weekdays"

    # An inactive rule may keep an empty set
    validate_descriptor(descriptor, active=False)


def test_validation_rejects_bad_intervals_and_ranges():
    with pytest.raises(RecurrenceValidationError):
        validate_descriptor(
            WeeklyRecurrence(weekdays=frozenset({1}), start_date=date(2025, 3, 1), interval_weeks=0)
        )
    with pytest.raises(RecurrenceValidationError):
        validate_descriptor(MonthlyRecurrence(day_of_month=10, start_date=date(2025, 3, 1), interval_months=0))
    with pytest.raises(RecurrenceValidationError):
        validate_descriptor(DailyRecurrence(start_date=date(2025, 3, 10), end_date=date(2025, 3, 1)))


def test_weekday_normalization_maps_seven_to_sunday():
    assert normalize_weekdays([7, 1, 1, 3, 9, -1]) == [0, 1, 3]
