"""
Occurrence expansion for recurrence descriptors.

Descriptors are a closed set of frozen dataclasses (daily, weekly, monthly).
`expand` turns one of them into the ordered list of dated occurrences inside a
window. Everything here is pure: no sessions, no clock, no logging.

Weekdays are Sunday-based: 0 = Sunday ... 6 = Saturday.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterator, List, Optional, Union

from ...config import MAX_DAILY_OCCURRENCES, MAX_MONTHLY_OCCURRENCES, MAX_WEEKLY_OCCURRENCES
from ...exceptions import RecurrenceValidationError

KIND_DAILY = "daily"
KIND_WEEKLY = "weekly"
KIND_MONTHLY = "monthly"


@dataclass(frozen=True)
class DailyRecurrence:
    start_date: date
    end_date: Optional[date] = None
    kind: str = field(default=KIND_DAILY, init=False)


@dataclass(frozen=True)
class WeeklyRecurrence:
    weekdays: frozenset
    start_date: date
    interval_weeks: int = 1
    end_date: Optional[date] = None
    kind: str = field(default=KIND_WEEKLY, init=False)


@dataclass(frozen=True)
class MonthlyRecurrence:
    day_of_month: int
    start_date: date
    interval_months: int = 1
    end_date: Optional[date] = None
    kind: str = field(default=KIND_MONTHLY, init=False)


RecurrenceDescriptor = Union[DailyRecurrence, WeeklyRecurrence, MonthlyRecurrence]


@dataclass(frozen=True)
class Occurrence:
    date: date
    amount: float


def sunday_weekday(day: date) -> int:
    """Weekday with Sunday as 0 (Python's date.weekday() has Monday as 0)"""
    return (day.weekday() + 1) % 7


def week_start(day: date) -> date:
    """Sunday that opens the calendar week containing `day`"""
    return day - timedelta(days=sunday_weekday(day))


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day_of_month: int) -> date:
    """Day `day_of_month` of the month, pulled back to the last day of short months"""
    return date(year, month, min(day_of_month, days_in_month(year, month)))


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    return day.replace(day=days_in_month(day.year, day.month))


def month_offset(start: date, day: date) -> int:
    return (day.year - start.year) * 12 + (day.month - start.month)


def iter_months(first: date, last: date) -> Iterator[date]:
    """First day of every calendar month from `first`'s month to `last`'s month"""
    current = month_start(first)
    while current <= last:
        yield current
        if current.month == 12:
            current = date(current.year + 1, 1, 1)
        else:
            current = date(current.year, current.month + 1, 1)


def effective_range(descriptor: RecurrenceDescriptor, window_start: date, window_end: date):
    """Intersection of the descriptor's active range with the window, or None"""
    start = max(descriptor.start_date, window_start)
    end = descriptor.end_date or window_end
    end = min(end, window_end)
    if start > end:
        return None
    return start, end


def default_max_occurrences(descriptor: RecurrenceDescriptor) -> int:
    if isinstance(descriptor, WeeklyRecurrence):
        return MAX_WEEKLY_OCCURRENCES
    if isinstance(descriptor, MonthlyRecurrence):
        return MAX_MONTHLY_OCCURRENCES
    if isinstance(descriptor, DailyRecurrence):
        return MAX_DAILY_OCCURRENCES
    raise TypeError(f"Unknown recurrence descriptor: {type(descriptor).__name__}")


def validate_descriptor(descriptor: RecurrenceDescriptor, active: bool = True) -> None:
    """Raise RecurrenceValidationError for descriptors that cannot be expanded"""
    if descriptor.end_date and descriptor.end_date < descriptor.start_date:
        raise RecurrenceValidationError("end_date must be on or after start_date", field="end_date")

    if isinstance(descriptor, WeeklyRecurrence):
        if descriptor.interval_weeks < 1:
            raise RecurrenceValidationError("interval_weeks must be at least 1", field="interval_weeks")
        if active and not descriptor.weekdays:
            raise RecurrenceValidationError("weekdays cannot be empty for an active rule", field="weekdays")
        if any(d < 0 or d > 6 for d in descriptor.weekdays):
            raise RecurrenceValidationError("weekdays must be between 0 and 6", field="weekdays")
    elif isinstance(descriptor, MonthlyRecurrence):
        if descriptor.interval_months < 1:
            raise RecurrenceValidationError("interval_months must be at least 1", field="interval_months")
        if not 1 <= descriptor.day_of_month <= 31:
            raise RecurrenceValidationError("day_of_month must be between 1 and 31", field="day_of_month")
    elif not isinstance(descriptor, DailyRecurrence):
        raise TypeError(f"Unknown recurrence descriptor: {type(descriptor).__name__}")


def expand(
    descriptor: RecurrenceDescriptor,
    amount: float,
    window_start: date,
    window_end: date,
    max_occurrences: Optional[int] = None,
) -> List[Occurrence]:
    """
    Ordered occurrences of `descriptor` inside [window_start, window_end].

    An absent end_date means "until the window ends". A descriptor starting
    after the window yields an empty list. At most `max_occurrences` items are
    produced (type-specific default) so malformed data cannot loop forever.
    """
    if max_occurrences is None:
        max_occurrences = default_max_occurrences(descriptor)

    bounds = effective_range(descriptor, window_start, window_end)
    if bounds is None or max_occurrences <= 0:
        return []
    start, end = bounds

    if isinstance(descriptor, WeeklyRecurrence):
        dates = _weekly_dates(descriptor, start, end)
    elif isinstance(descriptor, MonthlyRecurrence):
        dates = _monthly_dates(descriptor, start, end)
    elif isinstance(descriptor, DailyRecurrence):
        dates = _daily_dates(start, end)
    else:
        raise TypeError(f"Unknown recurrence descriptor: {type(descriptor).__name__}")

    occurrences = []
    for day in dates:
        occurrences.append(Occurrence(date=day, amount=amount))
        if len(occurrences) >= max_occurrences:
            break
    return occurrences


def _weekly_dates(descriptor: WeeklyRecurrence, start: date, end: date) -> Iterator[date]:
    anchor = week_start(descriptor.start_date)
    day = start
    while day <= end:
        if sunday_weekday(day) in descriptor.weekdays:
            week_index = (week_start(day) - anchor).days // 7
            if week_index % descriptor.interval_weeks == 0:
                yield day
        day += timedelta(days=1)


def _monthly_dates(descriptor: MonthlyRecurrence, start: date, end: date) -> Iterator[date]:
    for first in iter_months(start, end):
        if month_offset(descriptor.start_date, first) % descriptor.interval_months != 0:
            continue
        target = clamp_day(first.year, first.month, descriptor.day_of_month)
        if start <= target <= end:
            yield target


def _daily_dates(start: date, end: date) -> Iterator[date]:
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def active_days_in_month(descriptor: RecurrenceDescriptor, first_of_month: date) -> int:
    """Days of the month that fall inside the descriptor's [start_date, end_date]"""
    bounds = effective_range(descriptor, first_of_month, month_end(first_of_month))
    if bounds is None:
        return 0
    start, end = bounds
    return (end - start).days + 1


def rule_descriptor(rule) -> WeeklyRecurrence:
    """Weekly descriptor for an appointment RecurringRule row"""
    return WeeklyRecurrence(
        weekdays=frozenset(rule.weekdays or []),
        start_date=rule.start_date,
        interval_weeks=rule.interval_weeks or 1,
        end_date=rule.end_date,
    )


def validate_rule(rule) -> None:
    """Validate an appointment rule's schedule before any write"""
    if rule.interval_weeks is not None and rule.interval_weeks < 1:
        raise RecurrenceValidationError("interval_weeks must be at least 1", field="interval_weeks")
    validate_descriptor(rule_descriptor(rule), active=bool(rule.active))


def occurs_on(descriptor: RecurrenceDescriptor, day: date) -> bool:
    """Whether `descriptor` produces an occurrence on `day`"""
    return bool(expand(descriptor, 0, day, day, max_occurrences=1))
