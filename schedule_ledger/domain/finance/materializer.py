"""
Financial entry materialization

Every recurring (or legacy fixed) expense/revenue produces one derived entry
per calendar month. The note is the only link between an entry and the record
that produced it, so the same note must be generated on every run:

    "Recurring: <description>"  descriptor-based records
    "Fixed: <description>"      legacy monthly-on-competence-day records
"""

import logging
from datetime import date, timedelta
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import MATERIALIZE_WINDOW_DAYS
from ...database import acquire_owner_lock, translate_datastore_errors
from ...exceptions import DatastoreUnavailable, RecurrenceValidationError
from ...models import ENTRY_EXPECTED, FinancialEntry, User
from ...shared.clock import owner_today
from ...shared.money import amounts_differ, round_money
from ..recurrence.expander import (
    DailyRecurrence,
    MonthlyRecurrence,
    RecurrenceDescriptor,
    WeeklyRecurrence,
    active_days_in_month,
    clamp_day,
    effective_range,
    expand,
    iter_months,
    month_end,
    month_start,
    validate_descriptor,
)
from ..recurrence.schemas import descriptor_from_json
from .repository import FinanceRepository

logger = logging.getLogger(__name__)

RECURRING_NOTE_PREFIX = "Recurring: "
FIXED_NOTE_PREFIX = "Fixed: "
DERIVED_NOTE_PREFIXES = (RECURRING_NOTE_PREFIX, FIXED_NOTE_PREFIX)

LOCK_SCOPE = "finance"


def uses_descriptor(record) -> bool:
    return bool(record.is_recurring and record.recurrence)


def is_derived_source(record) -> bool:
    """Records that generate monthly entries"""
    return bool(record.is_recurring or record.is_fixed_type)


def is_legacy_fixed(record) -> bool:
    return bool(record.is_fixed_type and not record.is_recurring)


def derived_note(record) -> Optional[str]:
    """The note every entry derived from `record` carries, or None"""
    if uses_descriptor(record):
        return f"{RECURRING_NOTE_PREFIX}{record.description}"
    if is_legacy_fixed(record):
        return f"{FIXED_NOTE_PREFIX}{record.description}"
    return None


def require_descriptor(record) -> None:
    """A recurring record must carry its recurrence descriptor"""
    if record.is_recurring and not record.recurrence:
        raise RecurrenceValidationError("Recurring records need a recurrence descriptor", field="recurrence")


def record_descriptor(record) -> RecurrenceDescriptor:
    """
    Descriptor stored on a record; competence_date is the default start.

    Raises:
        RecurrenceValidationError: payload missing or malformed
    """
    try:
        descriptor = descriptor_from_json(record.recurrence, record.competence_date)
    except ValidationError as e:
        raise RecurrenceValidationError(f"Invalid recurrence payload: {e.errors()[0]['msg']}") from e
    validate_descriptor(descriptor)
    return descriptor


def monthly_aggregate_amount(
    descriptor: RecurrenceDescriptor, amount: float, first_of_month: date
) -> Optional[tuple[date, float]]:
    """
    (due_date, amount) of the single entry a descriptor contributes to a month,
    or None when the descriptor is not active that month.

    monthly: full amount on the clamped target day, interval-filtered
    weekly:  amount * weekdays * (4 / interval_weeks), due on the 1st
    daily:   amount * active days in the month, due on the 1st
    """
    last = month_end(first_of_month)

    if isinstance(descriptor, MonthlyRecurrence):
        occurrences = expand(descriptor, amount, first_of_month, last)
        if not occurrences:
            return None
        return occurrences[0].date, round_money(amount)

    if isinstance(descriptor, WeeklyRecurrence):
        if effective_range(descriptor, first_of_month, last) is None or not descriptor.weekdays:
            return None
        total = amount * len(descriptor.weekdays) * (4 / descriptor.interval_weeks)
        return first_of_month, round_money(total)

    if isinstance(descriptor, DailyRecurrence):
        days = active_days_in_month(descriptor, first_of_month)
        if days <= 0:
            return None
        return first_of_month, round_money(amount * days)

    raise TypeError(f"Unknown recurrence descriptor: {type(descriptor).__name__}")


def planned_entries(record, months: list[date]) -> list[tuple[date, float, str]]:
    """(due_date, amount, note) for each month the record contributes to"""
    require_descriptor(record)
    note = derived_note(record)
    if note is None:
        return []

    planned = []
    if uses_descriptor(record):
        descriptor = record_descriptor(record)
        for first in months:
            entry = monthly_aggregate_amount(descriptor, record.amount, first)
            if entry is not None:
                planned.append((entry[0], entry[1], note))
        return planned

    # Legacy fixed: monthly on the competence day from the competence month on
    competence = record.competence_date
    for first in months:
        if first < month_start(competence):
            continue
        due = clamp_day(first.year, first.month, competence.day)
        planned.append((due, round_money(record.amount), note))
    return planned


def window_months(today: date, window_days: int) -> list[date]:
    """First day of every month intersecting [today, today + window_days]"""
    return list(iter_months(today, today + timedelta(days=window_days)))


def _upsert_entry(db: Session, user_id: int, kind: str, due: date, amount: float, note: str) -> str:
    existing = FinanceRepository.find_entry(db, user_id, kind, due, note)
    if existing is None:
        db.add(
            FinancialEntry(
                user_id=user_id,
                kind=kind,
                status=ENTRY_EXPECTED,
                amount=amount,
                due_date=due,
                note=note,
            )
        )
        db.flush()
        return "created"
    if amounts_differ(existing.amount, amount):
        existing.amount = amount
        db.flush()
        return "updated"
    return "skipped"


def _remove_unplanned_entries(
    db: Session, user_id: int, months: list[date], planned_dates: dict, failed_notes: set
) -> int:
    """Delete window entries of a live note on dates its records no longer plan"""
    removed = 0
    entries = FinanceRepository.get_entries(
        db, user_id, start=months[0], end=month_end(months[-1]), status=ENTRY_EXPECTED
    )
    for entry in entries:
        key = (entry.kind, entry.note)
        # Unknown notes are orphans and belong to the reconciler
        if key not in planned_dates or key in failed_notes:
            continue
        if entry.due_date not in planned_dates[key]:
            db.delete(entry)
            removed += 1
    if removed:
        db.flush()
    return removed


def materialize_financial_recurring(
    db: Session,
    user: User,
    window_days: Optional[int] = None,
    today: Optional[date] = None,
) -> dict:
    """
    Upsert expected entries for every recurring/fixed expense and revenue of
    an owner over the month-aligned window.

    A record that fails is rolled back to its savepoint and reported in
    `warnings`; the remaining records are still processed. Expected entries in
    the window that a record no longer produces (an edited day, interval, range
    or kind) are removed once every record has run.

    Returns:
        dict: {created, updated, skipped, removed, windowDays, warnings}
    """
    if window_days is None:
        window_days = MATERIALIZE_WINDOW_DAYS
    if today is None:
        today = owner_today(user)

    months = window_months(today, window_days)
    result = {"created": 0, "updated": 0, "skipped": 0, "removed": 0, "windowDays": window_days, "warnings": []}
    # (kind, note) -> due dates the records plan inside the window
    planned_dates = {}
    failed_notes = set()

    try:
        with translate_datastore_errors():
            acquire_owner_lock(db, user.id, LOCK_SCOPE)

            for record in FinanceRepository.get_derived_sources(db, user.id):
                kind = record.ENTRY_KIND
                outcomes = []
                planned = []
                try:
                    with db.begin_nested():
                        planned = planned_entries(record, months)
                        for due, amount, note in planned:
                            outcomes.append(_upsert_entry(db, user.id, kind, due, amount, note))
                except OperationalError:
                    raise
                except (RecurrenceValidationError, SQLAlchemyError) as e:
                    logger.error(f"❌ Failed to materialize {kind} {record.id} for user {user.id}: {e}")
                    result["warnings"].append(f"{kind} {record.id}: {e}")
                    note = derived_note(record)
                    if note:
                        failed_notes.add((kind, note))
                    continue

                note = derived_note(record)
                planned_dates.setdefault((kind, note), set()).update(due for due, _amount, _note in planned)
                for outcome in outcomes:
                    result[outcome] += 1

            result["removed"] = _remove_unplanned_entries(db, user.id, months, planned_dates, failed_notes)

            db.commit()
    except (SQLAlchemyError, DatastoreUnavailable):
        db.rollback()
        raise

    logger.info(
        f"💰 Financial entries materialized for user {user.id}: "
        f"created={result['created']} updated={result['updated']} skipped={result['skipped']} "
        f"removed={result['removed']}"
        + (f" warnings={len(result['warnings'])}" if result["warnings"] else "")
    )
    return result
