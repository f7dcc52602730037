"""
Monthly realized vs. projected series

`compute_monthly_series` fetches an owner's rows once and hands them to the
pure `build_monthly_series`, which folds them into per-month summaries.

Scheduled totals come from two overlapping sources: materialized appointments
and a live re-expansion of active rules. Each occurrence is identified by an
OccurrenceKey ("<ruleId>#<isoDate>" or "appointment#<id>") and counted once.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ...database import translate_datastore_errors
from ...models import (
    APPOINTMENT_COMPLETED,
    APPOINTMENT_SCHEDULED,
    ENTRY_CONFIRMED,
    ENTRY_EXPECTED,
    ENTRY_EXPENSE,
    ENTRY_REVENUE,
    User,
)
from ...shared.clock import owner_today
from ...shared.money import round_money
from ..appointments.repository import AppointmentRepository
from ..finance.reconciler import is_orphan, valid_derived_notes
from ..finance.repository import FinanceRepository
from ..recurrence.expander import expand, month_end, month_start, rule_descriptor

logger = logging.getLogger(__name__)

COUNTED_ENTRY_STATUSES = (ENTRY_EXPECTED, ENTRY_CONFIRMED)


def month_label(first_of_month: date) -> str:
    return first_of_month.strftime("%Y-%m")


def rule_occurrence_key(rule_id: int, day: date) -> str:
    return f"{rule_id}#{day.isoformat()}"


def appointment_occurrence_key(appointment, rule_keys_by_slot: dict) -> str:
    """
    Key an appointment claims. Rule-generated rows use their rule's key; a
    rule-less row for a (client, date) some rule generates claims that key.
    """
    if appointment.recurring_rule_id is not None:
        return rule_occurrence_key(appointment.recurring_rule_id, appointment.date)
    slot_key = rule_keys_by_slot.get((appointment.client_id, appointment.date))
    if slot_key is not None:
        return slot_key
    return f"appointment#{appointment.id}"


def _rule_occurrences(rules: Iterable, first: date) -> list[tuple]:
    """(key, client_id, date, amount) for every active rule occurrence in the month"""
    occurrences = []
    for rule in rules:
        if not rule.active:
            continue
        for occurrence in expand(rule_descriptor(rule), round_money(rule.amount), first, month_end(first)):
            key = rule_occurrence_key(rule.id, occurrence.date)
            occurrences.append((key, rule.client_id, occurrence.date, occurrence.amount))
    return occurrences


def scheduled_total(appointments: list, rules: Iterable, first: date, expand_rules: bool) -> float:
    """
    Scheduled amount of one month with every occurrence counted once.
    Rule occurrences always resolve which key a manual row claims; they only
    add to the total when `expand_rules` is set.
    """
    rule_occurrences = _rule_occurrences(rules, first)

    rule_keys_by_slot = {}
    for key, client_id, day, _amount in rule_occurrences:
        rule_keys_by_slot.setdefault((client_id, day), key)

    claimed = set()
    total = 0.0
    for appointment in sorted(appointments, key=lambda a: (a.recurring_rule_id is None, a.id)):
        key = appointment_occurrence_key(appointment, rule_keys_by_slot)
        if key in claimed:
            continue
        claimed.add(key)
        # Completed/cancelled rows still claim their key
        if appointment.status == APPOINTMENT_SCHEDULED:
            total += appointment.amount or 0

    if not expand_rules:
        return round_money(total)

    for key, _client_id, _day, amount in rule_occurrences:
        if key not in claimed:
            claimed.add(key)
            total += amount

    return round_money(total)


def is_pending_orphan(entry, today: date, valid_notes: set) -> bool:
    """
    Orphans the reconciler would delete: expected entries from today on.
    Past and confirmed rows of a removed source stay part of its history.
    """
    return entry.status == ENTRY_EXPECTED and entry.due_date >= today and is_orphan(entry, valid_notes)


def summarize_month(
    first: date,
    today: date,
    appointments: list,
    entries: list,
    rules: list,
    valid_notes: set,
) -> dict:
    """One month's {month, realized, scheduled, revenue, expenses, profit}"""
    current = month_start(today)
    last = month_end(first)

    month_appointments = [a for a in appointments if first <= a.date <= last]

    # Entries of the current month only count up to today
    entry_cutoff = today if first == current else last
    month_entries = [
        e
        for e in entries
        if first <= e.due_date <= entry_cutoff
        and e.status in COUNTED_ENTRY_STATUSES
        and not is_pending_orphan(e, today, valid_notes)
    ]

    completed = sum(a.amount or 0 for a in month_appointments if a.status == APPOINTMENT_COMPLETED)
    revenue = sum(e.amount for e in month_entries if e.kind == ENTRY_REVENUE)
    expenses = sum(e.amount for e in month_entries if e.kind == ENTRY_EXPENSE)
    realized = completed + revenue

    # Strictly future months rely on persisted rows only
    scheduled = scheduled_total(month_appointments, rules, first, expand_rules=first <= current)

    return {
        "month": month_label(first),
        "realized": round_money(realized),
        "scheduled": scheduled,
        "revenue": round_money(revenue),
        "expenses": round_money(expenses),
        "profit": round_money(realized - expenses),
    }


def series_months(today: date, months_back: int, months_forward: int) -> tuple[list[date], list[date]]:
    """(history, projection) month starts; both include the current month"""
    current = month_start(today)
    history = [current - relativedelta(months=n) for n in range(months_back, -1, -1)]
    projection = [current + relativedelta(months=n) for n in range(0, months_forward + 1)]
    return history, projection


def build_monthly_series(
    today: date,
    appointments: list,
    entries: list,
    rules: list,
    valid_notes: set,
    months_back: int = 3,
    months_forward: int = 3,
) -> dict:
    """
    Pure fold of fetched rows into {history, projection, summary}.
    The current month is computed once and shared by both series.
    """
    history_months, projection_months = series_months(today, months_back, months_forward)

    summaries = {}
    for first in history_months + projection_months:
        if first not in summaries:
            summaries[first] = summarize_month(first, today, appointments, entries, rules, valid_notes)

    history = [summaries[m] for m in history_months]
    projection = [summaries[m] for m in projection_months]

    current = history[-1]
    next_month = projection[1] if len(projection) > 1 else None
    average_realized = sum(m["realized"] for m in history) / len(history) if history else 0

    summary = {
        "currentMonth": current["month"],
        "currentRealized": current["realized"],
        "currentExpenses": current["expenses"],
        "currentProfit": current["profit"],
        "averageRealized": round_money(average_realized),
        "nextMonthProjection": round_money(next_month["scheduled"] + next_month["revenue"]) if next_month else 0.0,
    }
    return {"history": history, "projection": projection, "summary": summary}


def compute_monthly_series(
    db: Session,
    user: User,
    months_back: int = 3,
    months_forward: int = 3,
    today: Optional[date] = None,
) -> dict:
    """Fetch the owner's rows for the whole range once and build the series"""
    if today is None:
        today = owner_today(user)

    history_months, projection_months = series_months(today, months_back, months_forward)
    range_start = history_months[0]
    range_end = month_end(projection_months[-1])

    with translate_datastore_errors():
        appointments = AppointmentRepository.get_appointments(db, user.id, range_start, range_end)
        entries = FinanceRepository.get_entries(db, user.id, start=range_start, end=range_end)
        rules = AppointmentRepository.get_rules(db, user.id, active_only=True)
        valid_notes = valid_derived_notes(db, user.id)

    logger.debug(
        f"📊 Monthly series for user {user.id}: {len(appointments)} appointments, "
        f"{len(entries)} entries, {len(rules)} active rules"
    )
    return build_monthly_series(
        today,
        appointments,
        entries,
        rules,
        valid_notes,
        months_back=months_back,
        months_forward=months_forward,
    )
