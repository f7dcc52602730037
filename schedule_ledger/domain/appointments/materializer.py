"""
Appointment materialization
Turns active recurring rules into concrete scheduled appointments inside a
rolling window, keyed by (rule, date) so repeated runs converge.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import MATERIALIZE_WINDOW_DAYS
from ...database import acquire_owner_lock, translate_datastore_errors
from ...exceptions import DatastoreUnavailable, RecurrenceValidationError
from ...models import (
    APPOINTMENT_SCHEDULED,
    FROZEN_APPOINTMENT_STATUSES,
    Appointment,
    RecurringRule,
    User,
)
from ...shared.clock import owner_today
from ...shared.money import amounts_differ, round_money
from ..recurrence.expander import expand, occurs_on, rule_descriptor, validate_rule
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)

LOCK_SCOPE = "appointments"


def rule_today(rule: RecurringRule) -> date:
    """Today in the rule's declared zone"""
    return owner_today(rule)


def window_days_for(rule: RecurringRule, today: date, default: int = MATERIALIZE_WINDOW_DAYS) -> int:
    """Rules with an end date are materialized through that date"""
    if rule.end_date:
        return max((rule.end_date - today).days, 0)
    return default


def materialize_rule(
    db: Session,
    rule: RecurringRule,
    window_days: Optional[int] = None,
    today: Optional[date] = None,
) -> dict:
    """
    Upsert the rule's occurrences in [today, today + window_days].

    Missing dates are created as scheduled; scheduled rows whose amount, time
    or title drifted from the rule are updated; completed/cancelled rows and rows
    already in sync are skipped. Scheduled rows from today on that fall on a
    date the rule no longer produces are removed.

    Returns:
        dict: {created, updated, skipped, removed, windowDays, until, warnings}

    Raises:
        RecurrenceValidationError: rule cannot be expanded (nothing written)
        DatastoreUnavailable: datastore unreachable (safe to retry)
    """
    validate_rule(rule)

    if window_days is None:
        window_days = MATERIALIZE_WINDOW_DAYS
    if today is None:
        today = rule_today(rule)

    window_end = today + timedelta(days=window_days)
    until = min(rule.end_date, window_end) if rule.end_date else window_end
    result = {
        "created": 0,
        "updated": 0,
        "skipped": 0,
        "removed": 0,
        "windowDays": window_days,
        "until": until,
        "warnings": [],
    }

    if not rule.active:
        logger.info(f"⏭️ Rule {rule.id} is inactive - nothing to materialize")
        return result

    repo = AppointmentRepository()
    amount = round_money(rule.amount)

    try:
        with translate_datastore_errors():
            acquire_owner_lock(db, rule.user_id, LOCK_SCOPE)

            descriptor = rule_descriptor(rule)
            upcoming = repo.get_rule_appointments(db, rule.id, today)

            # Rows left behind by an earlier weekday/interval/range
            existing_by_date = {}
            for appointment in upcoming:
                if appointment.status == APPOINTMENT_SCHEDULED and not occurs_on(descriptor, appointment.date):
                    db.delete(appointment)
                    result["removed"] += 1
                    continue
                existing_by_date.setdefault(appointment.date, appointment)

            occurrences = expand(descriptor, amount, today, window_end)

            for occurrence in occurrences:
                existing = existing_by_date.get(occurrence.date)

                if existing is None:
                    appointment = Appointment(
                        user_id=rule.user_id,
                        client_id=rule.client_id,
                        recurring_rule_id=rule.id,
                        title=rule.title,
                        date=occurrence.date,
                        time=rule.time_local,
                        amount=occurrence.amount,
                        status=APPOINTMENT_SCHEDULED,
                    )
                    db.add(appointment)
                    existing_by_date[occurrence.date] = appointment
                    result["created"] += 1
                    continue

                if existing.status in FROZEN_APPOINTMENT_STATUSES:
                    result["skipped"] += 1
                    continue

                if (
                    amounts_differ(existing.amount, occurrence.amount)
                    or existing.time != rule.time_local
                    or existing.title != rule.title
                ):
                    existing.amount = occurrence.amount
                    existing.time = rule.time_local
                    existing.title = rule.title
                    result["updated"] += 1
                else:
                    result["skipped"] += 1

            db.commit()
    except (SQLAlchemyError, DatastoreUnavailable):
        db.rollback()
        raise

    logger.info(
        f"📅 Rule {rule.id} materialized until {until}: "
        f"created={result['created']} updated={result['updated']} skipped={result['skipped']} "
        f"removed={result['removed']}"
    )
    return result


def materialize_owner_rules(
    db: Session,
    user: User,
    window_days: Optional[int] = None,
    today: Optional[date] = None,
) -> dict:
    """
    Materialize every active rule of an owner.
    A failing rule is logged and reported in `warnings`; the rest still run.
    """
    repo = AppointmentRepository()
    rules = repo.get_rules(db, user.id, active_only=True)

    results = []
    warnings = []
    for rule in rules:
        try:
            rule_result = materialize_rule(db, rule, window_days=window_days, today=today)
        except DatastoreUnavailable:
            raise
        except (RecurrenceValidationError, SQLAlchemyError) as e:
            db.rollback()
            logger.error(f"❌ Failed to materialize rule {rule.id} for user {user.id}: {e}")
            warnings.append(f"rule {rule.id}: {e}")
            continue
        results.append({"ruleId": rule.id, **rule_result})

    logger.info(f"📊 Materialized {len(results)}/{len(rules)} rules for user {user.id}")
    return {"results": results, "totalRules": len(results), "warnings": warnings}
