from datetime import timedelta

import pytest

from schedule_ledger import triggers
from schedule_ledger.models import Appointment, Expense, FinancialEntry
from schedule_ledger.shared.clock import owner_today
from schedule_ledger.worker import run_complete_past, run_nightly_materialization


@pytest.fixture
def trigger_session(monkeypatch, db):
    monkeypatch.setattr(triggers, "SessionLocal", lambda: db)
    return db


@pytest.fixture
def recurring_expense(db, user):
    record = Expense(
        user_id=user.id,
        amount=50,
        description="Cleaning",
        competence_date=owner_today(user),
        is_recurring=True,
        recurrence={"kind": "weekly", "weekdays": [2]},
    )
    db.add(record)
    db.commit()
    return record


def test_materialize_appointment_rule_trigger(trigger_session, make_rule):
    rule_id = make_rule().id

    first = triggers.materialize_appointment_rule(rule_id)
    second = triggers.materialize_appointment_rule(rule_id)

    assert first["ruleId"] == rule_id
    assert first["created"] > 0
    assert "error" not in first
    assert second["created"] == 0


def test_materialize_appointment_rule_trigger_unknown_rule(trigger_session):
    result = triggers.materialize_appointment_rule(9999)

    assert result["error"] == "Recurring rule not found"
    assert result["retryable"] is False


def test_materialize_appointment_rule_trigger_reports_invalid_rule(trigger_session, make_rule):
    rule_id = make_rule(weekdays=[]).id

    result = triggers.materialize_appointment_rule(rule_id)

    assert result["created"] == 0
    assert result["retryable"] is False
    assert "weekdays" in result["error"]


def test_financial_and_reconcile_triggers(trigger_session, user, recurring_expense):
    owner_id = user.id
    record_id = recurring_expense.id
    today = owner_today(user)

    materialized = triggers.materialize_financial_recurring(owner_id)
    assert materialized["created"] > 0
    upcoming = trigger_session.query(FinancialEntry).filter(FinancialEntry.due_date >= today).count()

    trigger_session.delete(trigger_session.get(Expense, record_id))
    trigger_session.commit()

    reconciled = triggers.reconcile_orphans(owner_id)
    assert reconciled["deletedCount"] == upcoming
    assert trigger_session.query(FinancialEntry).filter(FinancialEntry.due_date >= today).count() == 0


def test_monthly_series_trigger(trigger_session, user):
    result = triggers.get_monthly_series(user.id, months_back=1, months_forward=2)

    assert len(result["history"]) == 2
    assert len(result["projection"]) == 3


def test_triggers_report_unknown_owner(trigger_session):
    assert triggers.reconcile_orphans(404)["error"] == "Owner not found"
    assert triggers.materialize_financial_recurring(404)["error"] == "Owner not found"
    assert triggers.get_monthly_series(404)["error"] == "Owner not found"


def test_nightly_materialization(db, user, make_rule, recurring_expense):
    make_rule()

    summary = run_nightly_materialization(db)

    assert summary["owners"] == 1
    assert summary["failed"] == 0
    assert summary["appointments"] == db.query(Appointment).count()
    assert summary["entries"] == db.query(FinancialEntry).count()


def test_complete_past_job(db, user, client_row):
    today = owner_today(user)
    db.add(Appointment(user_id=user.id, client_id=client_row.id, date=today - timedelta(days=3), amount=10))
    db.add(Appointment(user_id=user.id, client_id=client_row.id, date=today, amount=10))
    db.commit()

    assert run_complete_past(db) == {"completed": 1}
