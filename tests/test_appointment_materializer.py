from datetime import date

import pytest

from schedule_ledger.domain.appointments.materializer import materialize_owner_rules, materialize_rule
from schedule_ledger.domain.appointments.service import complete_past_appointments
from schedule_ledger.domain.reports.projection import compute_monthly_series
from schedule_ledger.exceptions import RecurrenceValidationError
from schedule_ledger.models import (
    APPOINTMENT_COMPLETED,
    APPOINTMENT_SCHEDULED,
    Appointment,
)

from .conftest import TODAY

# Mondays and Wednesdays in [2025-03-10, 2025-04-09]
EXPECTED_DATES = [
    date(2025, 3, 10),
    date(2025, 3, 12),
    date(2025, 3, 17),
    date(2025, 3, 19),
    date(2025, 3, 24),
    date(2025, 3, 26),
    date(2025, 3, 31),
    date(2025, 4, 2),
    date(2025, 4, 7),
    date(2025, 4, 9),
]


def rule_appointments(db, rule):
    return (
        db.query(Appointment)
        .filter(Appointment.recurring_rule_id == rule.id)
        .order_by(Appointment.date)
        .all()
    )


def test_materialize_creates_scheduled_rows_in_window(db, make_rule):
    rule = make_rule()

    result = materialize_rule(db, rule, window_days=30, today=TODAY)

    assert result["created"] == len(EXPECTED_DATES)
    assert result["until"] == date(2025, 4, 9)
    rows = rule_appointments(db, rule)
    assert [a.date for a in rows] == EXPECTED_DATES
    assert all(a.status == APPOINTMENT_SCHEDULED for a in rows)
    assert all(a.time == "19:00" and a.amount == 100.0 for a in rows)


def test_second_run_creates_nothing(db, make_rule):
    rule = make_rule()
    materialize_rule(db, rule, window_days=30, today=TODAY)

    again = materialize_rule(db, rule, window_days=30, today=TODAY)

    assert again["created"] == 0
    assert again["updated"] == 0
    assert again["skipped"] == len(EXPECTED_DATES)
    assert len(rule_appointments(db, rule)) == len(EXPECTED_DATES)


def test_amount_change_updates_scheduled_but_not_completed_rows(db, make_rule):
    rule = make_rule()
    materialize_rule(db, rule, window_days=30, today=TODAY)
    first = rule_appointments(db, rule)[0]
    first.status = APPOINTMENT_COMPLETED
    db.commit()

    rule.amount = 120.0
    rule.time_local = "18:30"
    db.commit()
    result = materialize_rule(db, rule, window_days=30, today=TODAY)

    assert result["created"] == 0
    assert result["updated"] == len(EXPECTED_DATES) - 1
    assert result["skipped"] == 1
    rows = rule_appointments(db, rule)
    assert rows[0].amount == 100.0
    assert rows[0].time == "19:00"
    assert all(a.amount == 120.0 and a.time == "18:30" for a in rows[1:])


def test_weekday_change_removes_stale_scheduled_rows(db, user, make_rule):
    rule = make_rule(weekdays=[1])
    materialize_rule(db, rule, window_days=30, today=TODAY)
    kept = rule_appointments(db, rule)[1]
    kept.status = APPOINTMENT_COMPLETED
    db.commit()

    rule.weekdays = [3]
    db.commit()
    result = materialize_rule(db, rule, window_days=30, today=TODAY)

    assert result["created"] == 5
    assert result["removed"] == 4
    assert [(a.date, a.status) for a in rule_appointments(db, rule)] == [
        (date(2025, 3, 12), APPOINTMENT_SCHEDULED),
        (date(2025, 3, 17), APPOINTMENT_COMPLETED),
        (date(2025, 3, 19), APPOINTMENT_SCHEDULED),
        (date(2025, 3, 26), APPOINTMENT_SCHEDULED),
        (date(2025, 4, 2), APPOINTMENT_SCHEDULED),
        (date(2025, 4, 9), APPOINTMENT_SCHEDULED),
    ]

    series = compute_monthly_series(db, user, months_back=0, months_forward=1, today=TODAY)
    # Wednesdays 3/5, 3/12, 3/19, 3/26; the completed Monday is not scheduled
    assert series["history"][-1]["scheduled"] == 400.0


def test_earlier_end_date_removes_rows_past_it(db, make_rule):
    rule = make_rule()
    materialize_rule(db, rule, window_days=30, today=TODAY)

    rule.end_date = date(2025, 3, 20)
    db.commit()
    result = materialize_rule(db, rule, window_days=10, today=TODAY)

    assert result["removed"] == 6
    assert [a.date for a in rule_appointments(db, rule)] == EXPECTED_DATES[:4]


def test_rows_before_today_are_left_alone(db, make_rule):
    rule = make_rule(weekdays=[1])
    materialize_rule(db, rule, window_days=14, today=date(2025, 3, 1))

    rule.weekdays = [3]
    db.commit()
    result = materialize_rule(db, rule, window_days=14, today=TODAY)

    assert result["removed"] == 1
    assert date(2025, 3, 3) in [a.date for a in rule_appointments(db, rule)]


def test_window_is_capped_by_end_date(db, make_rule):
    rule = make_rule(end_date=date(2025, 3, 20))

    result = materialize_rule(db, rule, window_days=180, today=TODAY)

    assert result["until"] == date(2025, 3, 20)
    assert [a.date for a in rule_appointments(db, rule)] == EXPECTED_DATES[:4]


def test_inactive_rule_materializes_nothing(db, make_rule):
    rule = make_rule(active=False)

    result = materialize_rule(db, rule, window_days=30, today=TODAY)

    assert result["created"] == 0
    assert rule_appointments(db, rule) == []


def test_invalid_rule_is_rejected_before_any_write(db, make_rule):
    rule = make_rule(weekdays=[])

    with pytest.raises(RecurrenceValidationError):
        materialize_rule(db, rule, window_days=30, today=TODAY)

    assert db.query(Appointment).count() == 0


def test_owner_run_reports_failing_rule_and_continues(db, user, make_rule):
    good = make_rule()
    bad = make_rule(weekdays=[], title="Broken")

    result = materialize_owner_rules(db, user, window_days=30, today=TODAY)

    assert result["totalRules"] == 1
    assert result["results"][0]["ruleId"] == good.id
    assert result["results"][0]["created"] == len(EXPECTED_DATES)
    assert len(result["warnings"]) == 1
    assert f"rule {bad.id}" in result["warnings"][0]


def test_complete_past_marks_only_earlier_scheduled_rows(db, user, client_row):
    past = Appointment(user_id=user.id, client_id=client_row.id, date=date(2025, 3, 5), amount=80)
    today_row = Appointment(user_id=user.id, client_id=client_row.id, date=TODAY, amount=80)
    db.add_all([past, today_row])
    db.commit()

    result = complete_past_appointments(db, user, today=TODAY)

    assert result == {"completed": 1, "before": TODAY}
    db.refresh(past)
    db.refresh(today_row)
    assert past.status == APPOINTMENT_COMPLETED
    assert today_row.status == APPOINTMENT_SCHEDULED
