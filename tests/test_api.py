from datetime import timedelta

import pytest
from fastapi import HTTPException

from schedule_ledger.auth import issue_token, verify_token
from schedule_ledger.models import Appointment, Client, FinancialEntry, RecurringRule
from schedule_ledger.shared.clock import owner_today


def recurring_client_payload(today, **overrides):
    payload = {
        "name": "Bruno Lima",
        "phone": "+55 11 99999-0000",
        "weekdays": [1, 3],
        "timeLocal": "19:00",
        "startDate": today.isoformat(),
        "amount": 150,
    }
    payload.update(overrides)
    return payload


def test_health(api):
    response = api.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] in ("healthy", "degraded")


def test_client_crud(api):
    created = api.post("/clients", json={"name": "  Carla  ", "email": "carla@example.com"})
    assert created.status_code == 200
    client_id = created.json()["id"]
    assert created.json()["name"] == "Carla"

    updated = api.patch(f"/clients/{client_id}", json={"phone": "123"})
    assert updated.json()["phone"] == "123"

    listing = api.get("/clients")
    assert [c["id"] for c in listing.json()] == [client_id]

    assert api.delete(f"/clients/{client_id}").status_code == 200
    assert api.get(f"/clients/{client_id}").status_code == 404


def test_client_of_other_owner_is_not_found(api, db, other_user):
    theirs = Client(user_id=other_user.id, name="Not yours")
    db.add(theirs)
    db.commit()

    assert api.get(f"/clients/{theirs.id}").status_code == 404


def test_recurring_client_materializes_and_rerun_is_idempotent(api, db, user):
    today = owner_today(user)

    response = api.post("/clients/recurring", json=recurring_client_payload(today, weekdays=[7, 1, 3]))

    assert response.status_code == 200
    body = response.json()
    assert body["client"]["isRecurring"] is True
    assert body["rule"]["weekdays"] == [0, 1, 3]
    assert body["materialize"]["created"] > 0
    assert db.query(Appointment).count() == body["materialize"]["created"]

    rerun = api.post(f"/recurring-rules/{body['rule']['id']}/materialize")
    assert rerun.status_code == 200
    assert rerun.json()["created"] == 0
    assert rerun.json()["updated"] == 0


def test_recurring_client_with_end_date_covers_whole_range(api, db, user):
    today = owner_today(user)
    end = today + timedelta(days=13)

    response = api.post(
        "/clients/recurring",
        json=recurring_client_payload(today, weekdays=[0, 1, 2, 3, 4, 5, 6], endDate=end.isoformat()),
    )

    assert response.status_code == 200
    assert response.json()["materialize"]["created"] == 14
    assert response.json()["materialize"]["until"] == end.isoformat()


def test_recurring_client_rejected_without_leaving_client(api, db, user):
    today = owner_today(user)

    response = api.post(
        "/clients/recurring",
        json=recurring_client_payload(today, endDate=(today - timedelta(days=1)).isoformat()),
    )

    assert response.status_code == 422
    assert db.query(Client).count() == 0
    assert db.query(RecurringRule).count() == 0


def test_rule_with_empty_weekdays_is_rejected(api, db, client_row, user):
    today = owner_today(user)

    response = api.post(
        "/recurring-rules",
        json={
            "clientId": client_row.id,
            "weekdays": [],
            "timeLocal": "10:00",
            "startDate": today.isoformat(),
            "amount": 80,
        },
    )

    assert response.status_code == 422
    assert response.json()["field"] == "weekdays"
    assert db.query(RecurringRule).count() == 0


def test_rule_with_bad_time_is_rejected(api, client_row, user):
    response = api.post(
        "/recurring-rules",
        json={
            "clientId": client_row.id,
            "weekdays": [1],
            "timeLocal": "25:00",
            "startDate": owner_today(user).isoformat(),
            "amount": 80,
        },
    )

    assert response.status_code == 422


def test_rule_update_and_deactivate(api, db, client_row, user):
    today = owner_today(user)
    created = api.post(
        "/recurring-rules",
        json={
            "clientId": client_row.id,
            "weekdays": [2],
            "timeLocal": "10:00",
            "startDate": today.isoformat(),
            "amount": 80,
        },
    ).json()
    rule_id = created["rule"]["id"]

    updated = api.patch(f"/recurring-rules/{rule_id}", json={"amount": 95})
    assert updated.status_code == 200
    assert updated.json()["materialize"]["created"] == 0
    assert updated.json()["materialize"]["updated"] == created["materialize"]["created"]

    deactivated = api.delete(f"/recurring-rules/{rule_id}")
    assert deactivated.json()["active"] is False
    assert db.query(Appointment).filter(Appointment.recurring_rule_id == rule_id).count() == 0


def test_manual_appointment_accepts_rule_id_alias(api, client_row, make_rule, user):
    rule = make_rule()
    day = owner_today(user) + timedelta(days=2)

    response = api.post(
        "/appointments",
        json={"clientId": client_row.id, "ruleId": rule.id, "date": day.isoformat(), "amount": 50},
    )

    assert response.status_code == 200
    assert response.json()["recurringRuleId"] == rule.id
    assert response.json()["status"] == "scheduled"


def test_overlapping_appointment_is_created_with_conflicts(api, client_row, user):
    day = owner_today(user) + timedelta(days=1)
    first = api.post(
        "/appointments", json={"clientId": client_row.id, "date": day.isoformat(), "time": "10:00"}
    ).json()

    overlapping = api.post(
        "/appointments", json={"clientId": client_row.id, "date": day.isoformat(), "time": "10:30"}
    )
    back_to_back = api.post(
        "/appointments", json={"clientId": client_row.id, "date": day.isoformat(), "time": "11:00"}
    )

    assert first["conflicts"] == []
    assert overlapping.status_code == 200
    assert [c["id"] for c in overlapping.json()["conflicts"]] == [first["id"]]
    assert [c["id"] for c in back_to_back.json()["conflicts"]] == [overlapping.json()["id"]]


def test_conflict_lookup_ignores_cancelled_and_excluded(api, client_row, user):
    day = (owner_today(user) + timedelta(days=1)).isoformat()
    cancelled = api.post("/appointments", json={"clientId": client_row.id, "date": day, "time": "09:00"}).json()
    api.patch(f"/appointments/{cancelled['id']}/status", json={"status": "cancelled"})
    kept = api.post("/appointments", json={"clientId": client_row.id, "date": day, "time": "09:45"}).json()

    found = api.get("/appointments/conflicts", params={"date": day, "time": "09:15"})
    excluded = api.get(
        "/appointments/conflicts", params={"date": day, "time": "09:15", "excludeId": kept["id"]}
    )
    invalid = api.get("/appointments/conflicts", params={"date": day, "time": "9am"})

    assert [a["id"] for a in found.json()] == [kept["id"]]
    assert excluded.json() == []
    assert invalid.status_code == 422


def test_appointment_status_update(api, client_row, user):
    day = owner_today(user)
    created = api.post(
        "/appointments", json={"clientId": client_row.id, "date": day.isoformat(), "amount": 50}
    ).json()

    bad = api.patch(f"/appointments/{created['id']}/status", json={"status": "done"})
    good = api.patch(f"/appointments/{created['id']}/status", json={"status": "Completed"})

    assert bad.status_code == 422
    assert good.json()["status"] == "completed"


def test_complete_past_endpoint(api, db, client_row, user):
    yesterday = owner_today(user) - timedelta(days=1)
    db.add(Appointment(user_id=user.id, client_id=client_row.id, date=yesterday, amount=10))
    db.commit()

    response = api.post("/appointments/complete-past")

    assert response.json()["completed"] == 1


def test_deleting_client_removes_appointments_and_deactivates_rules(api, db, user):
    body = api.post("/clients/recurring", json=recurring_client_payload(owner_today(user))).json()

    response = api.delete(f"/clients/{body['client']['id']}")

    assert response.json()["deactivatedRules"] == 1
    assert db.query(Appointment).count() == 0
    rule = db.get(RecurringRule, body["rule"]["id"])
    db.refresh(rule)
    assert rule.active is False


def test_single_expense_creates_confirmed_entry(api, db, user):
    today = owner_today(user)

    response = api.post(
        "/finance/expenses",
        json={"amount": 42.5, "description": "Printer ink", "competenceDate": today.isoformat()},
    )

    assert response.status_code == 200
    entries = api.get("/finance/entries", params={"status": "confirmed"}).json()
    assert entries == [
        {
            "id": entries[0]["id"],
            "kind": "expense",
            "status": "confirmed",
            "amount": 42.5,
            "dueDate": today.isoformat(),
            "note": "Printer ink",
        }
    ]


def test_recurring_revenue_lifecycle(api, db, user):
    today = owner_today(user)
    created = api.post(
        "/finance/revenues",
        json={
            "amount": 1000,
            "description": "Retainer",
            "competenceDate": today.isoformat(),
            "isRecurring": True,
            "recurrence": {"kind": "monthly", "dayOfMonth": 28},
        },
    )
    assert created.status_code == 200
    record_id = created.json()["record"]["id"]
    assert created.json()["materialize"]["created"] >= 6

    rerun = api.post("/finance/entries/materialize").json()
    assert rerun["created"] == 0
    assert rerun["updated"] == 0

    deleted = api.delete(f"/finance/revenues/{record_id}")
    assert deleted.status_code == 200
    assert deleted.json()["reconcile"]["deletedCount"] >= 6
    remaining = (
        db.query(FinancialEntry)
        .filter(FinancialEntry.note == "Recurring: Retainer", FinancialEntry.due_date >= today)
        .count()
    )
    assert remaining == 0


def test_recurring_revenue_with_bad_descriptor_is_rejected(api, db, user):
    response = api.post(
        "/finance/revenues",
        json={
            "amount": 10,
            "description": "Broken",
            "competenceDate": owner_today(user).isoformat(),
            "isRecurring": True,
            "recurrence": {"kind": "weekly", "weekdays": []},
        },
    )

    assert response.status_code == 422
    assert db.query(FinancialEntry).count() == 0


def test_recurring_record_without_descriptor_is_rejected(api, db, user):
    response = api.post(
        "/finance/expenses",
        json={
            "amount": 1200,
            "description": "Rent",
            "competenceDate": owner_today(user).isoformat(),
            "isRecurring": True,
        },
    )

    assert response.status_code == 422
    assert db.query(FinancialEntry).count() == 0


def test_clearing_descriptor_of_recurring_record_is_rejected(api, user):
    created = api.post(
        "/finance/expenses",
        json={
            "amount": 1200,
            "description": "Rent",
            "competenceDate": owner_today(user).isoformat(),
            "isRecurring": True,
            "recurrence": {"kind": "monthly", "dayOfMonth": 5},
        },
    ).json()

    response = api.patch(f"/finance/expenses/{created['record']['id']}", json={"recurrence": None})

    assert response.status_code == 422
    assert response.json()["field"] == "recurrence"
    stored = api.get(f"/finance/expenses/{created['record']['id']}").json()
    assert stored["recurrence"]["dayOfMonth"] == 5


def test_reconcile_endpoint(api):
    response = api.post("/finance/entries/reconcile")

    assert response.json() == {"deletedCount": 0, "duplicatesRemoved": 0, "skipped": False}


def test_monthly_series_endpoint(api, user):
    response = api.get("/reports/monthly-series", params={"monthsBack": 2, "monthsForward": 1})

    assert response.status_code == 200
    body = response.json()
    assert len(body["history"]) == 3
    assert len(body["projection"]) == 2
    assert body["history"][-1] == body["projection"][0]


def test_token_roundtrip():
    assert verify_token(issue_token("firebase-uid-1")) == "firebase-uid-1"


@pytest.mark.parametrize("token", ["no-signature", "uid.deadbeef", ".abc"])
def test_bad_tokens_are_rejected(token):
    with pytest.raises(HTTPException) as exc:
        verify_token(token)
    assert exc.value.status_code == 401
