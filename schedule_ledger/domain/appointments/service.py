"""Appointment service - Business logic for rules and appointments"""

import logging
from datetime import date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import DEFAULT_TIMEZONE, MATERIALIZE_WINDOW_DAYS
from ...database import translate_datastore_errors
from ...models import (
    APPOINTMENT_CANCELLED,
    APPOINTMENT_COMPLETED,
    APPOINTMENT_SCHEDULED,
    Appointment,
    RecurringRule,
    User,
)
from ...shared.clock import owner_today
from ..recurrence.expander import validate_rule
from ..recurrence.schemas import RuleCreate, RuleUpdate
from .materializer import materialize_owner_rules, materialize_rule, rule_today, window_days_for
from .repository import AppointmentRepository
from .schemas import AppointmentCreate

logger = logging.getLogger(__name__)

# Every appointment occupies a one-hour slot from its start time
APPOINTMENT_SLOT_MINUTES = 60


def rule_to_dict(rule: RecurringRule) -> dict:
    return {
        "id": rule.id,
        "clientId": rule.client_id,
        "title": rule.title,
        "weekdays": list(rule.weekdays or []),
        "timeLocal": rule.time_local,
        "timezone": rule.timezone,
        "startDate": rule.start_date,
        "endDate": rule.end_date,
        "intervalWeeks": rule.interval_weeks,
        "amount": rule.amount,
        "active": rule.active,
    }


def minutes_of(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def slots_overlap(a: str, b: str) -> bool:
    return abs(minutes_of(a) - minutes_of(b)) < APPOINTMENT_SLOT_MINUTES


def find_conflicts(
    db: Session, user_id: int, day: date, time: Optional[str], exclude_id: Optional[int] = None
) -> list[Appointment]:
    """Owner's non-cancelled appointments whose slot overlaps `time` on `day`"""
    if not time:
        return []
    same_day = AppointmentRepository.get_appointments(db, user_id, start=day, end=day)
    return [
        a
        for a in same_day
        if a.id != exclude_id
        and a.status != APPOINTMENT_CANCELLED
        and a.time
        and slots_overlap(a.time, time)
    ]


def appointment_to_dict(appointment: Appointment) -> dict:
    return {
        "id": appointment.id,
        "clientId": appointment.client_id,
        "recurringRuleId": appointment.recurring_rule_id,
        "title": appointment.title,
        "date": appointment.date,
        "time": appointment.time,
        "amount": appointment.amount,
        "status": appointment.status,
        "notes": appointment.notes,
    }


def complete_past_appointments(db: Session, user: User, today: Optional[date] = None) -> dict:
    """Mark scheduled appointments dated before the owner's today as completed"""
    if today is None:
        today = owner_today(user)

    with translate_datastore_errors():
        past = AppointmentRepository.get_past_scheduled(db, user.id, today)
        for appointment in past:
            appointment.status = APPOINTMENT_COMPLETED
        db.commit()

    if past:
        logger.info(f"✅ Auto-completed {len(past)} past appointments for user {user.id}")
    return {"completed": len(past), "before": today}


class AppointmentService:
    """Service layer for recurring rules and appointments"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    # ------------------------------------------------------------------
    # Recurring rules
    # ------------------------------------------------------------------

    def get_rules(self, user: User) -> list[RecurringRule]:
        return self.repo.get_rules(self.db, user.id)

    def get_rule(self, rule_id: int, user: User) -> RecurringRule:
        rule = self.repo.get_rule(self.db, rule_id, user.id)
        if not rule:
            raise HTTPException(status_code=404, detail="Recurring rule not found")
        return rule

    def build_rule(self, data: RuleCreate, user: User, client_id: int) -> RecurringRule:
        """Create and validate a rule inside the caller's transaction (no commit)"""
        rule = self.repo.create_rule(
            self.db,
            user.id,
            client_id=client_id,
            title=data.title or "Recurring",
            weekdays=data.weekdays,
            time_local=data.timeLocal,
            timezone=data.timezone or user.timezone or DEFAULT_TIMEZONE,
            start_date=data.startDate,
            end_date=data.endDate,
            interval_weeks=data.intervalWeeks,
            amount=data.amount,
            active=True,
        )
        validate_rule(rule)
        return rule

    def create_rule(self, data: RuleCreate, user: User) -> tuple[RecurringRule, dict]:
        """Create a rule for an existing client and materialize its window"""
        logger.info(f"📥 Creating recurring rule for user_id: {user.id}, client_id: {data.clientId}")

        client = self.repo.get_client(self.db, data.clientId, user.id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")

        try:
            rule = self.build_rule(data, user, client.id)
            client.is_recurring = True
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(rule)
        result = self.materialize(rule)
        return rule, result

    def update_rule(self, rule_id: int, data: RuleUpdate, user: User) -> tuple[RecurringRule, dict]:
        rule = self.get_rule(rule_id, user)

        field_map = {
            "title": "title",
            "weekdays": "weekdays",
            "timeLocal": "time_local",
            "timezone": "timezone",
            "startDate": "start_date",
            "endDate": "end_date",
            "intervalWeeks": "interval_weeks",
            "amount": "amount",
        }
        for field_name, column in field_map.items():
            value = getattr(data, field_name)
            if value is not None:
                setattr(rule, column, value)

        try:
            validate_rule(rule)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(rule)
        logger.info(f"✅ Recurring rule {rule.id} updated")
        return rule, self.materialize(rule)

    def deactivate_rule(self, rule_id: int, user: User) -> dict:
        """Stop a rule and drop its future scheduled appointments"""
        rule = self.get_rule(rule_id, user)
        today = rule_today(rule)

        with translate_datastore_errors():
            rule.active = False
            removed = (
                self.db.query(Appointment)
                .filter(
                    Appointment.recurring_rule_id == rule.id,
                    Appointment.status == APPOINTMENT_SCHEDULED,
                    Appointment.date >= today,
                )
                .delete(synchronize_session=False)
            )
            self.db.commit()

        logger.info(f"🛑 Recurring rule {rule.id} deactivated ({removed} future appointments removed)")
        return {"ruleId": rule.id, "active": False, "removedAppointments": removed}

    def materialize(self, rule: RecurringRule, window_days: Optional[int] = None) -> dict:
        if window_days is None:
            window_days = window_days_for(rule, rule_today(rule), MATERIALIZE_WINDOW_DAYS)
        return materialize_rule(self.db, rule, window_days=window_days)

    def materialize_by_id(self, rule_id: int, user: User, window_days: Optional[int] = None) -> dict:
        rule = self.get_rule(rule_id, user)
        return {"ruleId": rule.id, **self.materialize(rule, window_days)}

    def materialize_all(self, user: User, window_days: Optional[int] = None) -> dict:
        return materialize_owner_rules(self.db, user, window_days=window_days)

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    def get_appointments(
        self,
        user: User,
        start: Optional[date] = None,
        end: Optional[date] = None,
        status: Optional[str] = None,
    ) -> list[Appointment]:
        return self.repo.get_appointments(self.db, user.id, start, end, status)

    def create_appointment(self, data: AppointmentCreate, user: User) -> tuple[Appointment, list[Appointment]]:
        """
        Create a one-off appointment (optionally linked to a rule).
        Overlapping appointments do not block the booking; they are returned
        alongside it so the caller can warn.
        """
        client = self.repo.get_client(self.db, data.clientId, user.id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")

        if data.recurringRuleId is not None:
            self.get_rule(data.recurringRuleId, user)

        conflicts = find_conflicts(self.db, user.id, data.date, data.time)

        appointment = Appointment(
            user_id=user.id,
            client_id=client.id,
            recurring_rule_id=data.recurringRuleId,
            title=data.title,
            date=data.date,
            time=data.time,
            amount=data.amount,
            status=APPOINTMENT_SCHEDULED,
            notes=data.notes,
        )
        with translate_datastore_errors():
            self.db.add(appointment)
            self.db.commit()
            self.db.refresh(appointment)

        logger.info(f"✅ Appointment {appointment.id} created for client {client.id} on {appointment.date}")
        if conflicts:
            logger.warning(
                f"⚠️ Appointment {appointment.id} overlaps {len(conflicts)} existing appointment(s): "
                f"{[a.id for a in conflicts]}"
            )
        return appointment, conflicts

    def update_status(self, appointment_id: int, status: str, user: User) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id, user.id)
        if not appointment:
            raise HTTPException(status_code=404, detail="Appointment not found")

        with translate_datastore_errors():
            appointment.status = status
            self.db.commit()
            self.db.refresh(appointment)

        logger.info(f"🔄 Appointment {appointment.id} → {status}")
        return appointment

    def complete_past(self, user: User) -> dict:
        return complete_past_appointments(self.db, user)
