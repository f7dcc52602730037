"""Appointment repository - Database operations for rules and appointments"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import APPOINTMENT_SCHEDULED, Appointment, Client, RecurringRule


class AppointmentRepository:
    """Repository for recurring rule and appointment database operations"""

    @staticmethod
    def get_rule(db: Session, rule_id: int, user_id: Optional[int] = None) -> Optional[RecurringRule]:
        """Get a rule by ID, optionally scoped to an owner"""
        query = db.query(RecurringRule).filter(RecurringRule.id == rule_id)
        if user_id is not None:
            query = query.filter(RecurringRule.user_id == user_id)
        return query.first()

    @staticmethod
    def get_rules(db: Session, user_id: int, active_only: bool = False) -> list[RecurringRule]:
        query = db.query(RecurringRule).filter(RecurringRule.user_id == user_id)
        if active_only:
            query = query.filter(RecurringRule.active.is_(True))
        return query.order_by(RecurringRule.id).all()

    @staticmethod
    def create_rule(db: Session, user_id: int, **rule_data) -> RecurringRule:
        """Create a rule without committing (caller owns the transaction)"""
        rule = RecurringRule(user_id=user_id, **rule_data)
        db.add(rule)
        db.flush()
        return rule

    @staticmethod
    def get_client(db: Session, client_id: int, user_id: int) -> Optional[Client]:
        return db.query(Client).filter(Client.id == client_id, Client.user_id == user_id).first()

    @staticmethod
    def get_rule_appointments(
        db: Session, rule_id: int, start: date, end: Optional[date] = None
    ) -> list[Appointment]:
        """Appointments materialized from a rule from `start` on (through `end` when given)"""
        query = db.query(Appointment).filter(
            Appointment.recurring_rule_id == rule_id,
            Appointment.date >= start,
        )
        if end:
            query = query.filter(Appointment.date <= end)
        return query.order_by(Appointment.date, Appointment.id).all()

    @staticmethod
    def get_appointments(
        db: Session,
        user_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        status: Optional[str] = None,
    ) -> list[Appointment]:
        query = db.query(Appointment).filter(Appointment.user_id == user_id)
        if start:
            query = query.filter(Appointment.date >= start)
        if end:
            query = query.filter(Appointment.date <= end)
        if status:
            query = query.filter(Appointment.status == status)
        return query.order_by(Appointment.date, Appointment.time, Appointment.id).all()

    @staticmethod
    def get_appointment(db: Session, appointment_id: int, user_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_past_scheduled(db: Session, user_id: int, before: date) -> list[Appointment]:
        """Scheduled appointments dated strictly before `before`"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.user_id == user_id,
                Appointment.status == APPOINTMENT_SCHEDULED,
                Appointment.date < before,
            )
            .all()
        )
