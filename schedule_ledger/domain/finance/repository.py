"""Finance repository - Database operations for expenses, revenues and entries"""

from datetime import date
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import ENTRY_EXPECTED, SOURCE_RECORD_MODELS, FinancialEntry


class FinanceRepository:
    """Repository for source records and financial entries"""

    @staticmethod
    def get_records(db: Session, model, user_id: int) -> list:
        """Expenses or revenues of a user, newest competence first"""
        return (
            db.query(model)
            .filter(model.user_id == user_id)
            .order_by(model.competence_date.desc(), model.id.desc())
            .all()
        )

    @staticmethod
    def get_record(db: Session, model, record_id: int, user_id: int):
        return db.query(model).filter(model.id == record_id, model.user_id == user_id).first()

    @staticmethod
    def create_record(db: Session, model, user_id: int, **record_data):
        """Create a record without committing (caller owns the transaction)"""
        record = model(user_id=user_id, **record_data)
        db.add(record)
        db.flush()
        return record

    @staticmethod
    def get_derived_sources(db: Session, user_id: int) -> list:
        """Every recurring or fixed expense/revenue of a user"""
        sources = []
        for model in SOURCE_RECORD_MODELS.values():
            sources.extend(
                db.query(model)
                .filter(
                    model.user_id == user_id,
                    or_(model.is_recurring.is_(True), model.is_fixed_type.is_(True)),
                )
                .order_by(model.id)
                .all()
            )
        return sources

    @staticmethod
    def find_entry(
        db: Session, user_id: int, kind: str, due_date: date, note: str
    ) -> Optional[FinancialEntry]:
        """Entry matching the upsert key (user, kind, due_date, note)"""
        return (
            db.query(FinancialEntry)
            .filter(
                FinancialEntry.user_id == user_id,
                FinancialEntry.kind == kind,
                FinancialEntry.due_date == due_date,
                FinancialEntry.note == note,
            )
            .order_by(FinancialEntry.id)
            .first()
        )

    @staticmethod
    def get_entries(
        db: Session,
        user_id: int,
        kind: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        status: Optional[str] = None,
    ) -> list[FinancialEntry]:
        query = db.query(FinancialEntry).filter(FinancialEntry.user_id == user_id)
        if kind:
            query = query.filter(FinancialEntry.kind == kind)
        if start:
            query = query.filter(FinancialEntry.due_date >= start)
        if end:
            query = query.filter(FinancialEntry.due_date <= end)
        if status:
            query = query.filter(FinancialEntry.status == status)
        return query.order_by(FinancialEntry.due_date, FinancialEntry.id).all()

    @staticmethod
    def get_expected_entries_since(db: Session, user_id: int, since: date) -> list[FinancialEntry]:
        """Expected entries dated on or after `since` (reconciliation candidates)"""
        return (
            db.query(FinancialEntry)
            .filter(
                FinancialEntry.user_id == user_id,
                FinancialEntry.status == ENTRY_EXPECTED,
                FinancialEntry.due_date >= since,
            )
            .order_by(FinancialEntry.id)
            .all()
        )
