"""Finance service - Business logic for expenses, revenues and entries"""

import logging
from datetime import date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...database import translate_datastore_errors
from ...exceptions import DatastoreUnavailable
from ...models import ENTRY_CONFIRMED, SOURCE_RECORD_MODELS, FinancialEntry, Revenue, User
from .materializer import (
    is_derived_source,
    materialize_financial_recurring,
    record_descriptor,
    require_descriptor,
)
from .reconciler import reconcile_if_due, reconcile_orphans
from .repository import FinanceRepository
from .schemas import SourceRecordCreate, SourceRecordUpdate

logger = logging.getLogger(__name__)


def record_to_dict(record) -> dict:
    return {
        "id": record.id,
        "kind": record.ENTRY_KIND,
        "amount": record.amount,
        "description": record.description,
        "categoryTag": record.category_tag,
        "competenceDate": record.competence_date,
        "isRecurring": bool(record.is_recurring),
        "isFixedType": bool(record.is_fixed_type),
        "recurrence": record.recurrence,
        "paymentMethod": getattr(record, "payment_method", None),
    }


def entry_to_dict(entry: FinancialEntry) -> dict:
    return {
        "id": entry.id,
        "kind": entry.kind,
        "status": entry.status,
        "amount": entry.amount,
        "dueDate": entry.due_date,
        "note": entry.note,
    }


class FinanceService:
    """Service layer for source records and their financial entries"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = FinanceRepository()

    @staticmethod
    def model_for(kind: str):
        model = SOURCE_RECORD_MODELS.get(kind)
        if model is None:
            raise HTTPException(status_code=404, detail=f"Unknown record type: {kind}")
        return model

    def get_records(self, kind: str, user: User) -> list:
        return self.repo.get_records(self.db, self.model_for(kind), user.id)

    def get_record(self, kind: str, record_id: int, user: User):
        record = self.repo.get_record(self.db, self.model_for(kind), record_id, user.id)
        if not record:
            raise HTTPException(status_code=404, detail=f"{kind.capitalize()} not found")
        return record

    def _check_recurrence(self, record) -> None:
        """Reject missing or malformed descriptors before anything is committed"""
        require_descriptor(record)
        if record.is_recurring:
            record_descriptor(record)

    def create_record(self, kind: str, data: SourceRecordCreate, user: User) -> dict:
        """
        Create an expense/revenue.
        Recurring and fixed records get their monthly entries materialized;
        single records get one confirmed entry on the competence date.
        """
        model = self.model_for(kind)
        logger.info(f"📥 Creating {kind} for user_id: {user.id} (recurring={data.isRecurring})")

        record_data = {
            "amount": data.amount,
            "description": data.description,
            "category_tag": data.categoryTag,
            "competence_date": data.competenceDate,
            "is_recurring": data.isRecurring,
            "is_fixed_type": data.isFixedType,
            "recurrence": data.recurrence.model_dump(mode="json") if data.recurrence else None,
        }
        if model is Revenue:
            record_data["payment_method"] = data.paymentMethod

        try:
            with translate_datastore_errors():
                record = self.repo.create_record(self.db, model, user.id, **record_data)
                self._check_recurrence(record)

                if not is_derived_source(record):
                    self.db.add(
                        FinancialEntry(
                            user_id=user.id,
                            kind=kind,
                            status=ENTRY_CONFIRMED,
                            amount=record.amount,
                            due_date=record.competence_date,
                            note=record.description,
                        )
                    )
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(record)
        logger.info(f"✅ {kind.capitalize()} {record.id} created")

        materialized = None
        if is_derived_source(record):
            materialized = materialize_financial_recurring(self.db, user)
        return {"record": record_to_dict(record), "materialize": materialized}

    def update_record(self, kind: str, record_id: int, data: SourceRecordUpdate, user: User) -> dict:
        record = self.get_record(kind, record_id, user)

        updates = {}
        if data.amount is not None:
            updates["amount"] = data.amount
        if data.description is not None:
            updates["description"] = data.description
        if data.categoryTag is not None:
            updates["category_tag"] = data.categoryTag
        if data.competenceDate is not None:
            updates["competence_date"] = data.competenceDate
        if data.isRecurring is not None:
            updates["is_recurring"] = data.isRecurring
        if data.isFixedType is not None:
            updates["is_fixed_type"] = data.isFixedType
        if "recurrence" in data.model_fields_set:
            updates["recurrence"] = data.recurrence.model_dump(mode="json") if data.recurrence else None
        if data.paymentMethod is not None and isinstance(record, Revenue):
            updates["payment_method"] = data.paymentMethod

        try:
            with translate_datastore_errors():
                for key, value in updates.items():
                    setattr(record, key, value)
                self._check_recurrence(record)
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(record)
        logger.info(f"✅ {kind.capitalize()} {record.id} updated")

        materialized = None
        if is_derived_source(record):
            materialized = materialize_financial_recurring(self.db, user)
        reconciled = self._reconcile_best_effort(user)
        return {"record": record_to_dict(record), "materialize": materialized, "reconcile": reconciled}

    def delete_record(self, kind: str, record_id: int, user: User) -> dict:
        record = self.get_record(kind, record_id, user)

        with translate_datastore_errors():
            self.db.delete(record)
            self.db.commit()

        logger.info(f"🗑️ {kind.capitalize()} {record_id} deleted")
        return {"message": f"{kind.capitalize()} deleted", "reconcile": self._reconcile_best_effort(user)}

    def _reconcile_best_effort(self, user: User) -> Optional[dict]:
        """Cleanup after a change never fails the change itself"""
        try:
            return reconcile_orphans(self.db, user)
        except (SQLAlchemyError, DatastoreUnavailable) as e:
            logger.warning(f"⚠️ Orphan reconciliation skipped for user {user.id}: {e}")
            return None

    def get_entries(
        self,
        user: User,
        kind: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        status: Optional[str] = None,
    ) -> list[FinancialEntry]:
        # Opportunistic cleanup, at most once per cooldown period
        try:
            reconcile_if_due(self.db, user)
        except (SQLAlchemyError, DatastoreUnavailable) as e:
            logger.warning(f"⚠️ Opportunistic reconciliation failed for user {user.id}: {e}")

        with translate_datastore_errors():
            return self.repo.get_entries(self.db, user.id, kind, start, end, status)

    def materialize(self, user: User, window_days: Optional[int] = None) -> dict:
        return materialize_financial_recurring(self.db, user, window_days=window_days)

    def reconcile(self, user: User, force: bool = True) -> dict:
        if force:
            return reconcile_orphans(self.db, user)
        result = reconcile_if_due(self.db, user)
        if result is None:
            return {"deletedCount": 0, "duplicatesRemoved": 0, "skipped": True}
        return result
