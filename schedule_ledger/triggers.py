"""
Callable operations for the surrounding application (jobs, scripts, RPC).

Each call opens its own session and returns a JSON-shaped dict. Failures are
reported through `error`/`warnings` instead of being raised.
"""

import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from .database import SessionLocal
from .domain.appointments.materializer import materialize_rule, rule_today, window_days_for
from .domain.appointments.repository import AppointmentRepository
from .domain.finance import materializer as finance_materializer
from .domain.finance import reconciler
from .domain.reports.projection import compute_monthly_series
from .exceptions import DatastoreUnavailable, RecurrenceValidationError
from .models import User

logger = logging.getLogger(__name__)


@contextmanager
def session_scope():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _failure(base: dict, error: Exception, retryable: bool) -> dict:
    return {**base, "error": str(error), "retryable": retryable}


def _load_owner(db, owner_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == owner_id).first()


def materialize_appointment_rule(rule_id: int, window_days: Optional[int] = None) -> dict:
    """{created, updated, skipped, windowDays, until, warnings} for one rule"""
    empty = {"ruleId": rule_id, "created": 0, "updated": 0, "skipped": 0, "warnings": []}
    try:
        with session_scope() as db:
            rule = AppointmentRepository.get_rule(db, rule_id)
            if rule is None:
                return {**empty, "error": "Recurring rule not found", "retryable": False}
            if window_days is None:
                window_days = window_days_for(rule, rule_today(rule))
            return {"ruleId": rule_id, **materialize_rule(db, rule, window_days=window_days)}
    except RecurrenceValidationError as e:
        logger.warning(f"⚠️ Rule {rule_id} rejected: {e}")
        return _failure(empty, e, retryable=False)
    except (DatastoreUnavailable, SQLAlchemyError) as e:
        logger.error(f"❌ Rule {rule_id} materialization failed: {e}")
        return _failure(empty, e, retryable=True)


def materialize_financial_recurring(owner_id: int, window_days: Optional[int] = None) -> dict:
    """{created, updated, skipped, windowDays, warnings} for one owner"""
    empty = {"created": 0, "updated": 0, "skipped": 0, "warnings": []}
    try:
        with session_scope() as db:
            owner = _load_owner(db, owner_id)
            if owner is None:
                return {**empty, "error": "Owner not found", "retryable": False}
            return finance_materializer.materialize_financial_recurring(db, owner, window_days=window_days)
    except (DatastoreUnavailable, SQLAlchemyError) as e:
        logger.error(f"❌ Financial materialization failed for owner {owner_id}: {e}")
        return _failure(empty, e, retryable=True)


def reconcile_orphans(owner_id: int) -> dict:
    """{deletedCount, duplicatesRemoved} for one owner"""
    empty = {"deletedCount": 0, "duplicatesRemoved": 0}
    try:
        with session_scope() as db:
            owner = _load_owner(db, owner_id)
            if owner is None:
                return {**empty, "error": "Owner not found", "retryable": False}
            return reconciler.reconcile_orphans(db, owner)
    except (DatastoreUnavailable, SQLAlchemyError) as e:
        logger.error(f"❌ Orphan reconciliation failed for owner {owner_id}: {e}")
        return _failure(empty, e, retryable=True)


def get_monthly_series(owner_id: int, months_back: int = 3, months_forward: int = 3) -> dict:
    """{history, projection, summary} for one owner"""
    empty = {"history": [], "projection": [], "summary": None}
    try:
        with session_scope() as db:
            owner = _load_owner(db, owner_id)
            if owner is None:
                return {**empty, "error": "Owner not found", "retryable": False}
            return compute_monthly_series(db, owner, months_back, months_forward)
    except (DatastoreUnavailable, SQLAlchemyError) as e:
        logger.error(f"❌ Monthly series failed for owner {owner_id}: {e}")
        return _failure(empty, e, retryable=True)
