"""Finance router - FastAPI endpoints for expenses, revenues and entries"""

import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import (
    EntryResponse,
    FinanceMaterializeResult,
    ReconcileResult,
    SourceRecordCreate,
    SourceRecordResponse,
    SourceRecordUpdate,
    SourceRecordWriteResponse,
)
from .service import FinanceService, entry_to_dict, record_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/finance", tags=["Finance"])

# URL segment -> entry kind
RECORD_PATHS = {"expenses": "expense", "revenues": "revenue"}
RecordPath = Literal["expenses", "revenues"]


def get_finance_service(db: Session = Depends(get_db)) -> FinanceService:
    """Dependency injection for FinanceService"""
    return FinanceService(db)


# ============================================================================
# FINANCIAL ENTRIES
# ============================================================================


@router.get("/entries", response_model=list[EntryResponse])
async def get_entries(
    kind: Optional[Literal["revenue", "expense"]] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    status: Optional[Literal["expected", "confirmed"]] = Query(None),
    current_user: User = Depends(get_current_user),
    service: FinanceService = Depends(get_finance_service),
):
    entries = service.get_entries(current_user, kind, start, end, status)
    return [EntryResponse(**entry_to_dict(e)) for e in entries]


@router.post("/entries/materialize", response_model=FinanceMaterializeResult)
async def materialize_entries(
    windowDays: Optional[int] = Query(None, ge=1, le=730),
    current_user: User = Depends(get_current_user),
    service: FinanceService = Depends(get_finance_service),
):
    """Materialize monthly entries for every recurring/fixed record"""
    return service.materialize(current_user, windowDays)


@router.post("/entries/reconcile", response_model=ReconcileResult)
async def reconcile_entries(
    force: bool = Query(True),
    current_user: User = Depends(get_current_user),
    service: FinanceService = Depends(get_finance_service),
):
    """Remove orphaned and duplicated derived entries"""
    return service.reconcile(current_user, force)


# ============================================================================
# EXPENSES / REVENUES
# ============================================================================


@router.get("/{record_path}", response_model=list[SourceRecordResponse])
async def get_records(
    record_path: RecordPath,
    current_user: User = Depends(get_current_user),
    service: FinanceService = Depends(get_finance_service),
):
    records = service.get_records(RECORD_PATHS[record_path], current_user)
    return [SourceRecordResponse(**record_to_dict(r)) for r in records]


@router.get("/{record_path}/{record_id}", response_model=SourceRecordResponse)
async def get_record(
    record_path: RecordPath,
    record_id: int,
    current_user: User = Depends(get_current_user),
    service: FinanceService = Depends(get_finance_service),
):
    record = service.get_record(RECORD_PATHS[record_path], record_id, current_user)
    return SourceRecordResponse(**record_to_dict(record))


@router.post("/{record_path}", response_model=SourceRecordWriteResponse)
async def create_record(
    record_path: RecordPath,
    data: SourceRecordCreate,
    current_user: User = Depends(get_current_user),
    service: FinanceService = Depends(get_finance_service),
):
    """Create an expense or revenue (recurring ones materialize their entries)"""
    return service.create_record(RECORD_PATHS[record_path], data, current_user)


@router.patch("/{record_path}/{record_id}", response_model=SourceRecordWriteResponse)
async def update_record(
    record_path: RecordPath,
    record_id: int,
    data: SourceRecordUpdate,
    current_user: User = Depends(get_current_user),
    service: FinanceService = Depends(get_finance_service),
):
    return service.update_record(RECORD_PATHS[record_path], record_id, data, current_user)


@router.delete("/{record_path}/{record_id}")
async def delete_record(
    record_path: RecordPath,
    record_id: int,
    current_user: User = Depends(get_current_user),
    service: FinanceService = Depends(get_finance_service),
):
    """Delete an expense or revenue and clean up its derived entries"""
    return service.delete_record(RECORD_PATHS[record_path], record_id, current_user)
