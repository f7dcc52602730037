"""Appointment router - FastAPI endpoints for recurring rules and appointments"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...shared.validators import validate_time_hhmm
from ..recurrence.schemas import (
    OwnerMaterializeResult,
    RuleCreate,
    RuleMaterializeResult,
    RuleResponse,
    RuleUpdate,
    RuleWithMaterialization,
)
from .schemas import (
    AppointmentCreate,
    AppointmentCreateResponse,
    AppointmentResponse,
    AppointmentStatusUpdate,
    CompletePastResult,
)
from .service import AppointmentService, appointment_to_dict, find_conflicts, rule_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])
rules_router = APIRouter(prefix="/recurring-rules", tags=["Recurring Rules"])


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db)


# ============================================================================
# RECURRING RULES
# ============================================================================


@rules_router.get("", response_model=list[RuleResponse])
async def get_rules(
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return [RuleResponse(**rule_to_dict(r)) for r in service.get_rules(current_user)]


@rules_router.post("", response_model=RuleWithMaterialization)
async def create_rule(
    data: RuleCreate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Create a recurring rule and materialize its upcoming appointments"""
    rule, result = service.create_rule(data, current_user)
    return RuleWithMaterialization(rule=RuleResponse(**rule_to_dict(rule)), materialize=result)


@rules_router.post("/materialize", response_model=OwnerMaterializeResult)
async def materialize_all_rules(
    windowDays: Optional[int] = Query(None, ge=1, le=730),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Materialize every active rule of the current user"""
    return service.materialize_all(current_user, windowDays)


@rules_router.patch("/{rule_id}", response_model=RuleWithMaterialization)
async def update_rule(
    rule_id: int,
    data: RuleUpdate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    rule, result = service.update_rule(rule_id, data, current_user)
    return RuleWithMaterialization(rule=RuleResponse(**rule_to_dict(rule)), materialize=result)


@rules_router.delete("/{rule_id}")
async def deactivate_rule(
    rule_id: int,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Deactivate a rule (history is kept)"""
    return service.deactivate_rule(rule_id, current_user)


@rules_router.post("/{rule_id}/materialize", response_model=RuleMaterializeResult)
async def materialize_rule(
    rule_id: int,
    windowDays: Optional[int] = Query(None, ge=1, le=730),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.materialize_by_id(rule_id, current_user, windowDays)


# ============================================================================
# APPOINTMENTS
# ============================================================================


@router.get("", response_model=list[AppointmentResponse])
async def get_appointments(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    status: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointments = service.get_appointments(current_user, start, end, status)
    return [AppointmentResponse(**appointment_to_dict(a)) for a in appointments]


@router.post("", response_model=AppointmentCreateResponse)
async def create_appointment(
    data: AppointmentCreate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment, conflicts = service.create_appointment(data, current_user)
    return AppointmentCreateResponse(
        **appointment_to_dict(appointment),
        conflicts=[AppointmentResponse(**appointment_to_dict(a)) for a in conflicts],
    )


@router.get("/conflicts", response_model=list[AppointmentResponse])
async def get_conflicts(
    day: date = Query(..., alias="date"),
    time: str = Query(...),
    excludeId: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Appointments whose one-hour slot overlaps the given date and time"""
    try:
        time = validate_time_hhmm(time)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    conflicts = find_conflicts(db, current_user.id, day, time, exclude_id=excludeId)
    return [AppointmentResponse(**appointment_to_dict(a)) for a in conflicts]


@router.post("/complete-past", response_model=CompletePastResult)
async def complete_past_appointments(
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Mark past scheduled appointments as completed"""
    return service.complete_past(current_user)


@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    data: AppointmentStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.update_status(appointment_id, data.status, current_user)
    return AppointmentResponse(**appointment_to_dict(appointment))
