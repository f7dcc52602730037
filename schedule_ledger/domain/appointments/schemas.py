"""Appointment domain schemas - Pydantic models for validation"""

from datetime import date
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from ...models import APPOINTMENT_STATUSES
from ...shared.validators import validate_time_hhmm


class AppointmentCreate(BaseModel):
    """Schema for creating a manual appointment"""

    clientId: int
    # Older clients still send `ruleId`
    recurringRuleId: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("recurringRuleId", "ruleId")
    )
    title: Optional[str] = None
    date: date
    time: Optional[str] = None
    amount: float = Field(default=0, ge=0)
    notes: Optional[str] = None

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        return validate_time_hhmm(v)


class AppointmentStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        v = (v or "").strip().lower()
        if v not in APPOINTMENT_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(APPOINTMENT_STATUSES)}")
        return v


class AppointmentResponse(BaseModel):
    id: int
    clientId: int
    recurringRuleId: Optional[int] = None
    title: Optional[str] = None
    date: date
    time: Optional[str] = None
    amount: float
    status: str
    notes: Optional[str] = None


class CompletePastResult(BaseModel):
    completed: int
    before: date


class AppointmentCreateResponse(AppointmentResponse):
    """The new appointment plus any same-owner appointments its slot overlaps"""

    conflicts: list[AppointmentResponse] = []
