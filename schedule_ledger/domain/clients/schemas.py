"""Client domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import normalize_weekdays, validate_time_hhmm, validate_timezone
from ..recurrence.schemas import MaterializeResult, RuleResponse


class ClientCreate(BaseModel):
    """Schema for creating a new client"""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Client name is required")
        return v


class ClientUpdate(BaseModel):
    """Schema for updating an existing client"""

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


class RecurringClientCreate(ClientCreate):
    """A new client together with its weekly recurring rule"""

    title: Optional[str] = None
    weekdays: list[int]
    timeLocal: str
    timezone: Optional[str] = None
    startDate: date
    endDate: Optional[date] = None
    intervalWeeks: int = Field(default=1, ge=1, le=52)
    amount: float = Field(ge=0)

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, v):
        normalized = normalize_weekdays(v)
        if not normalized:
            raise ValueError("At least one weekday (0-6 or 1-7) is required")
        return normalized

    @field_validator("timeLocal")
    @classmethod
    def validate_time(cls, v):
        return validate_time_hhmm(v)

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)


class ClientResponse(BaseModel):
    """Schema for client response"""

    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    isRecurring: bool = False
    created_at: Optional[datetime] = None


class RecurringClientResponse(BaseModel):
    client: ClientResponse
    rule: RuleResponse
    materialize: MaterializeResult
