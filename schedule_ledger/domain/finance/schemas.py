"""Finance domain schemas - Pydantic models for validation"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..recurrence.schemas import RecurrenceIn


class SourceRecordCreate(BaseModel):
    """Schema for creating an expense or revenue"""

    amount: float = Field(ge=0)
    description: str
    categoryTag: Optional[str] = None
    competenceDate: date
    isRecurring: bool = False
    isFixedType: bool = False
    recurrence: Optional[RecurrenceIn] = None
    # Revenues only
    paymentMethod: Optional[str] = None

    @field_validator("description")
    @classmethod
    def validate_description(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Description is required")
        return v

    @model_validator(mode="after")
    def validate_recurrence(self):
        if self.isRecurring and self.recurrence is None:
            raise ValueError("Recurring records need a recurrence descriptor")
        return self


class SourceRecordUpdate(BaseModel):
    """Schema for updating an expense or revenue (explicit null clears recurrence)"""

    amount: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    categoryTag: Optional[str] = None
    competenceDate: Optional[date] = None
    isRecurring: Optional[bool] = None
    isFixedType: Optional[bool] = None
    recurrence: Optional[RecurrenceIn] = None
    paymentMethod: Optional[str] = None

    @field_validator("description")
    @classmethod
    def validate_description(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Description cannot be empty")
        return v


class SourceRecordResponse(BaseModel):
    id: int
    kind: str
    amount: float
    description: str
    categoryTag: Optional[str] = None
    competenceDate: date
    isRecurring: bool
    isFixedType: bool
    recurrence: Optional[dict] = None
    paymentMethod: Optional[str] = None


class FinanceMaterializeResult(BaseModel):
    created: int = 0
    updated: int = 0
    skipped: int = 0
    removed: int = 0
    windowDays: int = 0
    warnings: list[str] = []


class ReconcileResult(BaseModel):
    deletedCount: int = 0
    duplicatesRemoved: int = 0
    skipped: bool = False


class SourceRecordWriteResponse(BaseModel):
    record: SourceRecordResponse
    materialize: Optional[FinanceMaterializeResult] = None
    reconcile: Optional[ReconcileResult] = None


class EntryResponse(BaseModel):
    id: int
    kind: str
    status: str
    amount: float
    dueDate: date
    note: Optional[str] = None
