"""Recurrence schemas - Pydantic models for rules and descriptors"""

from datetime import date
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import normalize_weekdays, validate_time_hhmm, validate_timezone
from .expander import (
    DailyRecurrence,
    MonthlyRecurrence,
    RecurrenceDescriptor,
    WeeklyRecurrence,
)


class DailyRecurrenceIn(BaseModel):
    kind: Literal["daily"] = "daily"
    startDate: Optional[date] = None
    endDate: Optional[date] = None

    def to_descriptor(self, default_start: date) -> RecurrenceDescriptor:
        return DailyRecurrence(start_date=self.startDate or default_start, end_date=self.endDate)


class WeeklyRecurrenceIn(BaseModel):
    kind: Literal["weekly"] = "weekly"
    weekdays: list[int]
    intervalWeeks: int = Field(default=1, ge=1, le=52)
    startDate: Optional[date] = None
    endDate: Optional[date] = None

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, v):
        normalized = normalize_weekdays(v)
        if not normalized:
            raise ValueError("At least one weekday (0-6 or 1-7) is required")
        return normalized

    def to_descriptor(self, default_start: date) -> RecurrenceDescriptor:
        return WeeklyRecurrence(
            weekdays=frozenset(self.weekdays),
            start_date=self.startDate or default_start,
            interval_weeks=self.intervalWeeks,
            end_date=self.endDate,
        )


class MonthlyRecurrenceIn(BaseModel):
    kind: Literal["monthly"] = "monthly"
    dayOfMonth: int = Field(ge=1, le=31)
    intervalMonths: int = Field(default=1, ge=1, le=12)
    startDate: Optional[date] = None
    endDate: Optional[date] = None

    def to_descriptor(self, default_start: date) -> RecurrenceDescriptor:
        return MonthlyRecurrence(
            day_of_month=self.dayOfMonth,
            start_date=self.startDate or default_start,
            interval_months=self.intervalMonths,
            end_date=self.endDate,
        )


RecurrenceIn = Annotated[
    Union[DailyRecurrenceIn, WeeklyRecurrenceIn, MonthlyRecurrenceIn],
    Field(discriminator="kind"),
]


class RecurrencePayload(BaseModel):
    """Wrapper used to parse the JSON stored on expense/revenue rows"""

    recurrence: RecurrenceIn


def descriptor_from_json(payload: dict, default_start: date) -> RecurrenceDescriptor:
    """Parse a stored recurrence payload into a descriptor (raises pydantic.ValidationError)"""
    parsed = RecurrencePayload.model_validate({"recurrence": payload})
    return parsed.recurrence.to_descriptor(default_start)


class RuleCreate(BaseModel):
    """Schema for creating a recurring appointment rule"""

    clientId: int
    title: Optional[str] = None
    weekdays: list[int]
    timeLocal: str
    timezone: Optional[str] = None
    startDate: date
    endDate: Optional[date] = None
    intervalWeeks: int = 1
    amount: float = Field(ge=0)

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, v):
        return normalize_weekdays(v)

    @field_validator("timeLocal")
    @classmethod
    def validate_time(cls, v):
        return validate_time_hhmm(v)

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)


class RuleUpdate(BaseModel):
    """Schema for updating a recurring appointment rule"""

    title: Optional[str] = None
    weekdays: Optional[list[int]] = None
    timeLocal: Optional[str] = None
    timezone: Optional[str] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    intervalWeeks: Optional[int] = None
    amount: Optional[float] = Field(default=None, ge=0)

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, v):
        if v is None:
            return v
        return normalize_weekdays(v)

    @field_validator("timeLocal")
    @classmethod
    def validate_time(cls, v):
        return validate_time_hhmm(v)

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)


class RuleResponse(BaseModel):
    id: int
    clientId: Optional[int]
    title: str
    weekdays: list[int]
    timeLocal: str
    timezone: str
    startDate: date
    endDate: Optional[date]
    intervalWeeks: int
    amount: float
    active: bool


class MaterializeResult(BaseModel):
    created: int = 0
    updated: int = 0
    skipped: int = 0
    removed: int = 0
    windowDays: int = 0
    until: Optional[date] = None
    warnings: list[str] = []


class RuleMaterializeResult(MaterializeResult):
    ruleId: int


class OwnerMaterializeResult(BaseModel):
    results: list[RuleMaterializeResult]
    totalRules: int
    warnings: list[str] = []


class RuleWithMaterialization(BaseModel):
    rule: RuleResponse
    materialize: MaterializeResult
