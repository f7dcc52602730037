"""Report schemas - Pydantic models for monthly series"""

from pydantic import BaseModel


class MonthSummary(BaseModel):
    month: str  # YYYY-MM
    realized: float
    scheduled: float
    revenue: float
    expenses: float
    profit: float


class SeriesSummary(BaseModel):
    currentMonth: str
    currentRealized: float
    currentExpenses: float
    currentProfit: float
    averageRealized: float
    nextMonthProjection: float


class MonthlySeriesResponse(BaseModel):
    history: list[MonthSummary]
    projection: list[MonthSummary]
    summary: SeriesSummary
