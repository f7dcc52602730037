"""Report router - FastAPI endpoints for dashboard aggregates"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .projection import compute_monthly_series
from .schemas import MonthlySeriesResponse

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/monthly-series", response_model=MonthlySeriesResponse)
async def get_monthly_series(
    monthsBack: int = Query(3, ge=0, le=24),
    monthsForward: int = Query(3, ge=0, le=24),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Realized vs. scheduled totals for past, current and upcoming months"""
    return compute_monthly_series(db, current_user, monthsBack, monthsForward)
