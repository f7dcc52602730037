"""Owner-local calendar helpers"""

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import DEFAULT_TIMEZONE


def zone_for(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def owner_today(user, now: Optional[datetime] = None) -> date:
    """Calendar date in the owner's declared time zone"""
    tz = zone_for(getattr(user, "timezone", None))
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()
