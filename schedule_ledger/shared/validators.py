"""Shared validation utilities"""

import re
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TIME_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def validate_time_hhmm(value: Optional[str]) -> Optional[str]:
    """
    Validate a local time of day.

    Args:
        value: Time string such as "19:00"

    Returns:
        The same string

    Raises:
        ValueError: If the value is not a 24h HH:MM time
    """
    if value is None:
        return value
    value = value.strip()
    if not TIME_HHMM_RE.match(value):
        raise ValueError("Time must use the HH:MM format (e.g. 19:00)")
    return value


def validate_timezone(value: Optional[str]) -> Optional[str]:
    """Validate an IANA time zone name such as America/Sao_Paulo"""
    if not value:
        return value
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown time zone: {value}") from e
    return value


def normalize_weekdays(weekdays: Iterable[int]) -> list[int]:
    """
    Normalize weekdays to 0-6 with Sunday as 0.

    Accepts both 0-6 and 1-7 (where 7 is Sunday). Out-of-range values are
    dropped; the result is sorted and free of duplicates.
    """
    normalized = set()
    for day in weekdays or []:
        day = int(day)
        if day == 7:
            day = 0
        if 0 <= day <= 6:
            normalized.add(day)
    return sorted(normalized)
