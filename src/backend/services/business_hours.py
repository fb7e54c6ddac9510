"""
Business hours validation for campaigns that only pay out while a venue is open.
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from pydantic import BaseModel

from core.config import get_settings
from schemas.campaign import BusinessHours

logger = structlog.get_logger(__name__)

DEFAULT_BUSINESS_HOURS: list[BusinessHours] = [
    BusinessHours(day_of_week=0, open_time="10:00", close_time="20:00"),
    BusinessHours(day_of_week=1, open_time="08:00", close_time="22:00"),
    BusinessHours(day_of_week=2, open_time="08:00", close_time="22:00"),
    BusinessHours(day_of_week=3, open_time="08:00", close_time="22:00"),
    BusinessHours(day_of_week=4, open_time="08:00", close_time="22:00"),
    BusinessHours(day_of_week=5, open_time="08:00", close_time="23:00"),
    BusinessHours(day_of_week=6, open_time="09:00", close_time="23:00"),
]


class BusinessHoursCheck(BaseModel):
    """Result of a business hours check."""

    valid: bool
    message: Optional[str] = None


def _resolve_timezone(name: Optional[str], fallback: str) -> ZoneInfo:
    if not name:
        return ZoneInfo(fallback)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_campaign_timezone", timezone=name, fallback=fallback)
        return ZoneInfo(fallback)


def is_within_business_hours(
    timestamp_ms: int,
    hours: Optional[list[BusinessHours]] = None,
    tz_name: Optional[str] = None,
    default_tz: Optional[str] = None,
) -> BusinessHoursCheck:
    """
    Check whether a timestamp falls inside the venue's opening window.

    The weekday (0 = Sunday) and the "HH:MM" wall-clock string are both taken
    in the campaign's timezone. A missing or unknown timezone falls back to
    `default_tz`, or to the configured DEFAULT_TIMEZONE when that is omitted.
    Times compare lexicographically, so a window may not span midnight.
    """
    hours = hours or DEFAULT_BUSINESS_HOURS
    tz = _resolve_timezone(tz_name, default_tz or get_settings().DEFAULT_TIMEZONE)

    try:
        local = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).astimezone(tz)
    except (OverflowError, OSError, ValueError):
        return BusinessHoursCheck(valid=False, message="Invalid client timestamp")

    # isoweekday: Monday=1 .. Sunday=7
    day_of_week = local.isoweekday() % 7

    today = next((h for h in hours if h.day_of_week == day_of_week), None)
    if today is None:
        return BusinessHoursCheck(valid=False, message="Business closed today")

    time_str = local.strftime("%H:%M")
    if time_str < today.open_time or time_str > today.close_time:
        return BusinessHoursCheck(
            valid=False,
            message=f"Business hours are {today.open_time} - {today.close_time}",
        )

    return BusinessHoursCheck(valid=True)
