"""
Time rules for attendance.
Whole-minute differences, company-local clock and date-range bounds.

All instants handled by the engine are naive datetimes in the company-local
reference (TZ_DEFAULT). Aware datetimes coming from clients are converted once
at the edge with to_local_naive.
"""
import math
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

import pytz

from ..config import settings

ONE_MINUTE = timedelta(minutes=1)
MINUTES_PER_DAY = 24 * 60


def local_now(timezone_str: Optional[str] = None) -> datetime:
    """Current wall-clock time in the company timezone (naive)."""
    tz = pytz.timezone(timezone_str or settings.tz_default)
    return datetime.now(tz).replace(tzinfo=None)


def to_local_naive(dt: datetime, timezone_str: Optional[str] = None) -> datetime:
    """
    Convert an instant to naive company-local time.
    Naive input is assumed to already be company-local.
    """
    if dt.tzinfo is None:
        return dt
    tz = pytz.timezone(timezone_str or settings.tz_default)
    return dt.astimezone(tz).replace(tzinfo=None)


def whole_minutes(later: datetime, earlier: datetime) -> int:
    """floor((later - earlier) / 1 minute); negative when later < earlier."""
    return (later - earlier) // ONE_MINUTE


def minutes_late(shift_start: datetime, clock_in: datetime) -> int:
    return max(0, whole_minutes(clock_in, shift_start))


def minutes_early(shift_end: datetime, clock_out: datetime) -> int:
    return max(0, whole_minutes(shift_end, clock_out))


def day_bounds(start_date: date, end_date: date) -> Tuple[datetime, datetime]:
    """Inclusive [start-of-day, end-of-day] window for a date range."""
    return datetime.combine(start_date, time.min), datetime.combine(end_date, time.max)


def shift_minutes_by_time_of_day(start: datetime, end: datetime) -> int:
    """
    Scheduled duration from the time-of-day parts of a shift window.
    An end earlier than the start is an overnight shift.
    """
    start_min = start.hour * 60 + start.minute
    end_min = end.hour * 60 + end.minute
    diff = end_min - start_min
    if diff < 0:
        diff += MINUTES_PER_DAY
    return diff


def round_half_up(value: float) -> int:
    """Round .5 away from zero for the non-negative values reports produce."""
    return int(math.floor(value + 0.5))
