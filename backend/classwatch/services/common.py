"""Small helpers shared by the monitoring services."""

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple


def to_utc(dt: Optional[datetime] = None) -> datetime:
    if dt is None:
        return datetime.now(timezone.utc)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def round_half_up(value: float, ndigits: int = 0):
    """Round halves away from zero for non-negative values (2.5 -> 3).

    Returns an int when ``ndigits`` is 0, otherwise a float.
    """
    factor = 10 ** ndigits
    rounded = math.floor(float(value) * factor + 0.5) / factor
    if ndigits == 0:
        return int(rounded)
    return rounded


def percentage(part: float, whole: float, default: int = 0) -> int:
    if whole <= 0:
        return default
    return round_half_up(part / whole * 100)


def name_from_email(email: str) -> str:
    return email.split("@", 1)[0]


def display_name(name: Optional[str], email: str) -> str:
    if name and name.strip():
        return name.strip()
    return name_from_email(email)


def period_bounds(period_start: date, period_end: date) -> Tuple[datetime, datetime]:
    """Half-open UTC datetime range covering both calendar dates inclusively."""
    start = datetime.combine(period_start, time.min, tzinfo=timezone.utc)
    end = datetime.combine(period_end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return start, end


def format_number(value: float) -> str:
    return f"{value:g}"
