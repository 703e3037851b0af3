"""Small numeric and date helpers shared by the calculators."""
from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

Number = Union[int, float]


def round_half_up(value: Number, digits: int = 0) -> Number:
    """Round .5 away from zero (2.5 -> 3), unlike the built-in banker's rounding."""
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    if digits == 0:
        return int(rounded)
    return float(rounded)


def as_local(value: datetime, tz: Optional[tzinfo]) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz) if tz else value


def day_key(value: datetime, tz: Optional[tzinfo] = None) -> str:
    """Local calendar day as yy-mm-dd."""
    return as_local(value, tz).strftime("%y-%m-%d")


def clock_time(value: datetime, tz: Optional[tzinfo] = None) -> str:
    return as_local(value, tz).strftime("%H:%M")


def minutes_between(start: datetime, end: datetime) -> int:
    return round_half_up((end - start).total_seconds() / 60)
