"""Per-day reductions of raw activity events.

Every extractor keys its output by local calendar day (``yy-mm-dd``) and is
tolerant of partially filled events: a record missing the fields needed for
a total is still counted, it just adds nothing to that total.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Dict, List, Optional

from .schemas import (
    ActivityEvent,
    DiaperType,
    FeedingType,
    Measurement,
    SleepType,
    StoolCondition,
)
from .utils import clock_time, day_key, minutes_between, round_half_up


@dataclass
class FeedingDay:
    count: int = 0
    amount: int = 0
    duration: int = 0
    breast_count: int = 0
    breast_minutes: int = 0
    formula_count: int = 0
    formula_amount: int = 0


@dataclass
class SleepDay:
    count: int = 0
    total_minutes: int = 0
    night_minutes: int = 0
    nap_minutes: int = 0


@dataclass
class DiaperDay:
    events: int = 0
    pee: int = 0
    poop: int = 0


@dataclass
class FeedingAverage:
    avg_count: float
    avg_amount: int
    dates: List[str]


@dataclass
class SleepAverage:
    avg_night_minutes: float
    avg_nap_minutes: float
    dates: List[str]


@dataclass
class DiaperAverage:
    avg_pee: float
    avg_poop: float
    dates: List[str]


@dataclass
class BreastFeedEntry:
    time: str
    side: Optional[str]
    minutes: int
    note: Optional[str] = None


@dataclass
class BottleFeedEntry:
    time: str
    amount: int
    note: Optional[str] = None


@dataclass
class FeedingDetail:
    breast: List[BreastFeedEntry] = field(default_factory=list)
    bottle: List[BottleFeedEntry] = field(default_factory=list)


@dataclass
class SleepSpan:
    start: str
    end: str
    note: Optional[str] = None


@dataclass
class SleepDetail:
    naps: List[SleepSpan] = field(default_factory=list)
    nights: List[SleepSpan] = field(default_factory=list)


@dataclass
class DiaperEntry:
    time: str
    condition: Optional[StoolCondition] = None
    note: Optional[str] = None


@dataclass
class DiaperDetail:
    poops: List[DiaperEntry] = field(default_factory=list)
    pees: List[DiaperEntry] = field(default_factory=list)


@dataclass
class ReadingEntry:
    time: str
    value: str
    note: Optional[str] = None


def _is_breast(event: ActivityEvent) -> bool:
    return getattr(event.details, "feeding_type", None) == FeedingType.BREAST


def _is_nap(event: ActivityEvent) -> bool:
    return getattr(event.details, "sleep_type", None) == SleepType.NAP


def _sleep_minutes(event: ActivityEvent) -> int:
    if event.end_time is None:
        return 0
    return minutes_between(event.start_time, event.end_time)


def feeding_daily(feedings: List[ActivityEvent], tz: Optional[tzinfo] = None) -> Dict[str, FeedingDay]:
    days: Dict[str, FeedingDay] = {}
    for event in feedings:
        day = days.setdefault(day_key(event.start_time, tz), FeedingDay())
        day.count += 1
        if _is_breast(event):
            minutes = getattr(event.details, "duration_minutes", None) or 0
            day.breast_count += 1
            day.breast_minutes += minutes
            day.duration += minutes
        else:
            amount = getattr(event.details, "amount_ml", None) or 0
            day.formula_count += 1
            day.formula_amount += amount
            day.amount += amount
    return days


def sleep_daily(sleeps: List[ActivityEvent], tz: Optional[tzinfo] = None) -> Dict[str, SleepDay]:
    days: Dict[str, SleepDay] = {}
    for event in sleeps:
        day = days.setdefault(day_key(event.start_time, tz), SleepDay())
        day.count += 1
        minutes = _sleep_minutes(event)
        day.total_minutes += minutes
        if _is_nap(event):
            day.nap_minutes += minutes
        else:
            day.night_minutes += minutes
    return days


def diaper_daily(diapers: List[ActivityEvent], tz: Optional[tzinfo] = None) -> Dict[str, DiaperDay]:
    days: Dict[str, DiaperDay] = {}
    for event in diapers:
        day = days.setdefault(day_key(event.start_time, tz), DiaperDay())
        day.events += 1
        diaper_type = getattr(event.details, "diaper_type", None)
        if diaper_type in (DiaperType.URINE, DiaperType.BOTH):
            day.pee += 1
        if diaper_type in (DiaperType.STOOL, DiaperType.BOTH):
            day.poop += 1
    return days


def _past_days(keys, today: str) -> List[str]:
    return sorted((key for key in keys if key != today), reverse=True)


def feeding_average(
    feedings: List[ActivityEvent], today: str, tz: Optional[tzinfo] = None
) -> Optional[FeedingAverage]:
    """Daily averages over recorded days, leaving out the still-open current day."""
    days = feeding_daily(feedings, tz)
    past = _past_days(days, today)
    if not past:
        return None
    total_count = sum(days[key].count for key in past)
    total_amount = sum(days[key].amount for key in past)
    return FeedingAverage(
        avg_count=total_count / len(past),
        avg_amount=round_half_up(total_amount / len(past)),
        dates=past,
    )


def sleep_average(
    sleeps: List[ActivityEvent], today: str, tz: Optional[tzinfo] = None
) -> Optional[SleepAverage]:
    days = sleep_daily(sleeps, tz)
    past = _past_days(days, today)
    if not past:
        return None
    return SleepAverage(
        avg_night_minutes=sum(days[key].night_minutes for key in past) / len(past),
        avg_nap_minutes=sum(days[key].nap_minutes for key in past) / len(past),
        dates=past,
    )


def diaper_average(
    diapers: List[ActivityEvent], today: str, tz: Optional[tzinfo] = None
) -> Optional[DiaperAverage]:
    days = diaper_daily(diapers, tz)
    past = _past_days(days, today)
    if not past:
        return None
    return DiaperAverage(
        avg_pee=sum(days[key].pee for key in past) / len(past),
        avg_poop=sum(days[key].poop for key in past) / len(past),
        dates=past,
    )


def feeding_details(feedings: List[ActivityEvent], tz: Optional[tzinfo] = None) -> Dict[str, FeedingDetail]:
    days: Dict[str, FeedingDetail] = {}
    for event in feedings:
        detail = days.setdefault(day_key(event.start_time, tz), FeedingDetail())
        time = clock_time(event.start_time, tz)
        if _is_breast(event):
            side = getattr(event.details, "breast_side", None)
            detail.breast.append(
                BreastFeedEntry(
                    time=time,
                    side=side.value if side else None,
                    minutes=getattr(event.details, "duration_minutes", None) or 0,
                    note=event.note,
                )
            )
        else:
            detail.bottle.append(
                BottleFeedEntry(time=time, amount=getattr(event.details, "amount_ml", None) or 0, note=event.note)
            )
    return days


def sleep_details(sleeps: List[ActivityEvent], tz: Optional[tzinfo] = None) -> Dict[str, SleepDetail]:
    days: Dict[str, SleepDetail] = {}
    for event in sleeps:
        if event.end_time is None:
            continue
        detail = days.setdefault(day_key(event.start_time, tz), SleepDetail())
        span = SleepSpan(
            start=clock_time(event.start_time, tz),
            end=clock_time(event.end_time, tz),
            note=event.note,
        )
        (detail.naps if _is_nap(event) else detail.nights).append(span)
    return days


def diaper_details(diapers: List[ActivityEvent], tz: Optional[tzinfo] = None) -> Dict[str, DiaperDetail]:
    days: Dict[str, DiaperDetail] = {}
    for event in diapers:
        detail = days.setdefault(day_key(event.start_time, tz), DiaperDetail())
        time = clock_time(event.start_time, tz)
        diaper_type = getattr(event.details, "diaper_type", None)
        if diaper_type in (DiaperType.STOOL, DiaperType.BOTH):
            condition = getattr(event.details, "stool_condition", None)
            detail.poops.append(DiaperEntry(time=time, condition=condition, note=event.note))
        if diaper_type in (DiaperType.URINE, DiaperType.BOTH):
            detail.pees.append(DiaperEntry(time=time, note=event.note))
    return days


def _format_celsius(value: Optional[float]) -> str:
    return f"{value:g}°C" if value else "0°C"


def temperature_details(
    temperatures: List[ActivityEvent], tz: Optional[tzinfo] = None
) -> Dict[str, List[ReadingEntry]]:
    days: Dict[str, List[ReadingEntry]] = {}
    for event in temperatures:
        celsius = getattr(event.details, "celsius", None)
        days.setdefault(day_key(event.start_time, tz), []).append(
            ReadingEntry(time=clock_time(event.start_time, tz), value=_format_celsius(celsius), note=event.note)
        )
    return days


def medicine_details(
    medicines: List[ActivityEvent], tz: Optional[tzinfo] = None
) -> Dict[str, "OrderedDict[str, List[ReadingEntry]]"]:
    """Per day, doses grouped by medicine name in first-seen order."""
    days: Dict[str, OrderedDict] = {}
    for event in medicines:
        per_name = days.setdefault(day_key(event.start_time, tz), OrderedDict())
        name = getattr(event.details, "name", None) or "약품"
        dose = "".join(
            part for part in (getattr(event.details, "amount", None), getattr(event.details, "unit", None)) if part
        )
        per_name.setdefault(name, []).append(
            ReadingEntry(time=clock_time(event.start_time, tz), value=dose, note=event.note)
        )
    return days


def growth_details(
    measurements: List[Measurement], tz: Optional[tzinfo] = None
) -> Dict[str, List[ReadingEntry]]:
    days: Dict[str, List[ReadingEntry]] = {}
    for measurement in measurements:
        values = []
        if measurement.weight_kg:
            values.append(f"{measurement.weight_kg:g}kg")
        if measurement.height_cm:
            values.append(f"{measurement.height_cm:g}cm")
        days.setdefault(day_key(measurement.measured_at, tz), []).append(
            ReadingEntry(time=clock_time(measurement.measured_at, tz), value=", ".join(values))
        )
    return days
