"""Period-over-period activity summaries for the analytics dashboard."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple

from .activities import ActivityStore
from .rollups import diaper_daily, feeding_daily, sleep_daily
from .schemas import (
    ActivityBundle,
    ComparisonResult,
    PeriodComparison,
    PeriodStats,
    PeriodSummary,
    PeriodWindow,
    TrendType,
)
from .utils import round_half_up

logger = logging.getLogger(__name__)

CATEGORY_LABELS = {
    "feeding": "Feeding",
    "sleep": "Sleep",
    "diaper": "Diaper",
    "medicine": "Medicine",
}


def extract_period_stats(bundle: ActivityBundle, tz: Optional[tzinfo] = None) -> PeriodStats:
    feeding_days = feeding_daily(bundle.feedings, tz).values()
    feeding_count = sum(day.count for day in feeding_days)
    feeding_total = sum(day.amount for day in feeding_days)

    sleep_count = len(bundle.sleeps)
    sleep_minutes = sum(day.total_minutes for day in sleep_daily(bundle.sleeps, tz).values())

    diaper_days = diaper_daily(bundle.diapers, tz).values()

    return PeriodStats(
        feeding_count=feeding_count,
        feeding_avg_amount=round_half_up(feeding_total / feeding_count) if feeding_count else 0,
        sleep_count=sleep_count,
        sleep_avg_hours=round_half_up(sleep_minutes / sleep_count / 60, 1) if sleep_count else 0.0,
        diaper_count=len(bundle.diapers),
        stool_count=sum(day.poop for day in diaper_days),
        urine_count=sum(day.pee for day in diaper_days),
        medicine_count=len(bundle.medicines),
        temperature_count=len(bundle.temperatures),
    )


def compare_values(current: int, previous: int, label: str) -> ComparisonResult:
    """Classify the change between two counts; the checks run in this order."""
    diff = current - previous
    if previous == 0 and current > 0:
        trend, text = TrendType.FIRST_TIME, "First record this period"
    elif previous == 0 and current == 0:
        trend, text = TrendType.UNCHANGED, "No records in either period"
    elif current > previous:
        trend, text = TrendType.INCREASED, f"{abs(diff)} more than last period"
    elif current < previous:
        trend, text = TrendType.DECREASED, f"{abs(diff)} fewer than last period"
    else:
        trend, text = TrendType.UNCHANGED, "Similar to last period"
    return ComparisonResult(diff=diff, trend=trend, message=f"{label}: {text}")


def compute_period_windows(days: int, now: datetime) -> Tuple[PeriodWindow, PeriodWindow]:
    """Two adjacent, equally long windows; the current one ends tonight."""
    if days < 1:
        raise ValueError("days must be at least 1")
    tz = now.tzinfo
    today = now.date()
    current_start_day = today - timedelta(days=days - 1)
    previous_end_day = current_start_day - timedelta(days=1)
    previous_start_day = previous_end_day - timedelta(days=days - 1)
    current = PeriodWindow(
        start=datetime.combine(current_start_day, time.min, tzinfo=tz),
        end=datetime.combine(today, time.max, tzinfo=tz),
    )
    previous = PeriodWindow(
        start=datetime.combine(previous_start_day, time.min, tzinfo=tz),
        end=datetime.combine(previous_end_day, time.max, tzinfo=tz),
    )
    return current, previous


def compare_stats(current: PeriodStats, previous: PeriodStats) -> PeriodComparison:
    return PeriodComparison(
        feeding=compare_values(current.feeding_count, previous.feeding_count, CATEGORY_LABELS["feeding"]),
        sleep=compare_values(current.sleep_count, previous.sleep_count, CATEGORY_LABELS["sleep"]),
        diaper=compare_values(current.diaper_count, previous.diaper_count, CATEGORY_LABELS["diaper"]),
        medicine=compare_values(current.medicine_count, previous.medicine_count, CATEGORY_LABELS["medicine"]),
    )


async def calculate_period_summary(
    store: ActivityStore,
    child_id: int,
    days: int = 7,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> PeriodSummary:
    tz = tz or (now.tzinfo if now and now.tzinfo else timezone.utc)
    if now is None:
        now = datetime.now(tz)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    else:
        now = now.astimezone(tz)

    current_window, previous_window = compute_period_windows(days, now)
    current_bundle, previous_bundle = await asyncio.gather(
        asyncio.to_thread(store.fetch_bundle, child_id, current_window.start, current_window.end),
        asyncio.to_thread(store.fetch_bundle, child_id, previous_window.start, previous_window.end),
    )

    current = extract_period_stats(current_bundle, tz)
    previous = extract_period_stats(previous_bundle, tz)
    logger.info(
        "period summary computed",
        extra={
            "child_id": child_id,
            "days": days,
            "current_feedings": current.feeding_count,
            "previous_feedings": previous.feeding_count,
        },
    )
    return PeriodSummary(
        days=days,
        current_window=current_window,
        previous_window=previous_window,
        current=current,
        previous=previous,
        comparison=compare_stats(current, previous),
    )
