from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from bebeknock.rollups import (
    diaper_average,
    diaper_daily,
    diaper_details,
    feeding_average,
    feeding_daily,
    medicine_details,
    sleep_daily,
)
from bebeknock.schemas import (
    ActivityType,
    DiaperDetails,
    DiaperType,
    FeedingDetails,
    FeedingType,
    MedicineDetails,
    SleepDetails,
    SleepType,
    StoolCondition,
)

from .helpers import make_event

SEOUL = ZoneInfo("Asia/Seoul")


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 6, day, hour, minute, tzinfo=SEOUL)


def test_both_diaper_counts_as_pee_and_poop() -> None:
    diapers = [
        make_event(ActivityType.DIAPER, _at(15, 9), DiaperDetails(diaper_type=DiaperType.BOTH)),
        make_event(ActivityType.DIAPER, _at(15, 12), DiaperDetails(diaper_type=DiaperType.URINE)),
    ]
    day = diaper_daily(diapers, SEOUL)["24-06-15"]
    assert day.events == 2
    assert day.pee == 2
    assert day.poop == 1


def test_partial_events_count_without_totals() -> None:
    feedings = [
        make_event(ActivityType.FEEDING, _at(15, 8), FeedingDetails(feeding_type=FeedingType.FORMULA, amount_ml=120)),
        make_event(ActivityType.FEEDING, _at(15, 11), FeedingDetails(feeding_type=FeedingType.FORMULA)),
        make_event(ActivityType.FEEDING, _at(15, 14), FeedingDetails()),
    ]
    day = feeding_daily(feedings, SEOUL)["24-06-15"]
    assert day.count == 3
    assert day.amount == 120
    assert day.formula_count == 3

    sleeps = [
        make_event(ActivityType.SLEEP, _at(15, 13), SleepDetails(sleep_type=SleepType.NAP), end=_at(15, 14, 30)),
        make_event(ActivityType.SLEEP, _at(15, 20), SleepDetails(sleep_type=SleepType.NIGHT)),
    ]
    sleep = sleep_daily(sleeps, SEOUL)["24-06-15"]
    assert sleep.count == 2
    assert sleep.total_minutes == 90
    assert sleep.nap_minutes == 90
    assert sleep.night_minutes == 0


def test_breast_feeds_track_minutes_not_amount() -> None:
    feedings = [
        make_event(
            ActivityType.FEEDING,
            _at(15, 6),
            FeedingDetails(feeding_type=FeedingType.BREAST, duration_minutes=15),
        ),
    ]
    day = feeding_daily(feedings, SEOUL)["24-06-15"]
    assert (day.breast_count, day.breast_minutes, day.amount) == (1, 15, 0)


def test_days_follow_local_calendar() -> None:
    late_utc = datetime(2024, 6, 14, 16, 30, tzinfo=timezone.utc)
    diapers = [make_event(ActivityType.DIAPER, late_utc, DiaperDetails(diaper_type=DiaperType.STOOL))]
    assert list(diaper_daily(diapers, SEOUL)) == ["24-06-15"]
    assert list(diaper_daily(diapers, timezone.utc)) == ["24-06-14"]


def test_averages_leave_out_today() -> None:
    feedings = [
        make_event(ActivityType.FEEDING, _at(13, 9), FeedingDetails(feeding_type=FeedingType.FORMULA, amount_ml=100)),
        make_event(ActivityType.FEEDING, _at(14, 9), FeedingDetails(feeding_type=FeedingType.FORMULA, amount_ml=100)),
        make_event(ActivityType.FEEDING, _at(14, 12), FeedingDetails(feeding_type=FeedingType.FORMULA, amount_ml=50)),
        make_event(ActivityType.FEEDING, _at(15, 9), FeedingDetails(feeding_type=FeedingType.FORMULA, amount_ml=500)),
    ]
    average = feeding_average(feedings, "24-06-15", SEOUL)
    assert average.dates == ["24-06-14", "24-06-13"]
    assert average.avg_count == 1.5
    assert average.avg_amount == 125

    only_today = [make_event(ActivityType.DIAPER, _at(15, 9), DiaperDetails(diaper_type=DiaperType.URINE))]
    assert diaper_average(only_today, "24-06-15", SEOUL) is None


def test_detail_listings() -> None:
    diapers = [
        make_event(
            ActivityType.DIAPER,
            _at(15, 9, 5),
            DiaperDetails(diaper_type=DiaperType.BOTH, stool_condition=StoolCondition.SOFT),
            note="발진 조금",
        ),
    ]
    detail = diaper_details(diapers, SEOUL)["24-06-15"]
    assert [entry.time for entry in detail.poops] == ["09:05"]
    assert detail.poops[0].condition == StoolCondition.SOFT
    assert len(detail.pees) == 1

    start = _at(15, 8)
    medicines = [
        make_event(ActivityType.MEDICINE, start, MedicineDetails(name="챔프", amount="5", unit="ml")),
        make_event(ActivityType.MEDICINE, start + timedelta(hours=6), MedicineDetails(name="챔프", amount="4", unit="ml")),
        make_event(ActivityType.MEDICINE, start + timedelta(hours=1), MedicineDetails()),
    ]
    per_name = medicine_details(medicines, SEOUL)["24-06-15"]
    assert list(per_name) == ["챔프", "약품"]
    assert [entry.value for entry in per_name["챔프"]] == ["5ml", "4ml"]
