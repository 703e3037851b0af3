"""Reference ranges for growth, feeding, sleep and fever medicine.

Growth bands are a simplified copy of the KCDC 2017 Korean growth chart.
Dosages follow the usual per-kg ranges printed on children's syrups. Every
value here is for display only; nothing downstream makes decisions on it.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel

from .utils import round_half_up

DOSAGE_DISCLAIMER = "⚠️ 본 계산은 일반 참고용이며, 실제 투약 전 반드시 의사/약사와 상담하세요."

# kg by gender and month age
KCDC_WEIGHT_CHARTS: Dict[str, Dict[int, Dict[str, float]]] = {
    "male": {
        0: {"p3": 2.5, "p15": 2.9, "p50": 3.3, "p85": 3.7, "p97": 4.2},
        3: {"p3": 5.0, "p15": 5.7, "p50": 6.4, "p85": 7.2, "p97": 7.9},
        6: {"p3": 6.4, "p15": 7.3, "p50": 8.0, "p85": 8.8, "p97": 9.6},
        12: {"p3": 7.7, "p15": 8.6, "p50": 9.6, "p85": 10.8, "p97": 11.8},
    },
    "female": {
        0: {"p3": 2.4, "p15": 2.8, "p50": 3.2, "p85": 3.7, "p97": 4.0},
        3: {"p3": 4.5, "p15": 5.2, "p50": 5.8, "p85": 6.6, "p97": 7.2},
        6: {"p3": 5.8, "p15": 6.5, "p50": 7.3, "p85": 8.2, "p97": 9.0},
        12: {"p3": 7.0, "p15": 7.9, "p50": 8.9, "p85": 10.1, "p97": 11.2},
    },
}

PERCENTILE_BANDS = [
    ("p3", 3, "하위 3%"),
    ("p15", 15, "하위 15%"),
    ("p50", 35, "평균 이하"),
    ("p85", 65, "평균 이상"),
    ("p97", 95, "상위 15%"),
]

# (max month age inclusive, total sleep, naps)
SLEEP_BANDS = [
    (3, "14-17시간", "3-5회"),
    (11, "12-15시간", "2-3회"),
    (24, "11-14시간", "1-2회"),
]
SLEEP_FALLBACK = ("10-13시간", "1회")


class MedicineFamily(str, Enum):
    IBUPROFEN = "ibuprofen"
    ACETAMINOPHEN = "acetaminophen"
    DEXIBUPROFEN = "dexibuprofen"


# mg/kg: recommended single, max single, max daily
MG_PER_KG = {
    MedicineFamily.IBUPROFEN: (7.5, 10.0, 40.0),
    MedicineFamily.ACETAMINOPHEN: (12.5, 15.0, 75.0),
}

DEXIBUPROFEN_ML_PER_KG = (0.4, 0.6)
DEXIBUPROFEN_DOSES_PER_DAY = 4

# dexibuprofen first: its product names also contain "부프로펜"
MEDICINE_KEYWORDS = [
    (MedicineFamily.DEXIBUPROFEN, ("덱시", "맥시", "애니펜", "dexibuprofen")),
    (MedicineFamily.IBUPROFEN, ("이부프로펜", "부루펜", "챔프파랑", "ibuprofen")),
    (MedicineFamily.ACETAMINOPHEN, ("아세트아미노펜", "타이레놀", "챔프빨강", "세토펜", "acetaminophen", "tylenol")),
]


class WeightPercentile(BaseModel):
    percentile: int
    label: str


class Range(BaseModel):
    min: int
    max: int


class FeedingGuideline(BaseModel):
    daily: Range
    per_feeding: Range


class SleepGuideline(BaseModel):
    total: str
    naps: str


class MedicineDosage(BaseModel):
    family: MedicineFamily
    recommended_ml: float
    max_single_ml: float
    max_daily_ml: float
    dose_label: str
    disclaimer: str = DOSAGE_DISCLAIMER


class MissingConcentration(BaseModel):
    """The syrup strength is needed before a ml dose can be shown."""

    family: MedicineFamily
    missing_concentration: bool = True
    message: str = "시럽 농도(mg/ml)를 입력하면 권장 용량을 계산할 수 있어요."
    disclaimer: str = DOSAGE_DISCLAIMER


MedicineGuideline = Union[MedicineDosage, MissingConcentration]


def get_weight_percentile(weight: float, age_in_months: int, gender: Optional[str]) -> WeightPercentile:
    chart = KCDC_WEIGHT_CHARTS.get((gender or "").lower(), {})
    bands = chart.get(age_in_months)
    if not bands:
        return WeightPercentile(percentile=50, label="평균")
    for key, percentile, label in PERCENTILE_BANDS:
        if weight < bands[key]:
            return WeightPercentile(percentile=percentile, label=label)
    return WeightPercentile(percentile=97, label="상위 3%")


def get_feeding_guideline(weight: float) -> FeedingGuideline:
    daily_min = weight * 100
    daily_max = weight * 150
    return FeedingGuideline(
        daily=Range(min=round_half_up(daily_min), max=round_half_up(daily_max)),
        per_feeding=Range(min=round_half_up(daily_min / 8), max=round_half_up(daily_max / 6)),
    )


def get_sleep_guideline(age_in_months: int) -> SleepGuideline:
    for upper, total, naps in SLEEP_BANDS:
        if age_in_months <= upper:
            return SleepGuideline(total=total, naps=naps)
    total, naps = SLEEP_FALLBACK
    return SleepGuideline(total=total, naps=naps)


def _concentration_dosage(
    family: MedicineFamily, weight: float, concentration: Optional[float]
) -> MedicineGuideline:
    if concentration is None or concentration <= 0:
        return MissingConcentration(family=family)
    recommended, max_single, max_daily = (weight * mg / concentration for mg in MG_PER_KG[family])
    recommended_ml = round_half_up(recommended, 1)
    return MedicineDosage(
        family=family,
        recommended_ml=recommended_ml,
        max_single_ml=round_half_up(max_single, 1),
        max_daily_ml=round_half_up(max_daily, 1),
        dose_label=f"{recommended_ml:.1f}ml",
    )


def get_ibuprofen_guideline(weight: float, concentration: Optional[float]) -> MedicineGuideline:
    return _concentration_dosage(MedicineFamily.IBUPROFEN, weight, concentration)


def get_acetaminophen_guideline(weight: float, concentration: Optional[float]) -> MedicineGuideline:
    return _concentration_dosage(MedicineFamily.ACETAMINOPHEN, weight, concentration)


def get_dexibuprofen_guideline(weight: float) -> MedicineDosage:
    low, high = (weight * ml for ml in DEXIBUPROFEN_ML_PER_KG)
    max_single = round_half_up(high, 1)
    return MedicineDosage(
        family=MedicineFamily.DEXIBUPROFEN,
        recommended_ml=round_half_up(low, 1),
        max_single_ml=max_single,
        max_daily_ml=round_half_up(max_single * DEXIBUPROFEN_DOSES_PER_DAY, 1),
        dose_label=f"{low:.1f} ~ {high:.1f}ml",
    )


def resolve_medicine_family(name: Optional[str]) -> Optional[MedicineFamily]:
    """Map a product or ingredient name to its drug family, if recognised."""
    if not name:
        return None
    normalized = "".join(name.split()).lower()
    for family, keywords in MEDICINE_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return family
    return None


def get_medicine_guideline(
    name: Optional[str], weight: float, concentration: Optional[float] = None
) -> Optional[MedicineGuideline]:
    family = resolve_medicine_family(name)
    if family is MedicineFamily.DEXIBUPROFEN:
        return get_dexibuprofen_guideline(weight)
    if family is None:
        return None
    return _concentration_dosage(family, weight, concentration)


def calculate_month_age(birth_date: datetime, reference: datetime) -> int:
    months = (reference.year - birth_date.year) * 12 + (reference.month - birth_date.month)
    if reference.day < birth_date.day:
        months -= 1
    return max(months, 0)
