"""Korean plain-text rendering of an activity bundle for the chat model."""
from __future__ import annotations

from datetime import datetime, tzinfo
from typing import List, Optional

from .rollups import (
    diaper_average,
    diaper_daily,
    diaper_details,
    feeding_average,
    feeding_daily,
    feeding_details,
    growth_details,
    medicine_details,
    sleep_average,
    sleep_daily,
    sleep_details,
    temperature_details,
)
from .schemas import ActivityBundle
from .utils import day_key, round_half_up

ENUM_LABELS = {
    "BREAST": "모유",
    "FORMULA": "분유",
    "PUMPED": "유축",
    "BOTTLE": "분유",
    "BABY_FOOD": "이유식",
    "LEFT": "왼쪽",
    "RIGHT": "오른쪽",
    "BOTH": "양쪽",
    "NIGHT": "밤잠",
    "NAP": "낮잠",
    "PEE": "소변",
    "URINE": "소변",
    "POOP": "대변",
    "STOOL": "대변",
    "NORMAL": "정상",
    "SOFT": "무름",
    "HARD": "딱딱",
    "WATERY": "설사",
}

RELATION_LABELS = {
    "mother": "엄마",
    "father": "아빠",
    "grandmother_maternal": "외할머니",
    "grandmother_paternal": "친할머니",
    "grandfather_maternal": "외할아버지",
    "grandfather_paternal": "친할아버지",
    "nanny": "돌봄이",
}


def translate_enum(value: Optional[str]) -> str:
    if not value:
        return "알 수 없음"
    return ENUM_LABELS.get(str(value).upper(), str(value))


def translate_relation(relation: Optional[str]) -> str:
    return RELATION_LABELS.get(relation or "", "보호자")


def format_minutes(minutes: float) -> str:
    """Render minutes as 1시간 30분, 2시간 or 45분."""
    if not minutes:
        return "0분"
    hours = int(minutes // 60)
    rest = round_half_up(minutes % 60)
    if hours and rest:
        return f"{hours}시간 {rest}분"
    if hours:
        return f"{hours}시간"
    return f"{rest}분"


def extract_day(key: str) -> str:
    parts = key.split("-")
    if len(parts) != 3:
        return key
    return f"{int(parts[2])}일"


def _with_note(text: str, note: Optional[str]) -> str:
    return f"{text}, {note}" if note else text


def format_header(days: int, data_dates: List[str], today: str) -> str:
    date_list = ", ".join(extract_day(key) for key in data_dates)
    return (
        "【단위】\n"
        "날짜: yy-mm-dd, 시간: hh:mm\n"
        "수유 - 모유: 분, 분유/이유식: ml\n"
        "수면: 시간(X시간 Y분)\n"
        "체온: °C\n"
        "투약: 용량 단위 포함 (예: 5ml, 1정)\n"
        "성장: 체중 kg, 신장 cm\n"
        "기타: 횟수는 '회', 일일 평균은 '회/일'\n"
        "\n"
        "【조회 정보】\n"
        f"기간: 최근 {days}일 조회 중 데이터 기록 일자는 {date_list}\n"
        f"종합 평균: 데이터 기록 일자 중 오늘({extract_day(today)})은 집계 중이므로 평균 계산에서 제외"
    )


def format_daily_summary(bundle: ActivityBundle, dates: List[str], tz: Optional[tzinfo] = None) -> str:
    lines = ["", "일일 종합"]

    feedings = feeding_daily(bundle.feedings, tz)
    if feedings:
        lines += ["", "[수유]"]
        for key in dates:
            day = feedings.get(key)
            if not day:
                continue
            lines.append(key)
            if day.breast_count:
                avg = round_half_up(day.breast_minutes / day.breast_count)
                lines.append(f"- 모유: 총 {day.breast_count}회, {day.breast_minutes}분 (평균 {avg}분/회)")
            if day.formula_count:
                avg = round_half_up(day.formula_amount / day.formula_count)
                lines.append(f"- 분유: 총 {day.formula_count}회, {day.formula_amount}ml (평균 {avg}ml/회)")

    sleeps = sleep_daily(bundle.sleeps, tz)
    if sleeps:
        lines += ["", "[수면]"]
        for key in dates:
            day = sleeps.get(key)
            if not day:
                continue
            lines.append(key)
            lines.append(
                f"- 총 {format_minutes(day.total_minutes)} "
                f"(밤잠 {format_minutes(day.night_minutes)}, 낮잠 {format_minutes(day.nap_minutes)})"
            )

    diapers = diaper_daily(bundle.diapers, tz)
    if diapers:
        lines += ["", "[기저귀]"]
        for key in dates:
            day = diapers.get(key)
            if not day:
                continue
            lines += [key, f"- 소변 {day.pee}회, 대변 {day.poop}회"]

    temperatures = temperature_details(bundle.temperatures, tz)
    if temperatures:
        lines += ["", "[체온]"]
        for key in dates:
            readings = temperatures.get(key)
            if not readings:
                continue
            lines += [key, f"- {len(readings)}회: {', '.join(item.value for item in readings)}"]

    medicines = medicine_details(bundle.medicines, tz)
    if medicines:
        lines += ["", "[투약]"]
        for key in dates:
            per_name = medicines.get(key)
            if not per_name:
                continue
            lines.append(key)
            for name, doses in per_name.items():
                lines.append(f"- {name}: {len(doses)}회 ({' + '.join(item.value for item in doses)})")

    return "\n".join(lines)


def format_average(bundle: ActivityBundle, today: str, tz: Optional[tzinfo] = None) -> str:
    lines = ["", "종합 평균"]

    feeding = feeding_average(bundle.feedings, today, tz)
    if feeding:
        lines += ["", "[수유]", f"평균 {feeding.avg_count:.1f}회/일, {feeding.avg_amount}ml/일"]

    sleep = sleep_average(bundle.sleeps, today, tz)
    if sleep:
        lines += [
            "",
            "[수면]",
            f"평균 밤잠 {format_minutes(sleep.avg_night_minutes)}, 낮잠 {format_minutes(sleep.avg_nap_minutes)}",
        ]

    diaper = diaper_average(bundle.diapers, today, tz)
    if diaper:
        lines += ["", "[기저귀]", f"평균 소변 {diaper.avg_pee:.1f}회/일, 대변 {diaper.avg_poop:.1f}회/일"]

    return "\n".join(lines)


def format_detail(bundle: ActivityBundle, tz: Optional[tzinfo] = None) -> str:
    feedings = feeding_details(bundle.feedings, tz)
    sleeps = sleep_details(bundle.sleeps, tz)
    diapers = diaper_details(bundle.diapers, tz)
    temperatures = temperature_details(bundle.temperatures, tz)
    medicines = medicine_details(bundle.medicines, tz)
    growth = growth_details(bundle.measurements, tz)
    dates = sorted(
        set(feedings) | set(sleeps) | set(diapers) | set(temperatures) | set(medicines) | set(growth),
        reverse=True,
    )

    lines = ["", "상세 기록"]
    for key in dates:
        feeding = feedings.get(key)
        if feeding and (feeding.breast or feeding.bottle):
            lines += ["", f"{key} [수유]"]
            if feeding.breast:
                items = [
                    f"{item.time}({_with_note(f'{translate_enum(item.side)} {item.minutes}분', item.note)})"
                    for item in feeding.breast
                ]
                lines.append(f"- 모유: {', '.join(items)}")
            if feeding.bottle:
                items = [f"{item.time}({_with_note(f'{item.amount}ml', item.note)})" for item in feeding.bottle]
                lines.append(f"- 분유: {', '.join(items)}")

        sleep = sleeps.get(key)
        if sleep and (sleep.naps or sleep.nights):
            lines += ["", f"{key} [수면]"]
            if sleep.naps:
                items = [_with_note(f"{span.start}~{span.end}", span.note) for span in sleep.naps]
                lines.append(f"- 낮잠: {', '.join(items)}")
            if sleep.nights:
                items = [_with_note(f"{span.start}~{span.end}", span.note) for span in sleep.nights]
                lines.append(f"- 밤잠: {', '.join(items)}")

        diaper = diapers.get(key)
        if diaper and (diaper.poops or diaper.pees):
            lines += ["", f"{key} [기저귀]"]
            if diaper.poops:
                items = []
                for entry in diaper.poops:
                    condition = translate_enum(entry.condition.value) if entry.condition else None
                    extras = [part for part in (condition, entry.note) if part]
                    items.append(f"{entry.time}({', '.join(extras)})" if extras else entry.time)
                lines.append(f"- 대변: {', '.join(items)}")
            if diaper.pees:
                items = [f"{entry.time}({entry.note})" if entry.note else entry.time for entry in diaper.pees]
                lines.append(f"- 소변: {', '.join(items)}")

        readings = temperatures.get(key)
        if readings:
            lines += ["", f"{key} [체온]"]
            lines.append("- " + ", ".join(f"{item.time}({_with_note(item.value, item.note)})" for item in readings))

        per_name = medicines.get(key)
        if per_name:
            lines += ["", f"{key} [투약]"]
            for name, doses in per_name.items():
                items = [f"{item.time}({_with_note(item.value, item.note)})" for item in doses]
                lines.append(f"- {name}: {', '.join(items)}")

        measurements = growth.get(key)
        if measurements:
            lines += ["", f"{key} [성장]"]
            lines.append("- " + ", ".join(f"{item.time}({item.value})" for item in measurements))

    return "\n".join(lines)


def format_activity_data(
    bundle: ActivityBundle, days: int, tz: Optional[tzinfo], now: datetime
) -> str:
    """Header, daily summary, averages and per-record detail, in that order."""
    today = day_key(now, tz)
    recorded = set()
    for events in (bundle.feedings, bundle.sleeps, bundle.diapers, bundle.temperatures, bundle.medicines):
        recorded.update(day_key(event.start_time, tz) for event in events)
    dates = sorted(recorded, reverse=True)

    sections = [
        format_header(days, dates, today),
        format_daily_summary(bundle, dates, tz),
        format_average(bundle, today, tz),
        format_detail(bundle, tz),
    ]
    return "\n\n".join(sections)
