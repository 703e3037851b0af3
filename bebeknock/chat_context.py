"""Assembles the system prompt for one chat turn.

The formatted activity snapshot is cached per child for a day. Activity and
measurement writes drop the cached copy, and any entry created in the last
few minutes forces a fresh read so the assistant sees what was just recorded.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time, timedelta, tzinfo
from typing import List, Optional

from .activities import ActivityStore
from .cache import CacheError, context_cache_key
from .chat_history import ChatHistoryStore
from .config import AppConfig
from .db import from_db_timestamp
from .formatters import format_activity_data, translate_relation
from .guidelines import calculate_month_age, get_feeding_guideline, get_sleep_guideline
from .prompts import build_system_prompt
from .schemas import ActivityBundle

logger = logging.getLogger(__name__)

GROWTH_RECORD_LIMIT = 10


def collect_activity_data(store: ActivityStore, child_id: int, days: int, now: datetime) -> ActivityBundle:
    """Events since local midnight ``days - 1`` days ago, plus the latest growth records."""
    start_day = now.date() - timedelta(days=days - 1)
    start = datetime.combine(start_day, time.min, tzinfo=now.tzinfo)
    return store.fetch_bundle(child_id, start, None, measurement_limit=GROWTH_RECORD_LIMIT)


def build_guideline_messages(weight: Optional[float], month_age: Optional[int]) -> str:
    lines: List[str] = []
    if weight:
        feeding = get_feeding_guideline(weight)
        lines.append(
            f"[권장 수유량] 체중 {weight:g}kg 기준, 1회 권장량은 "
            f"{feeding.per_feeding.min}~{feeding.per_feeding.max}ml입니다."
        )
    if month_age is not None and month_age >= 0:
        sleep = get_sleep_guideline(month_age)
        lines.append(
            f"[권장 수면 시간] 생후 {month_age}개월 기준, 하루 총 수면은 {sleep.total}, 낮잠은 {sleep.naps}입니다."
        )
    return "\n".join(lines)


async def load_activity_snapshot(
    store: ActivityStore,
    cache,
    child_id: int,
    *,
    days: int,
    tz: tzinfo,
    now: datetime,
    ttl_seconds: int,
    freshness_minutes: int,
) -> str:
    key = context_cache_key(child_id)
    since = now - timedelta(minutes=freshness_minutes)
    has_fresh_entries = await asyncio.to_thread(store.has_entries_since, child_id, since)

    if has_fresh_entries:
        logger.info("context cache bypassed after recent entry", extra={"child_id": child_id})
    else:
        try:
            cached = await cache.get(key)
        except CacheError:
            logger.warning("context cache read failed", extra={"child_id": child_id}, exc_info=True)
            cached = None
        if cached is not None:
            return cached

    bundle = await asyncio.to_thread(collect_activity_data, store, child_id, days, now)
    snapshot = "" if bundle.is_empty() else format_activity_data(bundle, days, tz, now)
    try:
        await cache.set(key, snapshot, ttl_seconds)
    except CacheError:
        logger.warning("context cache write failed", extra={"child_id": child_id}, exc_info=True)
    return snapshot


async def invalidate_activity_snapshot(cache, child_id: int) -> None:
    """Drop the cached snapshot after a write; a cache outage only logs."""
    try:
        await cache.delete(context_cache_key(child_id))
    except CacheError:
        logger.warning("context cache invalidation failed", extra={"child_id": child_id}, exc_info=True)


async def load_recent_summaries(
    history: ChatHistoryStore, child_id: int, user_id: int, limit: int = 3
) -> List[str]:
    return await asyncio.to_thread(history.recent_summaries, child_id, user_id, limit)


async def build_chat_context(
    *,
    store: ActivityStore,
    history: ChatHistoryStore,
    cache,
    config: AppConfig,
    child: dict,
    user_id: int,
    user_name: str,
    relation: Optional[str],
    now: Optional[datetime] = None,
) -> str:
    tz = config.tzinfo
    now = (now or datetime.now(tz)).astimezone(tz)
    birth_date = from_db_timestamp(child["birth_date"]).astimezone(tz)
    month_age = calculate_month_age(birth_date, now)

    snapshot, summaries, weight = await asyncio.gather(
        load_activity_snapshot(
            store,
            cache,
            child["id"],
            days=config.data_collection_days,
            tz=tz,
            now=now,
            ttl_seconds=config.context_cache_ttl_seconds,
            freshness_minutes=config.freshness_window_minutes,
        ),
        load_recent_summaries(history, child["id"], user_id, config.summary_context_limit),
        asyncio.to_thread(store.latest_weight, child["id"]),
    )

    return build_system_prompt(
        baby_name=child["name"],
        month_age=month_age,
        user_name=user_name,
        user_role=translate_relation(relation),
        today=now.date().isoformat(),
        data=snapshot,
        days=config.data_collection_days,
        guideline_info=build_guideline_messages(weight, month_age) or None,
        recent_summaries=summaries,
    )
