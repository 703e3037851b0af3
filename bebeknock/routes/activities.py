from datetime import datetime
from typing import Any, List, Optional, Union

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel

from ..activities import ActivityStore
from ..auth import AuthContext, get_auth_context, require_child_access
from ..chat_context import invalidate_activity_snapshot
from ..config import AppConfig
from ..db import Database, from_db_timestamp
from ..dependencies import get_cache, get_config, get_db, get_store
from ..guidelines import (
    FeedingGuideline,
    MedicineDosage,
    MissingConcentration,
    SleepGuideline,
    WeightPercentile,
    calculate_month_age,
    get_feeding_guideline,
    get_medicine_guideline,
    get_sleep_guideline,
    get_weight_percentile,
)
from ..schemas import ActivityEvent, ActivityPayload, ActivityType, Measurement, MeasurementPayload

router = APIRouter(prefix="/api/v1", tags=["activities"])
logger = logging.getLogger(__name__)


class GuidelinesOut(BaseModel):
    child_id: int
    month_age: int
    weight_kg: Optional[float] = None
    percentile: Optional[WeightPercentile] = None
    feeding: Optional[FeedingGuideline] = None
    sleep: SleepGuideline
    medicine: Optional[Union[MedicineDosage, MissingConcentration]] = None


def _load_owned_activity(store: ActivityStore, db: Database, auth: AuthContext, activity_id: int) -> ActivityEvent:
    activity = store.get_activity(activity_id)
    if activity is None:
        raise HTTPException(status_code=404, detail="Activity not found.")
    require_child_access(db, auth, activity.child_id)
    return activity


@router.post("/activities", response_model=ActivityEvent, status_code=201)
async def create_activity(
    payload: ActivityPayload,
    auth: AuthContext = Depends(get_auth_context),
    db: Database = Depends(get_db),
    store: ActivityStore = Depends(get_store),
    cache: Any = Depends(get_cache),
) -> ActivityEvent:
    await asyncio.to_thread(require_child_access, db, auth, payload.child_id)
    logger.info(
        "child-scoped request",
        extra={"method": "POST", "path": "/api/v1/activities", "child_id": payload.child_id},
    )
    created = await asyncio.to_thread(store.create_activity, payload, user_id=auth.user_id)
    await invalidate_activity_snapshot(cache, payload.child_id)
    return created


@router.put("/activities/{activity_id}", response_model=ActivityEvent)
async def replace_activity(
    activity_id: int,
    payload: ActivityPayload,
    auth: AuthContext = Depends(get_auth_context),
    db: Database = Depends(get_db),
    store: ActivityStore = Depends(get_store),
    cache: Any = Depends(get_cache),
) -> ActivityEvent:
    existing = await asyncio.to_thread(_load_owned_activity, store, db, auth, activity_id)
    if payload.child_id != existing.child_id:
        raise HTTPException(status_code=400, detail="An activity cannot be moved to another child.")
    logger.info(
        "child-scoped request",
        extra={"method": "PUT", "path": f"/api/v1/activities/{activity_id}", "child_id": existing.child_id},
    )
    updated = await asyncio.to_thread(store.replace_activity, activity_id, payload)
    if updated is None:
        raise HTTPException(status_code=404, detail="Activity not found.")
    await invalidate_activity_snapshot(cache, existing.child_id)
    return updated


@router.delete("/activities/{activity_id}", status_code=204)
async def delete_activity(
    activity_id: int,
    auth: AuthContext = Depends(get_auth_context),
    db: Database = Depends(get_db),
    store: ActivityStore = Depends(get_store),
    cache: Any = Depends(get_cache),
) -> Response:
    existing = await asyncio.to_thread(_load_owned_activity, store, db, auth, activity_id)
    logger.info(
        "child-scoped request",
        extra={"method": "DELETE", "path": f"/api/v1/activities/{activity_id}", "child_id": existing.child_id},
    )
    await asyncio.to_thread(store.delete_activity, activity_id)
    await invalidate_activity_snapshot(cache, existing.child_id)
    return Response(status_code=204)


@router.get("/activities", response_model=List[ActivityEvent])
def list_activities(
    child_id: Optional[int] = Query(None, description="Child identifier"),
    start: Optional[datetime] = Query(None, description="Start of range (inclusive)"),
    end: Optional[datetime] = Query(None, description="End of range (inclusive)"),
    type: Optional[ActivityType] = Query(None, description="Only this category"),
    auth: AuthContext = Depends(get_auth_context),
    db: Database = Depends(get_db),
    store: ActivityStore = Depends(get_store),
) -> List[ActivityEvent]:
    """Activities for one child, newest first."""

    if child_id is None:
        raise HTTPException(status_code=400, detail="child_id is required for activities.")
    require_child_access(db, auth, child_id)
    logger.info(
        "child-scoped request",
        extra={"method": "GET", "path": "/api/v1/activities", "child_id": child_id},
    )
    return store.list_activities(child_id, start=start, end=end, types=[type] if type else None)


@router.post("/measurements", response_model=Measurement, status_code=201)
async def add_measurement(
    payload: MeasurementPayload,
    auth: AuthContext = Depends(get_auth_context),
    db: Database = Depends(get_db),
    store: ActivityStore = Depends(get_store),
    cache: Any = Depends(get_cache),
) -> Measurement:
    await asyncio.to_thread(require_child_access, db, auth, payload.child_id)
    logger.info(
        "child-scoped request",
        extra={"method": "POST", "path": "/api/v1/measurements", "child_id": payload.child_id},
    )
    measurement = await asyncio.to_thread(store.add_measurement, payload)
    await invalidate_activity_snapshot(cache, payload.child_id)
    return measurement


@router.get("/children/{child_id}/guidelines", response_model=GuidelinesOut)
def child_guidelines(
    child_id: int,
    medicine_name: Optional[str] = Query(None, description="Product or ingredient name"),
    concentration: Optional[float] = Query(None, description="Syrup strength in mg/ml"),
    auth: AuthContext = Depends(get_auth_context),
    db: Database = Depends(get_db),
    store: ActivityStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
) -> GuidelinesOut:
    child = require_child_access(db, auth, child_id)
    now = datetime.now(config.tzinfo)
    month_age = calculate_month_age(from_db_timestamp(child["birth_date"]).astimezone(config.tzinfo), now)
    weight = store.latest_weight(child_id)

    result = GuidelinesOut(child_id=child_id, month_age=month_age, sleep=get_sleep_guideline(month_age))
    if weight:
        result.weight_kg = weight
        result.percentile = get_weight_percentile(weight, month_age, child.get("gender"))
        result.feeding = get_feeding_guideline(weight)
        if medicine_name:
            result.medicine = get_medicine_guideline(medicine_name, weight, concentration)
    return result
