import logging

from fastapi import APIRouter, Depends, Query

from ..activities import ActivityStore
from ..auth import AuthContext, get_auth_context, require_child_access
from ..config import AppConfig
from ..db import Database
from ..dependencies import get_config, get_db, get_store
from ..schemas import PeriodSummary
from ..summary import calculate_period_summary

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])
logger = logging.getLogger(__name__)


@router.get("/{child_id}/summary", response_model=PeriodSummary)
async def period_summary(
    child_id: int,
    days: int = Query(7, ge=1, le=365, description="Window length in days"),
    auth: AuthContext = Depends(get_auth_context),
    db: Database = Depends(get_db),
    store: ActivityStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
) -> PeriodSummary:
    """Compare the last ``days`` days against the ``days`` before them."""

    require_child_access(db, auth, child_id)
    logger.info(
        "child-scoped request",
        extra={"method": "GET", "path": f"/api/v1/analytics/{child_id}/summary", "child_id": child_id},
    )
    return await calculate_period_summary(store, child_id, days, tz=config.tzinfo)
