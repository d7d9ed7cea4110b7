import logging
import sqlite3
from datetime import date

from fastapi import APIRouter, Depends, HTTPException

from ..event_store import EventStore, get_event_store
from ..schemas import DailySummary, WeeklySeries
from ..summaries import compute_daily_summary, compute_weekly_stats

router = APIRouter(prefix="/api/v1", tags=["summaries"])
logger = logging.getLogger(__name__)


@router.get("/babies/{baby_id}/summary/{day}", response_model=DailySummary)
async def daily_summary(
    baby_id: int,
    day: date,
    store: EventStore = Depends(get_event_store),
) -> DailySummary:
    """Counts, sleep minutes and latest events for one calendar day."""

    logger.info(
        "child-scoped request",
        extra={"method": "GET", "path": "/summary", "child_id": baby_id, "day": day.isoformat()},
    )
    try:
        return await compute_daily_summary(store, baby_id, day)
    except sqlite3.Error as exc:
        logger.exception("daily summary failed", extra={"child_id": baby_id, "day": day.isoformat()})
        # failures surface as unavailable, never as zero counts
        raise HTTPException(status_code=503, detail="Daily summary unavailable") from exc


@router.get("/babies/{baby_id}/stats/weekly/{start_date}", response_model=WeeklySeries)
async def weekly_stats(
    baby_id: int,
    start_date: date,
    store: EventStore = Depends(get_event_store),
) -> WeeklySeries:
    logger.info(
        "child-scoped request",
        extra={"method": "GET", "path": "/stats/weekly", "child_id": baby_id, "day": start_date.isoformat()},
    )
    try:
        return await compute_weekly_stats(store, baby_id, start_date)
    except sqlite3.Error as exc:
        logger.exception("weekly stats failed", extra={"child_id": baby_id, "day": start_date.isoformat()})
        raise HTTPException(status_code=503, detail="Weekly stats unavailable") from exc
