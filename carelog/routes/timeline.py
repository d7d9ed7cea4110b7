import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..config import CONFIG
from ..event_store import EventStore, TimeRange, get_event_store
from ..schemas import EventKind, TimelineDayGroup, TimelineFilters
from ..timeline import build_timeline, fetch_timeline_sources, group_timeline

router = APIRouter(prefix="/api/v1", tags=["timeline"])
logger = logging.getLogger(__name__)


@router.get("/timeline", response_model=List[TimelineDayGroup])
async def timeline(
    baby_id: Optional[int] = Query(None, description="Baby identifier"),
    pregnancy_id: Optional[int] = Query(None, description="Pregnancy identifier"),
    show_pregnancy: bool = Query(True),
    show_baby: bool = Query(True),
    hide: List[EventKind] = Query(default=[], description="Event types to leave out"),
    start: Optional[datetime] = Query(None, description="Start of range (inclusive)"),
    end: Optional[datetime] = Query(None, description="End of range (exclusive)"),
    store: EventStore = Depends(get_event_store),
) -> List[TimelineDayGroup]:
    """Merged pregnancy and baby events, newest first, grouped by day."""

    if baby_id is None and pregnancy_id is None:
        raise HTTPException(
            status_code=400,
            detail="baby_id or pregnancy_id is required for the timeline.",
        )
    if (start is None) != (end is None):
        raise HTTPException(status_code=400, detail="start and end must be given together.")

    filters = TimelineFilters(
        show_pregnancy=show_pregnancy,
        show_baby=show_baby,
        event_types_enabled={kind: False for kind in hide},
    )
    time_range = TimeRange(start=start, end=end) if start is not None else None
    sources = await fetch_timeline_sources(
        store,
        baby_id=baby_id,
        pregnancy_id=pregnancy_id,
        filters=filters,
        time_range=time_range,
    )
    grouped = build_timeline(sources, filters)
    today = datetime.now(CONFIG.display_tz).date()
    logger.info(
        "timeline query",
        extra={
            "child_id": baby_id,
            "pregnancy_id": pregnancy_id,
            "days": len(grouped),
            "count": sum(len(items) for items in grouped.values()),
        },
    )
    return group_timeline(grouped, today)
