"""Daily summaries and weekly roll-ups over baby care events."""
from __future__ import annotations

import asyncio
from datetime import date, datetime, time, timedelta, tzinfo
from typing import List, Optional, Union

from .config import CONFIG
from .event_store import EventStore, TimeRange
from .schemas import DailySummary, EventKind, WeeklySeries, WeeklyStatsEntry

WEEK_LENGTH = 7

DayLike = Union[date, datetime]


def calendar_date(value: DayLike, tz: Optional[tzinfo] = None) -> date:
    """Reduce a date or datetime to its calendar day in the reference timezone."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(tz or CONFIG.reference_tz).date()
    return value


def day_bounds(day: DayLike, tz: Optional[tzinfo] = None) -> TimeRange:
    """Return ``[00:00, next 00:00)`` of ``day``; the end is exclusive."""
    zone = tz or CONFIG.reference_tz
    current = calendar_date(day, zone)
    return TimeRange(
        start=datetime.combine(current, time.min, tzinfo=zone),
        end=datetime.combine(current + timedelta(days=1), time.min, tzinfo=zone),
    )


async def compute_daily_summary(
    store: EventStore,
    owner_id: int,
    day: DayLike,
    *,
    tz: Optional[tzinfo] = None,
) -> DailySummary:
    """Summarise one calendar day of feeds, nappies and sleep for a baby.

    Counts and sleep minutes are bounded to the day. ``last_feed_at`` and
    ``last_nappy_at`` come from the most recent event overall, so they can
    point at a previous day. The open sleep session is likewise not bounded.
    Store errors propagate; nothing is defaulted on failure.
    """

    window = day_bounds(day, tz)
    (
        feeds,
        nappies,
        sleep_sessions,
        open_session,
        latest_feeds,
        latest_nappies,
    ) = await asyncio.gather(
        store.query(owner_id, EventKind.FEED, window),
        store.query(owner_id, EventKind.NAPPY, window),
        store.query(owner_id, EventKind.SLEEP, window),
        store.open_sleep_session(owner_id),
        store.most_recent(owner_id, EventKind.FEED, 1),
        store.most_recent(owner_id, EventKind.NAPPY, 1),
    )

    # open sessions have no duration yet and add nothing
    sleep_minutes = sum(session.duration for session in sleep_sessions if session.duration is not None)

    return DailySummary(
        feed_count=len(feeds),
        nappy_count=len(nappies),
        sleep_duration_minutes=sleep_minutes,
        last_feed_at=latest_feeds[0].timestamp if latest_feeds else None,
        last_nappy_at=latest_nappies[0].timestamp if latest_nappies else None,
        current_sleep_session=open_session,
    )


async def compute_weekly_stats(
    store: EventStore,
    owner_id: int,
    start_date: DayLike,
    *,
    tz: Optional[tzinfo] = None,
) -> WeeklySeries:
    """Seven consecutive daily summaries starting at ``start_date``, oldest first."""

    first_day = calendar_date(start_date, tz)
    days: List[date] = [first_day + timedelta(days=offset) for offset in range(WEEK_LENGTH)]
    summaries = await asyncio.gather(
        *(compute_daily_summary(store, owner_id, day, tz=tz) for day in days)
    )
    return WeeklySeries(
        daily=[
            WeeklyStatsEntry(
                day=day,
                feed_count=summary.feed_count,
                nappy_count=summary.nappy_count,
                sleep_duration_minutes=summary.sleep_duration_minutes,
            )
            for day, summary in zip(days, summaries)
        ]
    )


def format_sleep_duration(minutes: int) -> str:
    hours, remainder = divmod(int(minutes), 60)
    return f"{hours}h {remainder}m"
