"""Gestational age and contraction timing."""
from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Optional, Union

from .config import CONFIG
from .schemas import Contraction, GestationalAge, ensure_aware

SECOND_TRIMESTER_WEEK = 14
THIRD_TRIMESTER_WEEK = 27

_ONE_DAY = timedelta(days=1)


def _as_instant(value: Union[date, datetime], tz: tzinfo) -> datetime:
    if isinstance(value, datetime):
        return ensure_aware(value)
    return datetime.combine(value, time.min, tzinfo=tz)


def trimester_for_week(weeks: int) -> int:
    if weeks < SECOND_TRIMESTER_WEEK:
        return 1
    if weeks < THIRD_TRIMESTER_WEEK:
        return 2
    return 3


def compute_gestational_age(
    last_period_date: Union[date, datetime],
    due_date: Union[date, datetime],
    as_of: Optional[datetime] = None,
    *,
    tz: Optional[tzinfo] = None,
) -> GestationalAge:
    """Elapsed weeks/days since the last period, trimester and signed days until due.

    Whole days are floored. Nothing is clamped: a last-period date in the
    future gives a negative total, and an overdue pregnancy gives a negative
    ``days_until_due_date``. Plain dates are read as midnight in the
    reference timezone.
    """

    zone = tz or CONFIG.reference_tz
    now = ensure_aware(as_of) if as_of is not None else datetime.now(tz=timezone.utc)
    last_period = _as_instant(last_period_date, zone)
    due = _as_instant(due_date, zone)

    total_days = (now - last_period) // _ONE_DAY
    weeks, days = divmod(total_days, 7)
    return GestationalAge(
        weeks=weeks,
        days=days,
        total_days=total_days,
        trimester=trimester_for_week(weeks),
        days_until_due_date=(due - now) // _ONE_DAY,
    )


def contraction_frequency_minutes(contractions: Iterable[Contraction]) -> Optional[int]:
    """Minutes between the starts of the two most recent contractions."""
    latest = sorted(contractions, key=lambda item: item.start_time, reverse=True)[:2]
    if len(latest) < 2:
        return None
    gap_minutes = (latest[0].start_time - latest[1].start_time).total_seconds() / 60
    return math.floor(gap_minutes + 0.5)
