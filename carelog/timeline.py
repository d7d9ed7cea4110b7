"""Merged pregnancy and baby timeline.

Every event kind is projected into a :class:`TimelineItem` with display text,
filtered by source and type, sorted newest first and grouped by calendar day.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date, tzinfo
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import CONFIG
from .event_store import EventStore, TimeRange
from .schemas import (
    SOURCE_FIELDS,
    Contraction,
    EventKind,
    FetalMovement,
    Feed,
    FeedType,
    GrowthRecord,
    HealthRecord,
    MaternalHealthReading,
    MaternalHealthType,
    Nappy,
    SleepSession,
    SleepType,
    SourceType,
    TimedEvent,
    TimelineDayGroup,
    TimelineFilters,
    TimelineItem,
    TimelineSources,
    source_for_kind,
)
from .summaries import format_sleep_duration

logger = logging.getLogger(__name__)

IN_PROGRESS = "In progress"
DETAIL_SEPARATOR = " • "


class BloodPressureFormatError(ValueError):
    """A blood pressure value that is not ``systolic/diastolic``."""


def parse_blood_pressure(value: Optional[str]) -> Tuple[int, int]:
    parts = (value or "").split("/")
    if len(parts) != 2:
        raise BloodPressureFormatError(f"Expected systolic/diastolic, got {value!r}")
    try:
        systolic, diastolic = int(parts[0].strip()), int(parts[1].strip())
    except ValueError as exc:
        raise BloodPressureFormatError(f"Expected systolic/diastolic, got {value!r}") from exc
    if systolic <= 0 or diastolic <= 0:
        raise BloodPressureFormatError(f"Blood pressure must be positive, got {value!r}")
    return systolic, diastolic


def format_clock_duration(seconds: int) -> str:
    minutes, remainder = divmod(int(seconds), 60)
    return f"{minutes:02d}:{remainder:02d}"


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _join(parts: List[Optional[str]]) -> Optional[str]:
    present = [part for part in parts if part]
    return DETAIL_SEPARATOR.join(present) if present else None


def _item(
    event: TimedEvent,
    primary: str,
    secondary: Optional[str] = None,
    detail: Optional[str] = None,
) -> TimelineItem:
    kind = EventKind(event.kind)
    return TimelineItem(
        id=f"{kind.value}_{event.id}",
        timestamp=event.timestamp,
        source_type=source_for_kind(kind),
        event_type=kind,
        primary_text=primary,
        secondary_text=secondary,
        detail_text=detail,
    )


def _contraction_item(contraction: Contraction) -> TimelineItem:
    if contraction.is_open:
        secondary = IN_PROGRESS
    else:
        seconds = contraction.duration
        if seconds is None:
            seconds = int((contraction.end_time - contraction.start_time).total_seconds())
        secondary = format_clock_duration(seconds)
    intensity = f"Intensity: {contraction.intensity}/10" if contraction.intensity is not None else None
    return _item(contraction, "Contraction", secondary, _join([intensity, contraction.notes]))


def _movement_item(movement: FetalMovement) -> TimelineItem:
    secondary = None
    if movement.response_to_stimuli:
        secondary = f"Response to: {movement.response_to_stimuli}"
    return _item(movement, "Fetal Movement", secondary, movement.notes)


def _maternal_health_item(reading: MaternalHealthReading) -> TimelineItem:
    secondary = reading.value
    if reading.type == MaternalHealthType.WEIGHT:
        title = "Weight"
        secondary = f"{reading.value} kg"
    elif reading.type == MaternalHealthType.BLOOD_PRESSURE:
        title = "Blood Pressure"
        # raises on malformed values; the raw reading is still what is shown
        parse_blood_pressure(reading.value)
    elif reading.type == MaternalHealthType.SYMPTOM:
        title = f"Symptom: {reading.value}"
        severity = (reading.details or {}).get("severity")
        if severity not in (None, ""):
            secondary = f"Severity: {severity}/10"
    else:
        title = f"Mood: {reading.value}"
    return _item(reading, title, secondary, reading.notes)


def _feed_item(feed: Feed) -> TimelineItem:
    if feed.type == FeedType.BOTTLE:
        title = "Bottle Feed"
        secondary = f"{_format_number(feed.amount)}ml" if feed.amount is not None else None
    else:
        title = "Breast Feed"
        secondary = f"{feed.duration or 0} min"
    return _item(feed, title, secondary, feed.notes)


def _nappy_item(nappy: Nappy) -> TimelineItem:
    return _item(nappy, f"{nappy.type.value.capitalize()} Nappy", None, nappy.notes)


def _sleep_item(session: SleepSession) -> TimelineItem:
    title = "Nap" if session.type == SleepType.NAP else "Night Sleep"
    if session.is_open:
        secondary = IN_PROGRESS
    else:
        minutes = session.duration
        if minutes is None:
            minutes = int((session.end_time - session.start_time).total_seconds() // 60)
        secondary = format_sleep_duration(minutes)
    return _item(session, title, secondary, session.notes)


def _health_item(record: HealthRecord) -> TimelineItem:
    return _item(record, f"Health: {record.type}", record.value, record.notes)


def _growth_item(record: GrowthRecord) -> TimelineItem:
    measurements = []
    if record.weight:
        measurements.append(f"Weight: {_format_number(record.weight)} kg")
    if record.height:
        measurements.append(f"Height: {_format_number(record.height)} cm")
    if record.head_circumference:
        measurements.append(f"Head: {_format_number(record.head_circumference)} cm")
    return _item(record, "Growth Measurement", _join(measurements), record.notes)


_PROJECTORS: Dict[EventKind, Callable[[Any], TimelineItem]] = {
    EventKind.CONTRACTION: _contraction_item,
    EventKind.MOVEMENT: _movement_item,
    EventKind.MATERNAL_HEALTH: _maternal_health_item,
    EventKind.FEED: _feed_item,
    EventKind.NAPPY: _nappy_item,
    EventKind.SLEEP: _sleep_item,
    EventKind.HEALTH: _health_item,
    EventKind.GROWTH: _growth_item,
}


def project_event(event: TimedEvent) -> TimelineItem:
    """Project one event into its display item."""
    return _PROJECTORS[EventKind(event.kind)](event)


def merge_timeline(sources: TimelineSources, filters: TimelineFilters) -> List[TimelineItem]:
    """Project every enabled event and sort newest first.

    Disabled sources and types are skipped before projection. An item whose
    projection fails on malformed data is dropped and logged; the rest of the
    timeline is unaffected. The sort is stable, so same-instant items keep
    their input order.
    """

    items: List[TimelineItem] = []
    for kind, events in sources.collections():
        if not filters.allows(kind):
            continue
        for event in events:
            try:
                items.append(project_event(event))
            except BloodPressureFormatError as exc:
                logger.warning(
                    "dropping timeline item",
                    extra={"event_type": kind.value, "event_id": event.id, "reason": str(exc)},
                )
    items.sort(key=lambda item: item.timestamp, reverse=True)
    return items


def group_by_day(
    items: List[TimelineItem],
    *,
    tz: Optional[tzinfo] = None,
) -> Dict[str, List[TimelineItem]]:
    """Group sorted items by ``YYYY-MM-DD`` in the display timezone, keeping order."""
    zone = tz or CONFIG.display_tz
    grouped: Dict[str, List[TimelineItem]] = {}
    for item in items:
        key = item.timestamp.astimezone(zone).date().isoformat()
        grouped.setdefault(key, []).append(item)
    return grouped


def build_timeline(
    sources: TimelineSources,
    filters: TimelineFilters,
    *,
    tz: Optional[tzinfo] = None,
) -> Dict[str, List[TimelineItem]]:
    return group_by_day(merge_timeline(sources, filters), tz=tz)


def day_group_label(day: date, today: date) -> str:
    if day == today:
        return "Today"
    if (today - day).days == 1:
        return "Yesterday"
    return f"{day:%A, %B} {day.day}"


def group_timeline(grouped: Dict[str, List[TimelineItem]], today: date) -> List[TimelineDayGroup]:
    groups: List[TimelineDayGroup] = []
    for key, items in grouped.items():
        day = date.fromisoformat(key)
        groups.append(TimelineDayGroup(day=day, label=day_group_label(day, today), items=items))
    return groups


async def fetch_timeline_sources(
    store: EventStore,
    *,
    baby_id: Optional[int],
    pregnancy_id: Optional[int],
    filters: TimelineFilters,
    time_range: Optional[TimeRange] = None,
) -> TimelineSources:
    """Read only the collections the filters enable, concurrently."""

    fields: List[str] = []
    reads = []
    for kind, field in SOURCE_FIELDS.items():
        owner_id = pregnancy_id if source_for_kind(kind) == SourceType.PREGNANCY else baby_id
        if owner_id is None or not filters.allows(kind):
            continue
        fields.append(field)
        reads.append(store.query(owner_id, kind, time_range))
    results = await asyncio.gather(*reads)
    return TimelineSources(**dict(zip(fields, results)))
