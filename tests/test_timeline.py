from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from carelog.event_store import TimeRange
from carelog.schemas import (
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
    NappyType,
    SleepSession,
    SleepType,
    SourceType,
    TimelineFilters,
    TimelineSources,
)
from carelog.timeline import (
    BloodPressureFormatError,
    build_timeline,
    day_group_label,
    fetch_timeline_sources,
    format_clock_duration,
    group_by_day,
    merge_timeline,
    parse_blood_pressure,
    project_event,
    group_timeline,
)

from .store_helpers import InMemoryEventStore, utc

BABY_ID = 7
PREGNANCY_ID = 3
T = utc(2024, 1, 1, 10, 0)


def test_contraction_shows_clock_duration_and_intensity() -> None:
    item = project_event(
        Contraction(
            id=4,
            pregnancy_id=PREGNANCY_ID,
            start_time=utc(2024, 1, 1, 10, 0, 0),
            end_time=utc(2024, 1, 1, 10, 0, 45),
            intensity=6,
            notes="Breathing through it",
        )
    )
    assert item.id == "contraction_4"
    assert item.source_type == SourceType.PREGNANCY
    assert item.event_type == EventKind.CONTRACTION
    assert item.primary_text == "Contraction"
    assert item.secondary_text == "00:45"
    assert item.detail_text == "Intensity: 6/10 • Breathing through it"


def test_open_contraction_is_in_progress() -> None:
    item = project_event(Contraction(id=5, pregnancy_id=PREGNANCY_ID, start_time=T))
    assert item.secondary_text == "In progress"
    assert item.detail_text is None


def test_stored_contraction_duration_wins() -> None:
    item = project_event(
        Contraction(
            id=6,
            pregnancy_id=PREGNANCY_ID,
            start_time=T,
            end_time=T + timedelta(seconds=75),
            duration=75,
        )
    )
    assert item.secondary_text == "01:15"


def test_format_clock_duration_pads() -> None:
    assert format_clock_duration(5) == "00:05"
    assert format_clock_duration(125) == "02:05"


def test_movement_item() -> None:
    item = project_event(
        FetalMovement(id=1, pregnancy_id=PREGNANCY_ID, timestamp=T, response_to_stimuli="music")
    )
    assert item.primary_text == "Fetal Movement"
    assert item.secondary_text == "Response to: music"


@pytest.mark.parametrize(
    ("reading_type", "value", "details", "primary", "secondary"),
    [
        (MaternalHealthType.WEIGHT, "68.5", None, "Weight", "68.5 kg"),
        (MaternalHealthType.BLOOD_PRESSURE, "120/80", None, "Blood Pressure", "120/80"),
        (MaternalHealthType.SYMPTOM, "Nausea", {"severity": 4}, "Symptom: Nausea", "Severity: 4/10"),
        (MaternalHealthType.SYMPTOM, "Heartburn", None, "Symptom: Heartburn", "Heartburn"),
        (MaternalHealthType.MOOD, "calm", None, "Mood: calm", "calm"),
    ],
)
def test_maternal_health_items(reading_type, value, details, primary, secondary) -> None:
    item = project_event(
        MaternalHealthReading(
            id=2,
            pregnancy_id=PREGNANCY_ID,
            type=reading_type,
            value=value,
            details=details,
            timestamp=T,
        )
    )
    assert item.primary_text == primary
    assert item.secondary_text == secondary


def test_feed_items() -> None:
    bottle = project_event(Feed(id=3, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=120, timestamp=T))
    breast = project_event(
        Feed(id=4, baby_id=BABY_ID, type=FeedType.BREAST_LEFT, duration=20, timestamp=T)
    )
    assert (bottle.id, bottle.primary_text, bottle.secondary_text) == ("feed_3", "Bottle Feed", "120ml")
    assert (breast.primary_text, breast.secondary_text) == ("Breast Feed", "20 min")
    assert bottle.source_type == SourceType.BABY


def test_nappy_item() -> None:
    item = project_event(Nappy(id=1, baby_id=BABY_ID, type=NappyType.SOILED, timestamp=T, notes="big one"))
    assert item.primary_text == "Soiled Nappy"
    assert item.secondary_text is None
    assert item.detail_text == "big one"


def test_sleep_items() -> None:
    nap = project_event(
        SleepSession(id=1, baby_id=BABY_ID, start_time=T, end_time=T + timedelta(minutes=165), duration=165)
    )
    night = project_event(SleepSession(id=2, baby_id=BABY_ID, type=SleepType.NIGHT, start_time=T))
    assert (nap.primary_text, nap.secondary_text) == ("Nap", "2h 45m")
    assert (night.primary_text, night.secondary_text) == ("Night Sleep", "In progress")


def test_short_sleep_still_shows_hours() -> None:
    nap = project_event(
        SleepSession(id=1, baby_id=BABY_ID, start_time=T, end_time=T + timedelta(minutes=45))
    )
    assert nap.secondary_text == "0h 45m"


def test_health_item() -> None:
    item = project_event(HealthRecord(id=1, baby_id=BABY_ID, type="temperature", value="37.8", timestamp=T))
    assert item.primary_text == "Health: temperature"
    assert item.secondary_text == "37.8"


def test_growth_item_lists_present_measurements() -> None:
    full = project_event(
        GrowthRecord(id=1, baby_id=BABY_ID, weight=4.2, height=55.0, head_circumference=37, timestamp=T)
    )
    partial = project_event(GrowthRecord(id=2, baby_id=BABY_ID, weight=4.4, timestamp=T))
    empty = project_event(GrowthRecord(id=3, baby_id=BABY_ID, timestamp=T))
    assert full.primary_text == "Growth Measurement"
    assert full.secondary_text == "Weight: 4.2 kg • Height: 55 cm • Head: 37 cm"
    assert partial.secondary_text == "Weight: 4.4 kg"
    assert empty.secondary_text is None


def test_parse_blood_pressure_rejects_malformed_values() -> None:
    assert parse_blood_pressure(" 118 / 76 ") == (118, 76)
    for value in ["120-80", "high", "120/", "0/80", None]:
        with pytest.raises(BloodPressureFormatError):
            parse_blood_pressure(value)


def test_hidden_source_wins_over_type_flag() -> None:
    sources = TimelineSources(
        contractions=[Contraction(id=1, pregnancy_id=PREGNANCY_ID, start_time=T)],
        feeds=[Feed(id=1, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=90, timestamp=T)],
    )
    filters = TimelineFilters(
        show_pregnancy=False,
        event_types_enabled={EventKind.CONTRACTION: True},
    )
    items = merge_timeline(sources, filters)
    assert [item.id for item in items] == ["feed_1"]


def test_disabled_type_is_left_out() -> None:
    sources = TimelineSources(
        feeds=[Feed(id=1, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=90, timestamp=T)],
        nappies=[Nappy(id=1, baby_id=BABY_ID, type=NappyType.WET, timestamp=T)],
    )
    items = merge_timeline(sources, TimelineFilters(event_types_enabled={EventKind.NAPPY: False}))
    assert [item.event_type for item in items] == [EventKind.FEED]


def test_merge_sorts_newest_first_and_keeps_ties_in_input_order() -> None:
    sources = TimelineSources(
        nappies=[Nappy(id=9, baby_id=BABY_ID, type=NappyType.WET, timestamp=T - timedelta(minutes=1))],
        feeds=[
            Feed(id=1, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=90, timestamp=T),
            Feed(id=2, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=60, timestamp=T),
        ],
        contractions=[Contraction(id=5, pregnancy_id=PREGNANCY_ID, start_time=T + timedelta(hours=1))],
    )
    items = merge_timeline(sources, TimelineFilters())
    assert [item.id for item in items] == ["contraction_5", "feed_1", "feed_2", "nappy_9"]


def test_malformed_blood_pressure_drops_only_that_item(caplog: pytest.LogCaptureFixture) -> None:
    sources = TimelineSources(
        maternal_health=[
            MaternalHealthReading(
                id=1, pregnancy_id=PREGNANCY_ID, type=MaternalHealthType.BLOOD_PRESSURE, value="120-80", timestamp=T
            ),
            MaternalHealthReading(
                id=2, pregnancy_id=PREGNANCY_ID, type=MaternalHealthType.WEIGHT, value="70", timestamp=T
            ),
        ],
        feeds=[Feed(id=1, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=90, timestamp=T)],
    )
    with caplog.at_level(logging.WARNING, logger="carelog.timeline"):
        items = merge_timeline(sources, TimelineFilters())
    assert [item.id for item in items] == ["maternal_health_2", "feed_1"]
    assert any(record.getMessage() == "dropping timeline item" for record in caplog.records)


def test_group_by_day_uses_display_timezone() -> None:
    sources = TimelineSources(
        feeds=[
            Feed(id=1, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=90, timestamp=utc(2024, 1, 2, 5, 0)),
            Feed(id=2, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=90, timestamp=utc(2024, 1, 2, 9, 0)),
        ]
    )
    in_utc = build_timeline(sources, TimelineFilters(), tz=timezone.utc)
    in_la = build_timeline(sources, TimelineFilters(), tz=ZoneInfo("America/Los_Angeles"))

    assert list(in_utc) == ["2024-01-02"]
    assert list(in_la) == ["2024-01-02", "2024-01-01"]
    assert [item.id for item in in_la["2024-01-01"]] == ["feed_1"]


def test_group_by_day_of_nothing_is_empty() -> None:
    assert group_by_day([], tz=timezone.utc) == {}


def test_day_group_labels() -> None:
    today = date(2024, 1, 3)
    assert day_group_label(date(2024, 1, 3), today) == "Today"
    assert day_group_label(date(2024, 1, 2), today) == "Yesterday"
    assert day_group_label(date(2024, 1, 1), today) == "Monday, January 1"


def test_group_timeline_keeps_group_order() -> None:
    sources = TimelineSources(
        feeds=[
            Feed(id=1, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=90, timestamp=utc(2024, 1, 1, 8, 0)),
            Feed(id=2, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=90, timestamp=utc(2024, 1, 3, 8, 0)),
        ]
    )
    groups = group_timeline(build_timeline(sources, TimelineFilters(), tz=timezone.utc), date(2024, 1, 3))
    assert [(group.day, group.label) for group in groups] == [
        (date(2024, 1, 3), "Today"),
        (date(2024, 1, 1), "Monday, January 1"),
    ]


def test_fetch_reads_only_enabled_collections() -> None:
    store = InMemoryEventStore(
        [
            Contraction(id=1, pregnancy_id=PREGNANCY_ID, start_time=T),
            FetalMovement(id=1, pregnancy_id=PREGNANCY_ID, timestamp=T),
            Feed(id=1, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=90, timestamp=T),
        ]
    )
    filters = TimelineFilters(show_baby=False, event_types_enabled={EventKind.MOVEMENT: False})
    sources = asyncio.run(
        fetch_timeline_sources(store, baby_id=BABY_ID, pregnancy_id=PREGNANCY_ID, filters=filters)
    )
    assert set(store.queries) == {EventKind.CONTRACTION, EventKind.MATERNAL_HEALTH}
    assert [event.id for event in sources.contractions] == [1]
    assert sources.movements == []
    assert sources.feeds == []


def test_fetch_skips_sides_without_an_owner() -> None:
    store = InMemoryEventStore()
    asyncio.run(
        fetch_timeline_sources(store, baby_id=BABY_ID, pregnancy_id=None, filters=TimelineFilters())
    )
    assert set(store.queries) == {
        EventKind.FEED,
        EventKind.NAPPY,
        EventKind.SLEEP,
        EventKind.HEALTH,
        EventKind.GROWTH,
    }


def test_fetch_applies_time_range() -> None:
    store = InMemoryEventStore(
        [
            Feed(id=1, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=90, timestamp=utc(2024, 1, 1, 8, 0)),
            Feed(id=2, baby_id=BABY_ID, type=FeedType.BOTTLE, amount=90, timestamp=utc(2024, 1, 2, 8, 0)),
        ]
    )
    window = TimeRange(start=utc(2024, 1, 2), end=utc(2024, 1, 2, 23, 59))
    sources = asyncio.run(
        fetch_timeline_sources(
            store, baby_id=BABY_ID, pregnancy_id=None, filters=TimelineFilters(), time_range=window
        )
    )
    assert [event.id for event in sources.feeds] == [2]
