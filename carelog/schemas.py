"""Pydantic schemas shared across the API."""
from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so every stored instant is comparable."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


AwareDatetime = Annotated[datetime, AfterValidator(ensure_aware)]


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input, emits camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EventKind(str, Enum):
    FEED = "feed"
    NAPPY = "nappy"
    SLEEP = "sleep"
    HEALTH = "health"
    GROWTH = "growth"
    CONTRACTION = "contraction"
    MOVEMENT = "movement"
    MATERNAL_HEALTH = "maternal_health"


class SourceType(str, Enum):
    PREGNANCY = "pregnancy"
    BABY = "baby"


BABY_KINDS = (
    EventKind.FEED,
    EventKind.NAPPY,
    EventKind.SLEEP,
    EventKind.HEALTH,
    EventKind.GROWTH,
)
PREGNANCY_KINDS = (
    EventKind.CONTRACTION,
    EventKind.MOVEMENT,
    EventKind.MATERNAL_HEALTH,
)


def source_for_kind(kind: EventKind) -> SourceType:
    return SourceType.PREGNANCY if kind in PREGNANCY_KINDS else SourceType.BABY


class FeedType(str, Enum):
    BOTTLE = "bottle"
    BREAST_LEFT = "breast_left"
    BREAST_RIGHT = "breast_right"
    BREAST_BOTH = "breast_both"


class NappyType(str, Enum):
    WET = "wet"
    SOILED = "soiled"
    BOTH = "both"


class SleepType(str, Enum):
    NAP = "nap"
    NIGHT = "night"


class MaternalHealthType(str, Enum):
    WEIGHT = "weight"
    BLOOD_PRESSURE = "blood_pressure"
    SYMPTOM = "symptom"
    MOOD = "mood"


class _EventBase(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: Optional[int] = None
    notes: Optional[str] = None


class _BabyEvent(_EventBase):
    baby_id: int

    @property
    def owner_id(self) -> int:
        return self.baby_id


class _PregnancyEvent(_EventBase):
    pregnancy_id: int

    @property
    def owner_id(self) -> int:
        return self.pregnancy_id


class Feed(_BabyEvent):
    kind: Literal["feed"] = "feed"
    type: FeedType
    amount: Optional[float] = Field(default=None, ge=0, description="Volume in ml, bottle feeds only")
    duration: Optional[int] = Field(default=None, ge=0, description="Minutes, breast feeds only")
    timestamp: AwareDatetime

    @model_validator(mode="after")
    def _amount_or_duration(self) -> "Feed":
        if self.type == FeedType.BOTTLE and self.duration is not None:
            raise ValueError("bottle feeds record an amount, not a duration")
        if self.type != FeedType.BOTTLE and self.amount is not None:
            raise ValueError("breast feeds record a duration, not an amount")
        return self


class Nappy(_BabyEvent):
    kind: Literal["nappy"] = "nappy"
    type: NappyType
    timestamp: AwareDatetime


def _check_open_ended(event):
    """Open events carry no duration; closed ones cannot end before they start."""
    if event.end_time is None:
        if event.duration is not None:
            raise ValueError("duration is only set once end_time is recorded")
    elif event.end_time < event.start_time:
        raise ValueError("end_time must not be before start_time")
    return event


class SleepSession(_BabyEvent):
    kind: Literal["sleep"] = "sleep"
    type: SleepType = SleepType.NAP
    start_time: AwareDatetime
    end_time: Optional[AwareDatetime] = None
    duration: Optional[int] = Field(default=None, ge=0, description="Whole minutes once closed")
    location: Optional[str] = None

    @model_validator(mode="after")
    def _check_times(self) -> "SleepSession":
        return _check_open_ended(self)

    @property
    def timestamp(self) -> datetime:
        return self.start_time

    @property
    def is_open(self) -> bool:
        return self.end_time is None


class HealthRecord(_BabyEvent):
    kind: Literal["health"] = "health"
    type: str
    value: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: AwareDatetime


class GrowthRecord(_BabyEvent):
    kind: Literal["growth"] = "growth"
    weight: Optional[float] = Field(default=None, description="kg")
    height: Optional[float] = Field(default=None, description="cm")
    head_circumference: Optional[float] = Field(default=None, description="cm")
    timestamp: AwareDatetime


class Contraction(_PregnancyEvent):
    kind: Literal["contraction"] = "contraction"
    start_time: AwareDatetime
    end_time: Optional[AwareDatetime] = None
    duration: Optional[int] = Field(default=None, ge=0, description="Whole seconds once closed")
    intensity: Optional[int] = Field(default=None, ge=1, le=10)

    @model_validator(mode="after")
    def _check_times(self) -> "Contraction":
        return _check_open_ended(self)

    @property
    def timestamp(self) -> datetime:
        return self.start_time

    @property
    def is_open(self) -> bool:
        return self.end_time is None


class FetalMovement(_PregnancyEvent):
    kind: Literal["movement"] = "movement"
    timestamp: AwareDatetime
    duration: Optional[int] = Field(default=None, ge=0, description="Seconds")
    response_to_stimuli: Optional[str] = None


class MaternalHealthReading(_PregnancyEvent):
    kind: Literal["maternal_health"] = "maternal_health"
    type: MaternalHealthType
    value: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: AwareDatetime


TimedEvent = Union[
    Feed,
    Nappy,
    SleepSession,
    HealthRecord,
    GrowthRecord,
    Contraction,
    FetalMovement,
    MaternalHealthReading,
]

AnyEvent = Annotated[TimedEvent, Field(discriminator="kind")]

EVENT_MODELS = {
    EventKind.FEED: Feed,
    EventKind.NAPPY: Nappy,
    EventKind.SLEEP: SleepSession,
    EventKind.HEALTH: HealthRecord,
    EventKind.GROWTH: GrowthRecord,
    EventKind.CONTRACTION: Contraction,
    EventKind.MOVEMENT: FetalMovement,
    EventKind.MATERNAL_HEALTH: MaternalHealthReading,
}


class BabyCreate(CamelModel):
    name: str = Field(..., min_length=1)
    birth_date: Optional[date] = None


class Baby(BabyCreate):
    id: int


class PregnancyCreate(CamelModel):
    last_period_date: date
    estimated_due_date: date
    notes: Optional[str] = None
    baby_id: Optional[int] = None


class Pregnancy(PregnancyCreate):
    id: int
    is_active: bool = True


class BabyUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    birth_date: Optional[date] = None


class VaccinationCreate(CamelModel):
    vaccine_name: str = Field(..., min_length=1)
    date_given: AwareDatetime
    next_due_date: Optional[AwareDatetime] = None
    location: Optional[str] = Field(default=None, description="Clinic, hospital, etc.")
    notes: Optional[str] = None


class Vaccination(VaccinationCreate):
    id: int
    baby_id: int


class AppointmentCreate(CamelModel):
    title: str = Field(..., min_length=1)
    scheduled_for: AwareDatetime
    location: Optional[str] = None
    notes: Optional[str] = None
    completed: bool = False


class Appointment(AppointmentCreate):
    id: int
    pregnancy_id: int


class DailySummary(CamelModel):
    feed_count: int = 0
    nappy_count: int = 0
    sleep_duration_minutes: int = Field(default=0, alias="sleepDuration")
    last_feed_at: Optional[datetime] = Field(default=None, alias="lastFeed")
    last_nappy_at: Optional[datetime] = Field(default=None, alias="lastNappy")
    current_sleep_session: Optional[SleepSession] = None


class WeeklyStatsEntry(CamelModel):
    day: date = Field(..., alias="date")
    feed_count: int = 0
    nappy_count: int = 0
    sleep_duration_minutes: int = Field(default=0, alias="sleepDuration")


class WeeklySeries(CamelModel):
    daily: List[WeeklyStatsEntry]


class GestationalAge(CamelModel):
    weeks: int
    days: int
    total_days: int
    trimester: Literal[1, 2, 3]
    days_until_due_date: int


class ContractionFrequency(CamelModel):
    pregnancy_id: int
    frequency_minutes: Optional[int] = None
    sample_size: int = 0


class TimelineItem(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    timestamp: AwareDatetime
    source_type: SourceType
    event_type: EventKind
    primary_text: str
    secondary_text: Optional[str] = None
    detail_text: Optional[str] = None


class TimelineFilters(CamelModel):
    show_pregnancy: bool = True
    show_baby: bool = True
    event_types_enabled: Dict[EventKind, bool] = Field(default_factory=dict)

    def allows(self, kind: EventKind) -> bool:
        source = source_for_kind(kind)
        if source == SourceType.PREGNANCY and not self.show_pregnancy:
            return False
        if source == SourceType.BABY and not self.show_baby:
            return False
        return self.event_types_enabled.get(kind, True)


class TimelineSources(CamelModel):
    """Already-fetched event collections, one list per kind."""

    contractions: List[Contraction] = Field(default_factory=list)
    movements: List[FetalMovement] = Field(default_factory=list)
    maternal_health: List[MaternalHealthReading] = Field(default_factory=list)
    feeds: List[Feed] = Field(default_factory=list)
    nappies: List[Nappy] = Field(default_factory=list)
    sleep: List[SleepSession] = Field(default_factory=list)
    health: List[HealthRecord] = Field(default_factory=list)
    growth: List[GrowthRecord] = Field(default_factory=list)

    def collections(self) -> Iterator[Tuple[EventKind, List[TimedEvent]]]:
        """Yield each collection with its kind, pregnancy side first."""
        yield EventKind.CONTRACTION, self.contractions
        yield EventKind.MOVEMENT, self.movements
        yield EventKind.MATERNAL_HEALTH, self.maternal_health
        yield EventKind.FEED, self.feeds
        yield EventKind.NAPPY, self.nappies
        yield EventKind.SLEEP, self.sleep
        yield EventKind.HEALTH, self.health
        yield EventKind.GROWTH, self.growth


SOURCE_FIELDS = {
    EventKind.CONTRACTION: "contractions",
    EventKind.MOVEMENT: "movements",
    EventKind.MATERNAL_HEALTH: "maternal_health",
    EventKind.FEED: "feeds",
    EventKind.NAPPY: "nappies",
    EventKind.SLEEP: "sleep",
    EventKind.HEALTH: "health",
    EventKind.GROWTH: "growth",
}


class TimelineDayGroup(CamelModel):
    day: date = Field(..., alias="date")
    label: str
    items: List[TimelineItem]
