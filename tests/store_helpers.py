from __future__ import annotations

import sqlite3
from datetime import date, datetime, timezone
from typing import List, Optional

from carelog.db import (
    create_baby,
    create_pregnancy,
    event_tables,
    get_connection,
    initialize_db,
)
from carelog.event_store import TimeRange
from carelog.schemas import BabyCreate, EventKind, PregnancyCreate, SleepSession, TimedEvent


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def reset_state() -> None:
    initialize_db()
    with get_connection() as conn:
        for table in [*event_tables(), "vaccinations", "pregnancy_appointments", "pregnancies", "babies"]:
            conn.execute(f"DELETE FROM {table}")
        conn.commit()


def seed_baby(name: str = "Ada") -> int:
    return create_baby(BabyCreate(name=name, birth_date=date(2023, 12, 1))).id


def seed_pregnancy(baby_id: Optional[int] = None) -> int:
    pregnancy = create_pregnancy(
        PregnancyCreate(
            last_period_date=date(2024, 1, 1),
            estimated_due_date=date(2024, 10, 7),
            baby_id=baby_id,
        )
    )
    return pregnancy.id


class InMemoryEventStore:
    """EventStore over a plain list, returning events in insertion order."""

    def __init__(self, events: Optional[List[TimedEvent]] = None) -> None:
        self.events: List[TimedEvent] = list(events or [])
        self.queries: List[EventKind] = []

    def _owned(self, owner_id: int, kind: EventKind) -> List[TimedEvent]:
        return [
            event
            for event in self.events
            if event.kind == kind.value and event.owner_id == owner_id
        ]

    async def query(
        self,
        owner_id: int,
        kind: EventKind,
        time_range: Optional[TimeRange] = None,
    ) -> List[TimedEvent]:
        self.queries.append(kind)
        events = self._owned(owner_id, kind)
        if time_range is None:
            return events
        return [event for event in events if time_range.start <= event.timestamp < time_range.end]

    async def most_recent(self, owner_id: int, kind: EventKind, n: int) -> List[TimedEvent]:
        events = sorted(self._owned(owner_id, kind), key=lambda event: event.timestamp, reverse=True)
        return events[:n]

    async def open_sleep_session(self, owner_id: int) -> Optional[SleepSession]:
        sessions = sorted(
            (event for event in self._owned(owner_id, EventKind.SLEEP) if event.end_time is None),
            key=lambda event: event.start_time,
            reverse=True,
        )
        return sessions[0] if sessions else None


class FailingEventStore:
    """Every read fails the way a locked or unreachable database would."""

    async def query(self, owner_id, kind, time_range=None):
        raise sqlite3.OperationalError("database is locked")

    async def most_recent(self, owner_id, kind, n):
        raise sqlite3.OperationalError("database is locked")

    async def open_sleep_session(self, owner_id):
        raise sqlite3.OperationalError("database is locked")
