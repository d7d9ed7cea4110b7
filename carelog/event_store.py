"""Read-side contract for event storage and its SQLite implementation."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol

from . import db
from .schemas import EventKind, SleepSession, TimedEvent


@dataclass(frozen=True)
class TimeRange:
    """Half-open ``[start, end)`` window over an event's timestamp."""

    start: datetime
    end: datetime


class EventStore(Protocol):
    async def query(
        self,
        owner_id: int,
        kind: EventKind,
        time_range: Optional[TimeRange] = None,
    ) -> List[TimedEvent]:
        ...

    async def most_recent(self, owner_id: int, kind: EventKind, n: int) -> List[TimedEvent]:
        ...

    async def open_sleep_session(self, owner_id: int) -> Optional[SleepSession]:
        ...


class SQLiteEventStore:
    """EventStore backed by the local SQLite database.

    Queries are blocking, so each one runs on a worker thread; concurrent
    awaits therefore overlap the way independent HTTP reads would.
    """

    async def query(
        self,
        owner_id: int,
        kind: EventKind,
        time_range: Optional[TimeRange] = None,
    ) -> List[TimedEvent]:
        start = time_range.start if time_range else None
        end = time_range.end if time_range else None
        return await asyncio.to_thread(db.list_events, owner_id, kind, start, end)

    async def most_recent(self, owner_id: int, kind: EventKind, n: int) -> List[TimedEvent]:
        return await asyncio.to_thread(db.list_recent_events, owner_id, kind, n)

    async def open_sleep_session(self, owner_id: int) -> Optional[SleepSession]:
        return await asyncio.to_thread(db.get_open_sleep_session, owner_id)


def get_event_store() -> EventStore:
    """FastAPI dependency; tests override it to inject failing or fake stores."""
    return SQLiteEventStore()
