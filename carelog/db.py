"""SQLite helpers."""
from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .config import CONFIG
from .schemas import (
    EVENT_MODELS,
    Appointment,
    AppointmentCreate,
    Baby,
    BabyCreate,
    BabyUpdate,
    Contraction,
    EventKind,
    Pregnancy,
    PregnancyCreate,
    SleepSession,
    SourceType,
    TimedEvent,
    Vaccination,
    VaccinationCreate,
    ensure_aware,
    source_for_kind,
)

_DB_PATH = CONFIG.resolved_database_path
_DB_PATH.parent.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class _EventTable:
    name: str
    owner_column: str
    time_column: str
    columns: Tuple[str, ...]


_EVENT_TABLES: Dict[EventKind, _EventTable] = {
    EventKind.FEED: _EventTable(
        "feeds", "baby_id", "timestamp", ("type", "amount", "duration", "timestamp", "notes")
    ),
    EventKind.NAPPY: _EventTable("nappies", "baby_id", "timestamp", ("type", "timestamp", "notes")),
    EventKind.SLEEP: _EventTable(
        "sleep_sessions",
        "baby_id",
        "start_time",
        ("type", "start_time", "end_time", "duration", "location", "notes"),
    ),
    EventKind.HEALTH: _EventTable(
        "health_records", "baby_id", "timestamp", ("type", "value", "details", "timestamp", "notes")
    ),
    EventKind.GROWTH: _EventTable(
        "growth_records",
        "baby_id",
        "timestamp",
        ("weight", "height", "head_circumference", "timestamp", "notes"),
    ),
    EventKind.CONTRACTION: _EventTable(
        "contractions",
        "pregnancy_id",
        "start_time",
        ("start_time", "end_time", "duration", "intensity", "notes"),
    ),
    EventKind.MOVEMENT: _EventTable(
        "fetal_movements",
        "pregnancy_id",
        "timestamp",
        ("timestamp", "duration", "response_to_stimuli", "notes"),
    ),
    EventKind.MATERNAL_HEALTH: _EventTable(
        "maternal_health",
        "pregnancy_id",
        "timestamp",
        ("type", "value", "details", "timestamp", "notes"),
    ),
}

_JSON_COLUMNS = {"details"}


class InvalidEventState(ValueError):
    """Raised when a write would leave an open-ended event inconsistent."""


def to_db_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with fixed microsecond precision so string order is time order."""
    return ensure_aware(value).astimezone(timezone.utc).isoformat(timespec="microseconds")


def _to_db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return to_db_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return value


def initialize_db() -> None:
    with sqlite3.connect(_DB_PATH) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS babies (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                birth_date TEXT,
                created_at TEXT NOT NULL
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS pregnancies (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                last_period_date TEXT NOT NULL,
                estimated_due_date TEXT NOT NULL,
                notes TEXT,
                is_active INTEGER DEFAULT 1,
                baby_id INTEGER,
                created_at TEXT NOT NULL,
                FOREIGN KEY (baby_id) REFERENCES babies(id)
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS feeds (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                baby_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                amount REAL,
                duration INTEGER,
                timestamp TEXT NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (baby_id) REFERENCES babies(id)
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS nappies (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                baby_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (baby_id) REFERENCES babies(id)
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sleep_sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                baby_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT,
                duration INTEGER,
                location TEXT,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (baby_id) REFERENCES babies(id)
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS health_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                baby_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                value TEXT,
                details TEXT,
                timestamp TEXT NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (baby_id) REFERENCES babies(id)
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS growth_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                baby_id INTEGER NOT NULL,
                weight REAL,
                height REAL,
                head_circumference REAL,
                timestamp TEXT NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (baby_id) REFERENCES babies(id)
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS contractions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                pregnancy_id INTEGER NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT,
                duration INTEGER,
                intensity INTEGER,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (pregnancy_id) REFERENCES pregnancies(id)
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS fetal_movements (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                pregnancy_id INTEGER NOT NULL,
                timestamp TEXT NOT NULL,
                duration INTEGER,
                response_to_stimuli TEXT,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (pregnancy_id) REFERENCES pregnancies(id)
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS maternal_health (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                pregnancy_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                value TEXT,
                details TEXT,
                timestamp TEXT NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (pregnancy_id) REFERENCES pregnancies(id)
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS vaccinations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                baby_id INTEGER NOT NULL,
                vaccine_name TEXT NOT NULL,
                date_given TEXT NOT NULL,
                next_due_date TEXT,
                location TEXT,
                notes TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (baby_id) REFERENCES babies(id)
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS pregnancy_appointments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                pregnancy_id INTEGER NOT NULL,
                title TEXT NOT NULL,
                scheduled_for TEXT NOT NULL,
                location TEXT,
                notes TEXT,
                completed INTEGER DEFAULT 0,
                created_at TEXT NOT NULL,
                FOREIGN KEY (pregnancy_id) REFERENCES pregnancies(id)
            );
            """
        )

        for table in _EVENT_TABLES.values():
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table.name}_owner_time "
                f"ON {table.name} ({table.owner_column}, {table.time_column})"
            )

        conn.commit()


@contextmanager
def get_connection() -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(_DB_PATH)
    try:
        yield conn
    finally:
        conn.close()


def event_tables() -> List[str]:
    return [table.name for table in _EVENT_TABLES.values()]


def _row_to_dict(row: sqlite3.Row | None) -> dict:
    if row is None:
        return {}
    return {key: row[key] for key in row.keys()}


def _row_to_event(kind: EventKind, row: sqlite3.Row) -> TimedEvent:
    data = _row_to_dict(row)
    data.pop("created_at", None)
    for column in _JSON_COLUMNS:
        if data.get(column):
            data[column] = json.loads(data[column])
    return EVENT_MODELS[kind].model_validate(data)


def create_baby(payload: BabyCreate) -> Baby:
    now = datetime.now(tz=timezone.utc).isoformat()
    with get_connection() as conn:
        cursor = conn.execute(
            "INSERT INTO babies (name, birth_date, created_at) VALUES (?, ?, ?)",
            (payload.name, _to_db_value(payload.birth_date), now),
        )
        conn.commit()
        baby_id = cursor.lastrowid
    return get_baby(baby_id)


def get_baby(baby_id: int) -> Baby:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        row = conn.execute("SELECT * FROM babies WHERE id = ?", (baby_id,)).fetchone()
    if not row:
        raise ValueError(f"Baby {baby_id} not found")
    return Baby.model_validate(_row_to_dict(row))


def list_babies() -> List[Baby]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        rows = conn.execute("SELECT * FROM babies ORDER BY id").fetchall()
    return [Baby.model_validate(_row_to_dict(row)) for row in rows]


def update_baby(baby_id: int, payload: BabyUpdate) -> Baby:
    get_baby(baby_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("name", "") is None:
        del changes["name"]
    if changes:
        assignments = ", ".join(f"{column} = ?" for column in changes)
        with get_connection() as conn:
            conn.execute(
                f"UPDATE babies SET {assignments} WHERE id = ?",
                (*(_to_db_value(value) for value in changes.values()), baby_id),
            )
            conn.commit()
    return get_baby(baby_id)


def create_pregnancy(payload: PregnancyCreate) -> Pregnancy:
    if payload.baby_id is not None:
        get_baby(payload.baby_id)
    now = datetime.now(tz=timezone.utc).isoformat()
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO pregnancies (
                last_period_date,
                estimated_due_date,
                notes,
                is_active,
                baby_id,
                created_at
            ) VALUES (?, ?, ?, 1, ?, ?)
            """,
            (
                _to_db_value(payload.last_period_date),
                _to_db_value(payload.estimated_due_date),
                payload.notes,
                payload.baby_id,
                now,
            ),
        )
        conn.commit()
        pregnancy_id = cursor.lastrowid
    return get_pregnancy(pregnancy_id)


def get_pregnancy(pregnancy_id: int) -> Pregnancy:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        row = conn.execute("SELECT * FROM pregnancies WHERE id = ?", (pregnancy_id,)).fetchone()
    if not row:
        raise ValueError(f"Pregnancy {pregnancy_id} not found")
    data = _row_to_dict(row)
    data["is_active"] = bool(data.get("is_active"))
    return Pregnancy.model_validate(data)


def create_vaccination(baby_id: int, payload: VaccinationCreate) -> Vaccination:
    get_baby(baby_id)
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO vaccinations (
                baby_id,
                vaccine_name,
                date_given,
                next_due_date,
                location,
                notes,
                created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                baby_id,
                payload.vaccine_name,
                _to_db_value(payload.date_given),
                _to_db_value(payload.next_due_date),
                payload.location,
                payload.notes,
                datetime.now(tz=timezone.utc).isoformat(),
            ),
        )
        conn.commit()
        vaccination_id = cursor.lastrowid
    return Vaccination(id=vaccination_id, baby_id=baby_id, **payload.model_dump())


def list_vaccinations(baby_id: int) -> List[Vaccination]:
    """Vaccinations for a baby, most recently given first."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        rows = conn.execute(
            "SELECT * FROM vaccinations WHERE baby_id = ? ORDER BY date_given DESC, id DESC",
            (baby_id,),
        ).fetchall()
    return [Vaccination.model_validate(_row_to_dict(row)) for row in rows]


def create_appointment(pregnancy_id: int, payload: AppointmentCreate) -> Appointment:
    get_pregnancy(pregnancy_id)
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO pregnancy_appointments (
                pregnancy_id,
                title,
                scheduled_for,
                location,
                notes,
                completed,
                created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                pregnancy_id,
                payload.title,
                _to_db_value(payload.scheduled_for),
                payload.location,
                payload.notes,
                int(payload.completed),
                datetime.now(tz=timezone.utc).isoformat(),
            ),
        )
        conn.commit()
        appointment_id = cursor.lastrowid
    return Appointment(id=appointment_id, pregnancy_id=pregnancy_id, **payload.model_dump())


def list_appointments(pregnancy_id: int) -> List[Appointment]:
    """Appointments for a pregnancy in date order."""
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        rows = conn.execute(
            """
            SELECT * FROM pregnancy_appointments
            WHERE pregnancy_id = ?
            ORDER BY scheduled_for ASC, id ASC
            """,
            (pregnancy_id,),
        ).fetchall()
    appointments = []
    for row in rows:
        data = _row_to_dict(row)
        data["completed"] = bool(data.get("completed"))
        appointments.append(Appointment.model_validate(data))
    return appointments


def _column_values(kind: EventKind, event: TimedEvent) -> Dict[str, Any]:
    """Column values for ``event``; open-ended kinds always get a derived duration."""
    values = event.model_dump(include=set(_EVENT_TABLES[kind].columns))
    if kind in _DURATION_UNIT_SECONDS:
        end_time = values.get("end_time")
        values["duration"] = (
            _elapsed_units(kind, values["start_time"], end_time) if end_time is not None else None
        )
    return values


def insert_event(event: TimedEvent) -> TimedEvent:
    """Persist a new event and return it with its assigned id."""
    kind = EventKind(event.kind)
    table = _EVENT_TABLES[kind]
    if source_for_kind(kind) == SourceType.BABY:
        get_baby(event.owner_id)
    else:
        get_pregnancy(event.owner_id)

    values = _column_values(kind, event)
    columns = [table.owner_column, *table.columns, "created_at"]
    params = [event.owner_id]
    params.extend(_to_db_value(values.get(column)) for column in table.columns)
    params.append(datetime.now(tz=timezone.utc).isoformat())
    placeholders = ", ".join("?" for _ in columns)
    with get_connection() as conn:
        cursor = conn.execute(
            f"INSERT INTO {table.name} ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(params),
        )
        conn.commit()
        event_id = cursor.lastrowid
    return get_event(kind, event_id)


def get_event(kind: EventKind, event_id: int) -> TimedEvent:
    table = _EVENT_TABLES[kind]
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        row = conn.execute(f"SELECT * FROM {table.name} WHERE id = ?", (event_id,)).fetchone()
    if not row:
        raise ValueError(f"{kind.value} {event_id} not found")
    return _row_to_event(kind, row)


def update_event(kind: EventKind, event_id: int, changes: Dict[str, Any]) -> TimedEvent:
    """Apply a partial update; keys may be snake_case or camelCase.

    Only stored columns can change, never the owner. The merged event is
    validated again, so the open/closed rules hold after every update.
    """
    current = get_event(kind, event_id)
    table = _EVENT_TABLES[kind]
    model = EVENT_MODELS[kind]
    names = {info.alias: name for name, info in model.model_fields.items() if info.alias}
    merged = current.model_dump()
    for key, value in changes.items():
        name = names.get(key, key)
        if name in table.columns:
            merged[name] = value
    if kind in _DURATION_UNIT_SECONDS:
        merged["duration"] = None
    updated = model.model_validate(merged)

    values = _column_values(kind, updated)
    assignments = ", ".join(f"{column} = ?" for column in table.columns)
    params = [_to_db_value(values.get(column)) for column in table.columns]
    with get_connection() as conn:
        conn.execute(
            f"UPDATE {table.name} SET {assignments} WHERE id = ?",
            (*params, event_id),
        )
        conn.commit()
    return get_event(kind, event_id)


def delete_event(kind: EventKind, event_id: int) -> None:
    table = _EVENT_TABLES[kind]
    with get_connection() as conn:
        cursor = conn.execute(f"DELETE FROM {table.name} WHERE id = ?", (event_id,))
        conn.commit()
        deleted = cursor.rowcount
    if not deleted:
        raise ValueError(f"{kind.value} {event_id} not found")


_DURATION_UNIT_SECONDS = {EventKind.SLEEP: 60, EventKind.CONTRACTION: 1}


def _elapsed_units(kind: EventKind, start_time: datetime, end_time: datetime) -> int:
    elapsed = (ensure_aware(end_time) - ensure_aware(start_time)).total_seconds()
    if elapsed < 0:
        raise InvalidEventState("end_time must not be before start_time")
    return int(elapsed // _DURATION_UNIT_SECONDS[kind])


def _close_open_ended(kind: EventKind, event_id: int, end_time: datetime) -> TimedEvent:
    current = get_event(kind, event_id)
    if current.end_time is not None:
        raise InvalidEventState(f"{kind.value} {event_id} is already closed")
    end_time = ensure_aware(end_time)
    duration = _elapsed_units(kind, current.start_time, end_time)
    table = _EVENT_TABLES[kind]
    with get_connection() as conn:
        conn.execute(
            f"UPDATE {table.name} SET end_time = ?, duration = ? WHERE id = ?",
            (to_db_timestamp(end_time), duration, event_id),
        )
        conn.commit()
    return get_event(kind, event_id)


def end_sleep_session(session_id: int, end_time: datetime) -> SleepSession:
    """Close an open sleep session, storing its length in whole minutes."""
    return _close_open_ended(EventKind.SLEEP, session_id, end_time)


def end_contraction(contraction_id: int, end_time: datetime) -> Contraction:
    """Close an open contraction, storing its length in whole seconds."""
    return _close_open_ended(EventKind.CONTRACTION, contraction_id, end_time)


def list_events(
    owner_id: int,
    kind: EventKind,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[TimedEvent]:
    """Return events of one kind for an owner, newest first, within ``[start, end)``."""
    table = _EVENT_TABLES[kind]
    query = f"SELECT * FROM {table.name} WHERE {table.owner_column} = ?"
    params: List[object] = [owner_id]
    if start is not None:
        query += f" AND {table.time_column} >= ?"
        params.append(to_db_timestamp(start))
    if end is not None:
        query += f" AND {table.time_column} < ?"
        params.append(to_db_timestamp(end))
    query += f" ORDER BY {table.time_column} DESC, id DESC"
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        rows = conn.execute(query, tuple(params)).fetchall()
    return [_row_to_event(kind, row) for row in rows]


def list_recent_events(owner_id: int, kind: EventKind, limit: int = 50) -> List[TimedEvent]:
    table = _EVENT_TABLES[kind]
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        rows = conn.execute(
            f"""
            SELECT * FROM {table.name}
            WHERE {table.owner_column} = ?
            ORDER BY {table.time_column} DESC, id DESC
            LIMIT ?
            """,
            (owner_id, limit),
        ).fetchall()
    return [_row_to_event(kind, row) for row in rows]


def get_open_sleep_session(baby_id: int) -> Optional[SleepSession]:
    with get_connection() as conn:
        conn.row_factory = sqlite3.Row
        row = conn.execute(
            """
            SELECT * FROM sleep_sessions
            WHERE baby_id = ? AND end_time IS NULL
            ORDER BY start_time DESC, id DESC
            LIMIT 1
            """,
            (baby_id,),
        ).fetchone()
    if not row:
        return None
    return _row_to_event(EventKind.SLEEP, row)
