import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from pydantic import BaseModel, ValidationError

from ..db import (
    InvalidEventState,
    create_baby,
    create_vaccination,
    delete_event,
    end_contraction,
    end_sleep_session,
    get_baby,
    insert_event,
    list_babies,
    list_events,
    list_vaccinations,
    update_baby,
    update_event,
)
from ..event_store import EventStore, get_event_store
from ..schemas import (
    AnyEvent,
    Baby,
    BabyCreate,
    BabyUpdate,
    CamelModel,
    Contraction,
    EventKind,
    SleepSession,
    TimedEvent,
    Vaccination,
    VaccinationCreate,
)

router = APIRouter(prefix="/api/v1", tags=["events"])
logger = logging.getLogger(__name__)


class RecordEventPayload(BaseModel):
    event: AnyEvent


class EndEventPayload(CamelModel):
    end_time: Optional[datetime] = None


@router.post("/babies", response_model=Baby)
async def create_baby_endpoint(payload: BabyCreate) -> Baby:
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    return create_baby(payload.model_copy(update={"name": name}))


@router.get("/babies", response_model=List[Baby])
async def list_babies_endpoint() -> List[Baby]:
    return list_babies()


@router.get("/babies/{baby_id}", response_model=Baby)
async def fetch_baby(baby_id: int) -> Baby:
    try:
        return get_baby(baby_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/babies/{baby_id}", response_model=Baby)
async def update_baby_endpoint(baby_id: int, payload: BabyUpdate) -> Baby:
    if payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="name cannot be empty")
        payload = payload.model_copy(update={"name": name})
    try:
        return update_baby(baby_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/babies/{baby_id}/sleep/active", response_model=Optional[SleepSession])
async def active_sleep_session(
    baby_id: int,
    store: EventStore = Depends(get_event_store),
) -> Optional[SleepSession]:
    """The open sleep session for a baby, or null."""

    return await store.open_sleep_session(baby_id)


@router.post("/babies/{baby_id}/vaccinations", response_model=Vaccination)
async def record_vaccination(baby_id: int, payload: VaccinationCreate) -> Vaccination:
    try:
        return create_vaccination(baby_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/babies/{baby_id}/vaccinations", response_model=List[Vaccination])
async def list_vaccinations_endpoint(baby_id: int) -> List[Vaccination]:
    return list_vaccinations(baby_id)


@router.post("/events", response_model=TimedEvent)
async def record_event(payload: RecordEventPayload) -> TimedEvent:
    """Persist one event of any kind for its baby or pregnancy."""

    event = payload.event
    try:
        saved = insert_event(event)
    except InvalidEventState as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    logger.info(
        "event recorded",
        extra={"kind": saved.kind, "owner_id": saved.owner_id, "event_id": saved.id},
    )
    return saved


@router.get("/owners/{owner_id}/events/{kind}", response_model=List[TimedEvent])
async def list_events_endpoint(
    owner_id: int,
    kind: EventKind,
    start: Optional[datetime] = Query(None, description="Start of range (inclusive)"),
    end: Optional[datetime] = Query(None, description="End of range (exclusive)"),
) -> List[TimedEvent]:
    """Return one kind of event for a baby or pregnancy, newest first."""

    return list_events(owner_id, kind, start, end)


def _end_time(payload: EndEventPayload) -> datetime:
    return payload.end_time or datetime.now(tz=timezone.utc)


@router.post("/sleep/{session_id}/end", response_model=SleepSession)
async def end_sleep_endpoint(session_id: int, payload: EndEventPayload) -> SleepSession:
    try:
        return end_sleep_session(session_id, _end_time(payload))
    except InvalidEventState as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/contractions/{contraction_id}/end", response_model=Contraction)
async def end_contraction_endpoint(contraction_id: int, payload: EndEventPayload) -> Contraction:
    try:
        return end_contraction(contraction_id, _end_time(payload))
    except InvalidEventState as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/events/{kind}/{event_id}", response_model=TimedEvent)
async def update_event_endpoint(
    kind: EventKind,
    event_id: int,
    changes: Dict[str, Any] = Body(...),
) -> TimedEvent:
    """Partially update one event; durations of sleep and contractions are recomputed."""

    try:
        updated = update_event(kind, event_id, changes)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    logger.info(
        "event updated",
        extra={"kind": kind.value, "owner_id": updated.owner_id, "event_id": event_id},
    )
    return updated


@router.delete("/events/{kind}/{event_id}", status_code=204)
async def delete_event_endpoint(kind: EventKind, event_id: int) -> Response:
    try:
        delete_event(kind, event_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    logger.info("event deleted", extra={"kind": kind.value, "event_id": event_id})
    return Response(status_code=204)
