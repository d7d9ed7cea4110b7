import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..db import create_appointment, create_pregnancy, get_pregnancy, list_appointments
from ..event_store import EventStore, get_event_store
from ..pregnancy import compute_gestational_age, contraction_frequency_minutes
from ..schemas import (
    Appointment,
    AppointmentCreate,
    ContractionFrequency,
    EventKind,
    GestationalAge,
    Pregnancy,
    PregnancyCreate,
)

router = APIRouter(prefix="/api/v1/pregnancies", tags=["pregnancies"])
logger = logging.getLogger(__name__)


@router.post("", response_model=Pregnancy)
async def create_pregnancy_endpoint(payload: PregnancyCreate) -> Pregnancy:
    try:
        return create_pregnancy(payload)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/{pregnancy_id}", response_model=Pregnancy)
async def fetch_pregnancy(pregnancy_id: int) -> Pregnancy:
    try:
        return get_pregnancy(pregnancy_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/{pregnancy_id}/gestational-age", response_model=GestationalAge)
async def gestational_age(
    pregnancy_id: int,
    as_of: Optional[datetime] = Query(None, description="Reference instant; defaults to now"),
) -> GestationalAge:
    try:
        pregnancy = get_pregnancy(pregnancy_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return compute_gestational_age(pregnancy.last_period_date, pregnancy.estimated_due_date, as_of)


@router.get("/{pregnancy_id}/contractions/frequency", response_model=ContractionFrequency)
async def contraction_frequency(
    pregnancy_id: int,
    store: EventStore = Depends(get_event_store),
) -> ContractionFrequency:
    latest = await store.most_recent(pregnancy_id, EventKind.CONTRACTION, 2)
    logger.info(
        "contraction frequency",
        extra={"pregnancy_id": pregnancy_id, "count": len(latest)},
    )
    return ContractionFrequency(
        pregnancy_id=pregnancy_id,
        frequency_minutes=contraction_frequency_minutes(latest),
        sample_size=len(latest),
    )


@router.post("/{pregnancy_id}/appointments", response_model=Appointment)
async def create_appointment_endpoint(pregnancy_id: int, payload: AppointmentCreate) -> Appointment:
    try:
        return create_appointment(pregnancy_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/{pregnancy_id}/appointments", response_model=List[Appointment])
async def list_appointments_endpoint(pregnancy_id: int) -> List[Appointment]:
    return list_appointments(pregnancy_id)
