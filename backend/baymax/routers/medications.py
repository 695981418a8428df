"""
Medications Router
==================
GET    /api/v1/medications                       — Medication palette.
POST   /api/v1/medications                       — Add to the palette.
DELETE /api/v1/medications/{name}                — Remove from palette and schedule.
GET    /api/v1/medications/schedule              — Day → medication names.
POST   /api/v1/medications/schedule              — Add a medication to a day.
DELETE /api/v1/medications/schedule/{day}/{idx}  — Remove one instance from a day.
GET    /api/v1/medications/today                 — Today's doses with taken state.
POST   /api/v1/medications/taken/{record_id}     — Toggle a dose as taken.
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Header, HTTPException, status

from baymax.auth import get_authenticated_user
from baymax.models.medication import (
    WEEKDAYS,
    Dose,
    Medication,
    MedicationCreate,
    ScheduleEntryCreate,
    ScheduleResponse,
    TakenToggleResponse,
    TodayResponse,
)
from baymax.services.medication import MedicationError, get_medication_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/medications", tags=["medications"])


def _bad_schedule_request(exc: MedicationError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={
            "message": str(exc),
            "code": "invalid_schedule",
            "valid_days": list(WEEKDAYS),
        },
    )


# ---------------------------------------------------------------------------
# Palette
# ---------------------------------------------------------------------------

@router.get("", response_model=list[Medication], summary="List medications")
async def list_medications(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> list[Medication]:
    user = get_authenticated_user(authorization)
    rows = await get_medication_service().list_medications(user["id"])
    return [Medication(**row) for row in rows]


@router.post(
    "",
    response_model=Medication,
    status_code=status.HTTP_201_CREATED,
    summary="Add a medication",
    responses={409: {"description": "Medication already in the palette"}},
)
async def add_medication(
    body: MedicationCreate,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> Medication:
    user = get_authenticated_user(authorization)
    row = await get_medication_service().add_medication(user["id"], body)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": f"{body.name} is already listed", "code": "duplicate"},
        )
    return Medication(**row)


@router.delete("/{name}", response_model=ScheduleResponse, summary="Remove a medication")
async def remove_medication(
    name: str,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> ScheduleResponse:
    user = get_authenticated_user(authorization)
    schedule = await get_medication_service().remove_medication(user["id"], name)
    return ScheduleResponse(schedule=schedule)


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------

@router.get("/schedule", response_model=ScheduleResponse, summary="Weekly schedule")
async def get_schedule(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> ScheduleResponse:
    user = get_authenticated_user(authorization)
    return ScheduleResponse(schedule=await get_medication_service().get_schedule(user["id"]))


@router.post("/schedule", response_model=ScheduleResponse, summary="Schedule a medication")
async def add_to_schedule(
    body: ScheduleEntryCreate,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> ScheduleResponse:
    user = get_authenticated_user(authorization)
    try:
        schedule = await get_medication_service().add_to_schedule(user["id"], body.day, body.medication)
    except MedicationError as exc:
        raise _bad_schedule_request(exc) from exc
    return ScheduleResponse(schedule=schedule)


@router.delete(
    "/schedule/{day}/{index}",
    response_model=ScheduleResponse,
    summary="Unschedule one medication instance",
)
async def remove_from_schedule(
    day: str,
    index: int,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> ScheduleResponse:
    user = get_authenticated_user(authorization)
    try:
        schedule = await get_medication_service().remove_from_schedule(user["id"], day, index)
    except MedicationError as exc:
        raise _bad_schedule_request(exc) from exc
    return ScheduleResponse(schedule=schedule)


# ---------------------------------------------------------------------------
# Taken records
# ---------------------------------------------------------------------------

@router.get("/today", response_model=TodayResponse, summary="Today's doses")
async def todays_doses(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> TodayResponse:
    user = get_authenticated_user(authorization)
    today = date.today()
    doses = await get_medication_service().todays_doses(user["id"], today)
    return TodayResponse(
        day=WEEKDAYS[today.weekday()],
        doses=[Dose(**d) for d in doses],
    )


@router.post("/taken/{record_id}", response_model=TakenToggleResponse, summary="Toggle a dose")
async def toggle_taken(
    record_id: str,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> TakenToggleResponse:
    user = get_authenticated_user(authorization)
    taken = await get_medication_service().toggle_taken(user["id"], record_id)
    return TakenToggleResponse(record_id=record_id, taken=taken)
