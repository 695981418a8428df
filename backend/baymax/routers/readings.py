"""
Readings Router
===============
POST /api/v1/readings        — Store one sensor sample.
GET  /api/v1/readings        — Samples from the last N days, oldest first.
GET  /api/v1/readings/today  — Latest sample since midnight, or null.
GET  /api/v1/readings/trends — Weekly or monthly chart series with status.
POST /api/v1/readings/seed   — Sample data for demos (not in production).
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Header, HTTPException, Query, status

from baymax.auth import get_authenticated_user
from baymax.config import get_settings
from baymax.models.reading import ReadingCreate, ReadingResponse, TrendsResponse
from baymax.services.profile import get_profile_service
from baymax.services.readings import get_readings_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/readings", tags=["readings"])

# Used for the trend status when the profile has no age yet
_DEFAULT_AGE = 30


@router.post(
    "",
    response_model=ReadingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Store a sensor reading",
)
async def create_reading(
    body: ReadingCreate,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> ReadingResponse:
    user = get_authenticated_user(authorization)
    try:
        row = await get_readings_service().save_reading(user["id"], body)
    except Exception as exc:
        logger.exception("Failed to save reading for user %s", user["id"])
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Failed to save reading", "code": "db_error"},
        ) from exc
    return ReadingResponse(**row)


@router.get("", response_model=list[ReadingResponse], summary="List recent readings")
async def list_readings(
    days: int = Query(default=7, ge=1, le=90),
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> list[ReadingResponse]:
    user = get_authenticated_user(authorization)
    rows = await get_readings_service().get_readings(user["id"], days=days)
    return [ReadingResponse(**row) for row in rows]


@router.get("/today", response_model=Optional[ReadingResponse], summary="Today's latest reading")
async def today_reading(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> Optional[ReadingResponse]:
    user = get_authenticated_user(authorization)
    row = await get_readings_service().get_today_session(user["id"])
    return ReadingResponse(**row) if row else None


@router.get("/trends", response_model=TrendsResponse, summary="Dashboard trend series")
async def reading_trends(
    view: Literal["weekly", "monthly"] = Query(default="weekly"),
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> TrendsResponse:
    user = get_authenticated_user(authorization)
    profile = await get_profile_service().get_profile(user["id"])
    age = profile.age if profile and profile.age is not None else _DEFAULT_AGE
    return await get_readings_service().get_trends(user["id"], view, age)


@router.post(
    "/seed",
    response_model=list[ReadingResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Seed 7 days of sample readings",
    responses={403: {"description": "Disabled in production"}},
)
async def seed_readings(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> list[ReadingResponse]:
    user = get_authenticated_user(authorization)
    if get_settings().environment == "production":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Seeding is disabled in production", "code": "forbidden"},
        )
    rows = await get_readings_service().seed_sample_readings(user["id"])
    return [ReadingResponse(**row) for row in rows]
