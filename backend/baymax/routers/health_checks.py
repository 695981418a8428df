"""
Health Checks Router
====================
POST /api/v1/health-checks                  — Classify one vital sign.
POST /api/v1/health-checks/batch            — Heartbeat, respiration and mood together.
POST /api/v1/health-checks/narrative        — Plain-language session summary.
POST /api/v1/health-checks/notify-caretaker — Record a caretaker alert.

Classification and narratives never fail because Gemini is down: the
services fall back to the threshold table and report a result anyway.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, HTTPException, status

from baymax.auth import get_authenticated_user
from baymax.db.supabase import get_supabase_client
from baymax.models.health_check import (
    CaretakerNotificationRequest,
    CaretakerNotificationResponse,
    HealthCheckBatchRequest,
    HealthCheckBatchResponse,
    HealthCheckRequest,
    HealthCheckResponse,
    NarrativeRequest,
    NarrativeResponse,
)
from baymax.services.health_classifier import get_health_classifier
from baymax.services.narrative import get_narrative_service
from baymax.services.profile import get_profile_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/health-checks", tags=["health-checks"])

_STAT_LABELS = {
    "heartbeat": "Heart Rate",
    "respiration rate": "Respiration Rate",
    "mood": "Mood",
}


@router.post(
    "",
    response_model=HealthCheckResponse,
    summary="Is this vital sign typical for the profile?",
)
async def check_stat(
    body: HealthCheckRequest,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> HealthCheckResponse:
    user = get_authenticated_user(authorization)
    return await get_health_classifier().check(body, user_id=user["id"])


@router.post(
    "/batch",
    response_model=HealthCheckBatchResponse,
    summary="Check heartbeat, respiration rate and mood at once",
)
async def check_all_stats(
    body: HealthCheckBatchRequest,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> HealthCheckBatchResponse:
    user = get_authenticated_user(authorization)
    logger.info("Starting health analysis for user %s", user["id"])

    results = await get_health_classifier().check_all(
        body.profile,
        heart_rate_avg=body.heart_rate_avg,
        respiration_rate_avg=body.respiration_rate_avg,
        mood_score=body.mood_score,
        user_id=user["id"],
    )
    atypical = [_STAT_LABELS.get(r.stat_name, r.stat_name) for r in results if not r.is_typical]
    return HealthCheckBatchResponse(results=results, atypical_stats=atypical)


@router.post(
    "/narrative",
    response_model=NarrativeResponse,
    summary="Summarise a session in plain language",
)
async def session_narrative(
    body: NarrativeRequest,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> NarrativeResponse:
    user = get_authenticated_user(authorization)
    return await get_narrative_service().generate(body.profile, body.stats, user_id=user["id"])


@router.post(
    "/notify-caretaker",
    response_model=CaretakerNotificationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Notify the caretaker about atypical stats",
    responses={
        404: {"description": "No profile or no caretaker on file"},
    },
)
async def notify_caretaker(
    body: CaretakerNotificationRequest,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> CaretakerNotificationResponse:
    user = get_authenticated_user(authorization)
    user_id: str = user["id"]

    profile = await get_profile_service().get_profile(user_id)
    if profile is None or not profile.has_caretaker:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": "No caretaker on file", "code": "caretaker_missing"},
        )

    db = get_supabase_client()
    result = db.table("caretaker_notifications").insert({
        "user_id": user_id,
        "atypical_stats": body.atypical_stats,
        "message": body.message,
        "caretaker_name": profile.caretaker_name,
        "caretaker_phone": profile.caretaker_phone,
    }).execute()

    if not result.data:
        logger.error("Failed to record caretaker notification for user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Failed to notify caretaker", "code": "db_error"},
        )

    logger.info("Caretaker notified for user %s: %s", user_id, ", ".join(body.atypical_stats))
    return CaretakerNotificationResponse(
        id=result.data[0]["id"],
        notified=True,
        caretaker_name=profile.caretaker_name,
        caretaker_phone=profile.caretaker_phone,
    )
