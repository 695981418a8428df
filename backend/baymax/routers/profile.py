"""
Profile Router
==============
GET   /api/v1/profile — The signed-in patient's profile.
PATCH /api/v1/profile — Partial update from onboarding or settings.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, HTTPException, status

from baymax.auth import get_authenticated_user
from baymax.models.profile import Profile, ProfileUpdate
from baymax.services.profile import get_profile_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/profile", tags=["profile"])


@router.get("", response_model=Profile, summary="Get the patient profile")
async def get_profile(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> Profile:
    user = get_authenticated_user(authorization)
    profile = await get_profile_service().get_profile(user["id"])
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": "Profile not found", "code": "profile_not_found"},
        )
    return profile


@router.patch("", response_model=Profile, summary="Update the patient profile")
async def update_profile(
    body: ProfileUpdate,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> Profile:
    user = get_authenticated_user(authorization)
    try:
        return await get_profile_service().update_profile(user["id"], body)
    except Exception as exc:
        logger.exception("Failed to update profile for user %s", user["id"])
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Failed to save profile", "code": "db_error"},
        ) from exc
