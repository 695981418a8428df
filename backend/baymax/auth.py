"""
Request Authentication
======================
Shared bearer-token check for the dashboard-facing routers, plus the
shared-secret check for the database webhook.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import HTTPException, status

from baymax.config import get_settings
from baymax.db.supabase import get_supabase_client

logger = logging.getLogger(__name__)


def get_authenticated_user(authorization: str) -> dict:
    """Verify the Supabase JWT and return ``{"id", "email"}`` for its user.

    Raises HTTPException 401 if the token is invalid or missing.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Missing or invalid authorization header", "code": "auth_required"},
        )

    token = authorization.removeprefix("Bearer ").strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Empty bearer token", "code": "auth_required"},
        )

    db = get_supabase_client()

    try:
        auth_response = db.auth.get_user(token)
    except Exception as exc:
        logger.warning("Auth token verification failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid or expired token", "code": "auth_invalid"},
        ) from exc

    if not auth_response or not auth_response.user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "User not found for token", "code": "auth_invalid"},
        )

    return {"id": auth_response.user.id, "email": auth_response.user.email}


def verify_webhook_secret(provided: str | None) -> None:
    """Raise 403 unless *provided* matches the configured webhook secret."""
    expected = get_settings().webhook_secret
    if not expected:
        logger.error("Webhook called but WEBHOOK_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Webhook not configured", "code": "webhook_disabled"},
        )
    if not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Invalid webhook secret", "code": "webhook_forbidden"},
        )
