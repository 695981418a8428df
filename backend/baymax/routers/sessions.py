"""
Sessions Router
===============
POST /api/v1/sessions/webhook               — Database webhook on the sessions table.
POST /api/v1/sessions/{session_id}/process  — Re-run aggregation for one session.
GET  /api/v1/sessions/{session_id}/analytics — Read a stored summary.

The webhook always answers 200 once the secret checks out, even when the
event is ignored or the write fails. The database does not retry, and a
non-2xx would only fill its delivery log.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, status
from pydantic import BaseModel

from baymax.auth import get_authenticated_user, verify_webhook_secret
from baymax.models.session import AnalyticsSession, SessionChangeEvent
from baymax.services.aggregator import get_aggregator_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


class ProcessResponse(BaseModel):
    session_id: Optional[str] = None
    processed: bool
    summary: Optional[AnalyticsSession] = None


@router.post(
    "/webhook",
    response_model=ProcessResponse,
    summary="Sessions table change webhook",
    responses={403: {"description": "Missing or wrong webhook secret"}},
)
async def session_changed(
    event: SessionChangeEvent,
    x_webhook_secret: Optional[str] = Header(default=None),
) -> ProcessResponse:
    verify_webhook_secret(x_webhook_secret)

    session_id = event.record.id if event.record else None
    summary = await get_aggregator_service().handle_change(event)
    return ProcessResponse(session_id=session_id, processed=summary is not None, summary=summary)


@router.post(
    "/{session_id}/process",
    response_model=ProcessResponse,
    summary="Aggregate one completed session",
    description=(
        "Loads the raw session and writes its analytics summary if it is "
        "completed and not yet processed. Idempotent."
    ),
)
async def process_session(
    session_id: str,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> ProcessResponse:
    get_authenticated_user(authorization)

    summary = await get_aggregator_service().process_session_by_id(session_id)
    return ProcessResponse(session_id=session_id, processed=summary is not None, summary=summary)


@router.get(
    "/{session_id}/analytics",
    summary="Get a session's analytics summary",
    responses={404: {"description": "Session has not been processed"}},
)
async def get_session_analytics(
    session_id: str,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> dict:
    get_authenticated_user(authorization)

    summary = await get_aggregator_service().get_summary(session_id)
    if not summary:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": "No analytics for this session", "code": "not_found"},
        )
    return summary
