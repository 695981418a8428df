"""
Session Aggregator
==================
Turns a completed monitoring session's raw reading buffer into one
analytics summary row.

Triggered by the database webhook on the ``sessions`` table (see
routers/sessions.py). Only the transition into ``status == "completed"``
counts; later edits to an already completed session are ignored.

Write-once guarantee:
    1. Pre-read: if ``analytics_sessions`` already has the session id, skip.
    2. Write with upsert(ignore_duplicates=True) on the UNIQUE(session_id)
       constraint, so two concurrent notifications cannot both insert.

Persistence failures are logged and swallowed. The session stays
unprocessed until the webhook fires again or someone calls
POST /api/v1/sessions/{id}/process.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from numbers import Real
from typing import Any, Optional

import numpy as np
from pydantic import ValidationError

from baymax.db.supabase import get_supabase_client
from baymax.models.session import (
    AnalyticsSession,
    SessionChangeEvent,
    SessionInfo,
    SessionRecord,
    StatBlock,
)

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "sessions"
ANALYTICS_TABLE = "analytics_sessions"


# ---------------------------------------------------------------------------
# Pure computation
# ---------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    # bool is a Real subclass; a True pulse is not a reading
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def round_half_up(value: float) -> int:
    """Round .5 upwards, as dashboards display it (round(72.5) is 72 in Python)."""
    return int(math.floor(value + 0.5))


def extract_series(readings: dict[str, Any]) -> tuple[list[float], list[float]]:
    """Split the readings buffer into (pulses, breathings), skipping non-numerics."""
    pulses: list[float] = []
    breathings: list[float] = []
    for entry in readings.values():
        if not isinstance(entry, dict):
            continue
        if _is_number(entry.get("pulse")):
            pulses.append(entry["pulse"])
        if _is_number(entry.get("breathing")):
            breathings.append(entry["breathing"])
    return pulses, breathings


def summarise(values: list[float]) -> StatBlock:
    if not values:
        return StatBlock()
    arr = np.asarray(values, dtype=float)
    return StatBlock(
        average=round_half_up(float(arr.mean())),
        max=float(arr.max()),
        min=float(arr.min()),
    )


def compute_summary(session_id: str, record: SessionRecord) -> Optional[AnalyticsSession]:
    """Build the analytics row for *record*, or None if it has no pulse data.

    ``data_points`` counts pulse readings only, even when the breathing
    list is a different length.
    """
    pulses, breathings = extract_series(record.readings)
    if not pulses:
        logger.info("No valid numeric pulse data in session %s", session_id)
        return None

    return AnalyticsSession(
        session_id=session_id,
        pulse=summarise(pulses),
        breathing=summarise(breathings),
        session_info=SessionInfo(
            started_at=record.metadata.start_time,
            ended_at=record.metadata.end_time,
            data_points=len(pulses),
        ),
        processed_at=datetime.now(timezone.utc),
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class SessionAggregatorService:
    """Computes and stores analytics summaries for completed sessions."""

    def __init__(self) -> None:
        self._db = get_supabase_client()

    async def handle_change(self, event: SessionChangeEvent) -> Optional[AnalyticsSession]:
        """Process a webhook event if it marks a session as newly completed."""
        record = event.record
        if event.type not in ("INSERT", "UPDATE") or record is None or not record.id:
            return None
        if not record.metadata.is_completed:
            return None
        if event.old_record is not None and event.old_record.metadata.is_completed:
            logger.debug("Session %s was already completed, ignoring change", record.id)
            return None
        return await self.process_session(record.id, record)

    async def process_session(
        self, session_id: str, record: SessionRecord
    ) -> Optional[AnalyticsSession]:
        """Summarise and store *record* exactly once. Returns the stored summary."""
        if not record.metadata.is_completed:
            logger.debug("Session %s is not completed (status=%s)", session_id, record.metadata.status)
            return None

        try:
            if self._summary_exists(session_id):
                logger.info("Session %s already processed, skipping", session_id)
                return None

            logger.info("Processing session %s", session_id)
            if not record.readings:
                logger.warning("No readings found for session %s, skipping", session_id)
                return None

            summary = compute_summary(session_id, record)
            if summary is None:
                return None

            result = (
                self._db.table(ANALYTICS_TABLE)
                .upsert(summary.to_row(), on_conflict="session_id", ignore_duplicates=True)
                .execute()
            )
        except Exception:
            logger.exception("Analytics write failed for session %s", session_id)
            return None

        if not result.data:
            # Lost the race to a concurrent notification for the same session
            logger.info("Session %s was stored by another worker", session_id)
            return None

        logger.info(
            "Stored analytics for %s: pulse avg %s, breathing avg %s",
            session_id, summary.pulse.average, summary.breathing.average,
        )
        return summary

    async def process_session_by_id(self, session_id: str) -> Optional[AnalyticsSession]:
        """Load a raw session and process it. Used to re-trigger a lost webhook."""
        try:
            result = (
                self._db.table(SESSIONS_TABLE)
                .select("*")
                .eq("id", session_id)
                .maybe_single()
                .execute()
            )
        except Exception:
            logger.exception("Failed to load session %s", session_id)
            return None

        if result is None or not result.data:
            logger.info("Session %s not found", session_id)
            return None
        try:
            record = SessionRecord(**result.data)
        except ValidationError as exc:
            logger.warning("Skipping malformed session %s: %s", session_id, exc)
            return None
        return await self.process_session(session_id, record)

    async def get_summary(self, session_id: str) -> Optional[dict]:
        result = (
            self._db.table(ANALYTICS_TABLE)
            .select("*")
            .eq("session_id", session_id)
            .maybe_single()
            .execute()
        )
        if result is None:
            return None
        return result.data or None

    def _summary_exists(self, session_id: str) -> bool:
        result = (
            self._db.table(ANALYTICS_TABLE)
            .select("session_id")
            .eq("session_id", session_id)
            .limit(1)
            .execute()
        )
        return bool(result.data)


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_default_service: SessionAggregatorService | None = None


def get_aggregator_service() -> SessionAggregatorService:
    global _default_service
    if _default_service is None:
        _default_service = SessionAggregatorService()
    return _default_service
