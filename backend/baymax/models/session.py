"""
Session Schemas
===============
Pydantic models for monitoring sessions and the analytics summaries the
aggregator derives from them.

A raw session is written by the sensor client as it records:

    {
        "id": "<session id>",
        "metadata": {"status": "recording" | "completed", "startTime": ..., "endTime": ...},
        "readings": {"<any key>": {"pulse": 72, "breathing": 16}, ...}
    }

Readings are kept as loose dicts. Entries with missing or non-numeric
fields are skipped by the aggregator, not rejected here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

COMPLETED_STATUS = "completed"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept ISO strings or epoch milliseconds; anything else becomes None."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


# ---------------------------------------------------------------------------
# Raw session (input)
# ---------------------------------------------------------------------------

class SessionMetadata(BaseModel):
    """Recording state written by the sensor client."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: Optional[str] = None
    start_time: Optional[datetime] = Field(default=None, alias="startTime")
    end_time: Optional[datetime] = Field(default=None, alias="endTime")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _lenient_timestamp(cls, value: Any) -> Optional[datetime]:
        return _parse_timestamp(value)

    @property
    def is_completed(self) -> bool:
        return self.status == COMPLETED_STATUS


class SessionRecord(BaseModel):
    """One raw session row as stored by the sensor client."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)
    readings: dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_metadata(cls, value: Any) -> Any:
        return value if value is not None else {}

    @field_validator("readings", mode="before")
    @classmethod
    def _readings_as_map(cls, value: Any) -> Any:
        # Realtime stores sometimes send arrays for integer-keyed buffers
        if value is None:
            return {}
        if isinstance(value, list):
            return {str(i): entry for i, entry in enumerate(value)}
        return value


class SessionChangeEvent(BaseModel):
    """Database webhook payload for a change on the sessions table."""

    type: str = Field(..., description="INSERT, UPDATE or DELETE.")
    table: Optional[str] = None
    record: Optional[SessionRecord] = None
    old_record: Optional[SessionRecord] = None


# ---------------------------------------------------------------------------
# Analytics summary (output)
# ---------------------------------------------------------------------------

class StatBlock(BaseModel):
    """Average/min/max for one vital sign. All null when no values exist."""

    average: Optional[int] = None
    max: Optional[float] = None
    min: Optional[float] = None


class SessionInfo(BaseModel):
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    data_points: int = 0


class AnalyticsSession(BaseModel):
    """Summary written exactly once per completed session."""

    session_id: str
    pulse: StatBlock
    breathing: StatBlock
    session_info: SessionInfo
    processed_at: datetime

    def to_row(self) -> dict:
        return self.model_dump(mode="json")
